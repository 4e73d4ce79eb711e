import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.api.v1.deps import get_user_service
from app.core.database import get_db
from app.core.middleware import get_current_account
from app.models.user import User
from app.services.user_service import UserService

router = APIRouter()
logger = logging.getLogger(__name__)


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=2)
    profile_image: Optional[str] = Field(None, alias="profileImage")
    preferences: Optional[dict] = None


@router.get("/me")
async def get_my_profile(
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    user_service: UserService = Depends(get_user_service)
):
    """Profile with active subscription and today's quota"""
    return user_service.get_profile(db, account.id)


@router.put("/me")
async def update_my_profile(
    body: ProfileUpdate,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    user_service: UserService = Depends(get_user_service)
):
    logger.info(f"update_my_profile: Entry - user: {account.id}")
    user_service.update_profile(
        db,
        account.id,
        name=body.name,
        profile_image=body.profile_image,
        preferences=body.preferences,
    )
    return user_service.get_profile(db, account.id)
