from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from app.api.v1.deps import get_subscription_service, get_user_service
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.middleware import require_admin
from app.models.user import User
from app.services.subscription_service import SubscriptionService, serialize_subscription
from app.services.user_service import UserService, serialize_user
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


class AccountStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_status: Literal['active', 'inactive', 'blocked', 'pending'] = Field(..., alias="accountStatus")


class GrantSubscriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan: str
    duration_days: Optional[int] = Field(None, alias="durationDays", ge=1)
    auto_renew: bool = Field(True, alias="autoRenew")


class CreateUserRequest(BaseModel):
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    name: str = Field(..., min_length=2)
    role: Literal['student', 'admin'] = 'student'
    preferences: Optional[dict] = None


class UpdateUserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=2)
    role: Optional[Literal['student', 'admin']] = None
    account_status: Optional[Literal['active', 'inactive', 'blocked', 'pending']] = Field(None, alias="accountStatus")
    preferences: Optional[dict] = None


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[Literal['student', 'admin']] = None,
    account_status: Optional[str] = Query(None, alias="accountStatus"),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    """List users with filters. Admin only."""
    logger.info(f"list_users: Entry - admin: {admin.id}")
    return user_service.list_users(
        db,
        page=page,
        limit=limit,
        role=role,
        account_status=account_status,
        search=search,
    )


@router.post("/users", status_code=201)
async def create_user(
    body: CreateUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    """Create an active account that the person claims on first verified sign-in."""
    logger.info(f"create_user: Entry - admin: {admin.id}, email: {body.email}")
    user = user_service.create_user(
        db,
        email=body.email,
        name=body.name,
        role=body.role,
        preferences=body.preferences,
    )
    return serialize_user(user)


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    return user_service.get_profile(db, user_id)


@router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    logger.info(f"update_user: Entry - admin: {admin.id}, target: {user_id}")
    user = user_service.update_user(
        db,
        user_id,
        name=body.name,
        role=body.role,
        account_status=body.account_status,
        preferences=body.preferences,
    )
    return serialize_user(user)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    logger.info(f"delete_user: Entry - admin: {admin.id}, target: {user_id}")
    if user_id == admin.id:
        raise ValidationError("Cannot delete your own account", code="SELF_DELETE")

    user = user_service.delete_user(db, user_id)
    return {"success": True, "id": user.id, "accountStatus": user.account_status}


@router.patch("/users/{user_id}/status")
async def update_account_status(
    user_id: str,
    body: AccountStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    logger.info(f"update_account_status: Entry - admin: {admin.id}, target: {user_id}, status: {body.account_status}")
    user = user_service.update_status(db, user_id, body.account_status)
    return serialize_user(user)


@router.post("/users/{user_id}/subscription")
async def grant_subscription(
    user_id: str,
    body: GrantSubscriptionRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Put a user on a plan. Takes effect for quota rows created from now on,
    which in practice means the user's next quota day.
    """
    logger.info(f"grant_subscription: Entry - admin: {admin.id}, target: {user_id}, plan: {body.plan}")

    try:
        subscription = subscription_service.grant_subscription(
            db,
            user_id,
            body.plan,
            duration_days=body.duration_days,
            auto_renew=body.auto_renew,
        )
        logger.info(f"grant_subscription: Success - subscription: {subscription.id}")
        return serialize_subscription(subscription)
    except Exception as e:
        logger.error(f"grant_subscription: Failure - {e}")
        raise


@router.get("/stats")
async def get_platform_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    return user_service.platform_stats(db)
