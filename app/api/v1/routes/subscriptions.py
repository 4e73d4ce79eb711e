import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.api.v1.deps import get_subscription_service
from app.core.database import get_db
from app.core.middleware import get_current_account
from app.models.user import User
from app.services.subscription_service import SubscriptionService, serialize_subscription

router = APIRouter()
logger = logging.getLogger(__name__)


class SubscriptionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auto_renew: bool = Field(..., alias="autoRenew")


@router.get("/plans")
async def get_plans(
    db: Session = Depends(get_db),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get all available subscription plans.
    Public endpoint - no authentication required.
    """
    logger.info("get_plans: Entry")

    try:
        plans = subscription_service.catalog.list_plans(db)
        logger.info(f"get_plans: Success - {len(plans)} plans")
        return {"plans": plans}
    except Exception as e:
        logger.error(f"get_plans: Failure - {e}")
        raise


@router.get("/current")
async def get_current_subscription(
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get current user's subscription details.
    Users without a subscription see the free tier.
    """
    return subscription_service.get_current_subscription(db, account.id)


@router.post("/cancel")
async def cancel_subscription(
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """Cancel the active subscription; the daily limit falls back to the free tier."""
    logger.info(f"cancel_subscription: Entry - user: {account.id}")

    try:
        subscription = subscription_service.cancel_subscription(db, account.id)
        logger.info(f"cancel_subscription: Success - subscription: {subscription.id}")
        return serialize_subscription(subscription)
    except Exception as e:
        logger.error(f"cancel_subscription: Failure - {e}")
        raise


@router.patch("/current")
async def update_current_subscription(
    body: SubscriptionUpdate,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    subscription = subscription_service.set_auto_renew(db, account.id, body.auto_renew)
    return serialize_subscription(subscription)
