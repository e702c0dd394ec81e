"""Subscription read API endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.deps import get_db
from creditflow.schemas.subscription import Subscription, SubscriptionList
from creditflow.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/users", tags=["subscriptions"])


@router.get("/{user_id}/subscriptions", response_model=SubscriptionList)
async def list_user_subscriptions(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionList:
    """List a user's subscriptions, newest first."""
    subscriptions = await SubscriptionService(db).list_for_user(user_id)
    return SubscriptionList(
        items=[Subscription.model_validate(s) for s in subscriptions],
        total=len(subscriptions),
    )
