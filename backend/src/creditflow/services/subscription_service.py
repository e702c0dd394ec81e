"""Subscription state machine driven by provider lifecycle events."""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models.subscription import Subscription, SubscriptionStatus
from creditflow.schemas.provider_event import Invoice, ProviderSubscription
from creditflow.services.customer_service import CustomerService

logger = structlog.get_logger(__name__)

_PROVIDER_STATUSES = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.UNPAID,
    "incomplete": SubscriptionStatus.INCOMPLETE,
}


def map_provider_status(status: Optional[str]) -> SubscriptionStatus:
    """Map a provider subscription status to ours; unknown statuses map to ACTIVE."""
    return _PROVIDER_STATUSES.get(status or "", SubscriptionStatus.ACTIVE)


class SubscriptionService:
    """
    Service applying provider subscription events to local records.

    Every transition comes from an inbound event; nothing here infers state
    on its own. Updates are last-write-wins per field with no event-ordering
    check, so a stale "updated" delivery can overwrite newer state.
    """

    def __init__(self, db: AsyncSession):
        """Initialize subscription service with database session."""
        self.db = db

    async def get_by_provider_ref(self, provider_subscription_ref: str) -> Optional[Subscription]:
        """Load a subscription by provider subscription id."""
        result = await self.db.execute(
            select(Subscription).where(Subscription.provider_subscription_ref == provider_subscription_ref)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str) -> list[Subscription]:
        """List a user's subscriptions, newest first."""
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc())
        )
        return list(result.scalars().all())

    async def handle_subscription_created(self, provider_sub: ProviderSubscription) -> Optional[Subscription]:
        """
        Insert a subscription from a created event.

        The owning user is resolved from the customer mapping, falling back to
        ``metadata.user_id``. Re-applying the same event updates the existing
        row in place rather than inserting a second one.

        Args:
            provider_sub: Provider subscription object

        Returns:
            The stored subscription, or None when the customer is unknown
        """
        user_id = await CustomerService(self.db).user_id_for(provider_sub.customer)
        if user_id is None:
            user_id = (provider_sub.metadata or {}).get("user_id")
        if not user_id:
            logger.warning(
                "billing_customer_unknown",
                customer_ref=provider_sub.customer,
                source_id=provider_sub.id,
            )
            return None

        subscription = await self.get_by_provider_ref(provider_sub.id)
        if subscription is None:
            subscription = Subscription(user_id=user_id, provider_subscription_ref=provider_sub.id)
            self.db.add(subscription)

        price = provider_sub.price
        subscription.status = map_provider_status(provider_sub.status)
        subscription.plan_ref = price.id if price else None
        subscription.plan_name = price.plan_name if price else "Unknown Plan"
        subscription.amount = price.unit_amount if price else 0
        subscription.currency = price.currency if price else "usd"
        subscription.interval = price.recurring.interval if price and price.recurring else "month"
        subscription.interval_count = price.recurring.interval_count if price and price.recurring else 1
        subscription.failed_payment_count = subscription.failed_payment_count or 0
        self._apply_period(subscription, provider_sub)
        self._apply_trial(subscription, provider_sub)
        subscription.extra_metadata = provider_sub.metadata

        await self.db.flush()

        logger.info(
            "subscription_created",
            subscription_id=str(subscription.id),
            provider_subscription_ref=provider_sub.id,
            user_id=user_id,
            plan_ref=subscription.plan_ref,
            status=subscription.status.value,
        )
        return subscription

    async def handle_subscription_updated(self, provider_sub: ProviderSubscription) -> Optional[Subscription]:
        """
        Overwrite status, period and trial fields from an updated event.

        A PAST_DUE subscription that comes back ACTIVE has its failed payment
        count reset to zero.
        """
        subscription = await self.get_by_provider_ref(provider_sub.id)
        if subscription is None:
            logger.warning("subscription_not_found", provider_subscription_ref=provider_sub.id)
            return None

        previous_status = subscription.status
        subscription.status = map_provider_status(provider_sub.status)
        self._apply_period(subscription, provider_sub)
        self._apply_trial(subscription, provider_sub)

        if provider_sub.canceled_at:
            subscription.canceled_at = provider_sub.canceled_at
        if provider_sub.ended_at:
            subscription.ended_at = provider_sub.ended_at

        if previous_status == SubscriptionStatus.PAST_DUE and subscription.status == SubscriptionStatus.ACTIVE:
            subscription.failed_payment_count = 0

        subscription.extra_metadata = provider_sub.metadata
        await self.db.flush()

        logger.info(
            "subscription_updated",
            provider_subscription_ref=provider_sub.id,
            user_id=subscription.user_id,
            previous_status=previous_status.value,
            status=subscription.status.value,
            failed_payment_count=subscription.failed_payment_count,
        )
        return subscription

    async def handle_subscription_deleted(self, provider_sub: ProviderSubscription) -> Optional[Subscription]:
        """Cancel a subscription, stamping cancel/end times when the provider omitted them."""
        subscription = await self.get_by_provider_ref(provider_sub.id)
        if subscription is None:
            logger.warning("subscription_not_found", provider_subscription_ref=provider_sub.id)
            return None

        now = datetime.utcnow()
        subscription.status = SubscriptionStatus.CANCELED
        subscription.canceled_at = provider_sub.canceled_at or now
        subscription.ended_at = provider_sub.ended_at or now
        await self.db.flush()

        logger.info(
            "subscription_canceled",
            provider_subscription_ref=provider_sub.id,
            user_id=subscription.user_id,
            canceled_at=subscription.canceled_at.isoformat(),
        )
        return subscription

    async def handle_trial_will_end(self, provider_sub: ProviderSubscription) -> None:
        """Notification hook only; subscription state is left untouched."""
        subscription = await self.get_by_provider_ref(provider_sub.id)
        logger.info(
            "subscription_trial_will_end",
            provider_subscription_ref=provider_sub.id,
            user_id=subscription.user_id if subscription else None,
            trial_end=_isoformat(provider_sub.trial_end),
        )

    async def handle_invoice_payment_failed(self, invoice: Invoice) -> Optional[Subscription]:
        """
        Count a failed subscription charge.

        The first failure forces PAST_DUE even if the provider has not yet
        reported that status.
        """
        subscription_ref = invoice.subscription_ref
        if not subscription_ref:
            return None

        subscription = await self.get_by_provider_ref(subscription_ref)
        if subscription is None:
            logger.warning("subscription_not_found", provider_subscription_ref=subscription_ref)
            return None

        subscription.failed_payment_count = (subscription.failed_payment_count or 0) + 1
        if subscription.failed_payment_count == 1:
            subscription.status = SubscriptionStatus.PAST_DUE
        await self.db.flush()

        logger.warning(
            "subscription_payment_failed",
            provider_subscription_ref=subscription_ref,
            user_id=subscription.user_id,
            failed_payment_count=subscription.failed_payment_count,
            status=subscription.status.value,
            amount_due=str(invoice.amount_due),
        )
        return subscription

    @staticmethod
    def _apply_period(subscription: Subscription, provider_sub: ProviderSubscription) -> None:
        if provider_sub.period_start:
            subscription.current_period_start = provider_sub.period_start
        if provider_sub.period_end:
            subscription.current_period_end = provider_sub.period_end

    @staticmethod
    def _apply_trial(subscription: Subscription, provider_sub: ProviderSubscription) -> None:
        if provider_sub.trial_start and provider_sub.trial_end:
            subscription.trial_start = provider_sub.trial_start
            subscription.trial_end = provider_sub.trial_end


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
