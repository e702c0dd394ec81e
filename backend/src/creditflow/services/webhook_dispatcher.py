"""Routes verified provider events to the ledgers behind the idempotency gate."""
import enum
from typing import get_args

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.adapters.stripe_adapter import StripeAdapter
from creditflow.exceptions import DuplicateEvent
from creditflow.metrics import (
    webhook_events_duplicate_total,
    webhook_events_failed_total,
    webhook_events_received_total,
    webhook_events_unhandled_total,
)
from creditflow.models.webhook_event import WebhookProcessingStatus
from creditflow.schemas.provider_event import (
    ChargeRefunded,
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    InvoiceUpcoming,
    KnownEvent,
    PaymentIntentCanceled,
    PaymentIntentCreated,
    PaymentIntentFailed,
    PaymentIntentSucceeded,
    PaymentMethodAttached,
    ProviderEvent,
    SubscriptionCreated,
    SubscriptionDeleted,
    SubscriptionTrialWillEnd,
    SubscriptionUpdated,
    UnhandledEvent,
    parse_provider_event,
)
from creditflow.services.subscription_service import SubscriptionService
from creditflow.services.transaction_service import TransactionService
from creditflow.services.webhook_service import WebhookService

logger = structlog.get_logger(__name__)


class DispatchOutcome(str, enum.Enum):
    """How a delivered event was acknowledged."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    UNHANDLED = "unhandled"


# Event model -> handlers, in execution order. An empty tuple means log only.
EVENT_ROUTES = {
    CheckoutSessionCompleted: ((TransactionService, "handle_checkout_session_completed"),),
    InvoicePaymentSucceeded: ((TransactionService, "handle_invoice_payment_succeeded"),),
    InvoicePaymentFailed: (
        (TransactionService, "handle_invoice_payment_failed"),
        (SubscriptionService, "handle_invoice_payment_failed"),
    ),
    InvoiceUpcoming: (),
    PaymentMethodAttached: (),
    SubscriptionCreated: ((SubscriptionService, "handle_subscription_created"),),
    SubscriptionUpdated: ((SubscriptionService, "handle_subscription_updated"),),
    SubscriptionDeleted: ((SubscriptionService, "handle_subscription_deleted"),),
    SubscriptionTrialWillEnd: ((SubscriptionService, "handle_trial_will_end"),),
    PaymentIntentCreated: (),
    PaymentIntentSucceeded: ((TransactionService, "handle_payment_intent_succeeded"),),
    PaymentIntentFailed: ((TransactionService, "handle_payment_intent_failed"),),
    PaymentIntentCanceled: ((TransactionService, "handle_payment_intent_canceled"),),
    ChargeRefunded: ((TransactionService, "handle_charge_refunded"),),
}


class WebhookDispatcher:
    """
    Verifies, de-duplicates and routes inbound provider events.

    One event moves through ``received -> (duplicate? stop) -> pending ->
    dispatched -> completed | failed``. Handler side effects and the
    COMPLETED mark commit together; on any handler error the side effects are
    rolled back, the record is marked FAILED and the original error is
    re-raised so the provider redelivers.

    Redelivery of an already-logged event id:
        - COMPLETED: acknowledged as a duplicate, handlers do not run.
        - PENDING, RETRYING or FAILED: marked RETRYING and dispatched again.
          A crash between logging and completion leaves the record PENDING
          with no side effects, so the redelivery is what applies it.
    """

    def __init__(self, adapter: StripeAdapter, logging_enabled: bool = True):
        """
        Initialize dispatcher.

        Args:
            adapter: Verifies signatures and decodes payloads
            logging_enabled: Persist events to the idempotency ledger. When
                False, duplicates are not detected and handlers always run.

        Raises:
            RuntimeError: If a known event type has no route
        """
        missing = [model.__name__ for model in get_args(KnownEvent) if model not in EVENT_ROUTES]
        if missing:
            raise RuntimeError(f"No webhook route for: {', '.join(missing)}")

        self.adapter = adapter
        self.logging_enabled = logging_enabled

    async def dispatch(self, db: AsyncSession, payload: bytes, signature: str) -> DispatchOutcome:
        """
        Verify and apply one delivered event.

        Args:
            db: Database session; committed by the dispatcher
            payload: Raw request body
            signature: Authenticity header value

        Returns:
            How the event was acknowledged

        Raises:
            InvalidSignature: If verification fails or no secret is configured
            MalformedEvent: If the verified payload is not a valid event
            Exception: Any handler error, after the record is marked FAILED
        """
        raw_event = await self.adapter.construct_webhook_event(payload, signature)
        event = parse_provider_event(raw_event)

        webhook_events_received_total.labels(event_type=event.type).inc()
        log = logger.bind(provider_event_id=event.id, event_type=event.type)
        log.info("webhook_event_received")

        ledger = WebhookService(db, logging_enabled=self.logging_enabled)
        try:
            await ledger.log_event(event.id, event.type, raw_event)
        except DuplicateEvent as duplicate:
            if duplicate.record.processing_status == WebhookProcessingStatus.COMPLETED:
                webhook_events_duplicate_total.labels(event_type=event.type).inc()
                log.info("webhook_event_duplicate", status=duplicate.record.processing_status.value)
                return DispatchOutcome.DUPLICATE

            await ledger.update_status(event.id, WebhookProcessingStatus.RETRYING)
            await db.commit()
            log.info("webhook_event_redispatching", retry_count=duplicate.record.retry_count)

        try:
            outcome = await self._route(db, event)
            await ledger.update_status(event.id, WebhookProcessingStatus.COMPLETED)
            await db.commit()
        except Exception as e:
            await db.rollback()
            webhook_events_failed_total.labels(event_type=event.type).inc()
            log.error("webhook_handler_failed", error=str(e), exc_info=True)
            await self._mark_failed(db, ledger, event.id, e)
            raise

        log.info("webhook_event_completed", outcome=outcome.value)
        return outcome

    async def _route(self, db: AsyncSession, event: ProviderEvent) -> DispatchOutcome:
        if isinstance(event, UnhandledEvent):
            webhook_events_unhandled_total.labels(event_type=event.type).inc()
            logger.info("webhook_event_unhandled", provider_event_id=event.id, event_type=event.type)
            return DispatchOutcome.UNHANDLED

        handlers = EVENT_ROUTES[type(event)]
        if not handlers:
            logger.info("webhook_event_log_only", provider_event_id=event.id, event_type=event.type)

        for service_cls, method_name in handlers:
            handler = getattr(service_cls(db), method_name)
            await handler(event.data.object)

        return DispatchOutcome.PROCESSED

    @staticmethod
    async def _mark_failed(db: AsyncSession, ledger: WebhookService, provider_event_id: str, error: Exception) -> None:
        try:
            await ledger.update_status(provider_event_id, WebhookProcessingStatus.FAILED, error_message=str(error))
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("webhook_failure_not_recorded", provider_event_id=provider_event_id)
