"""Service for the money-movement transaction ledger."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models.transaction import Transaction, TransactionKind, TransactionStatus
from creditflow.schemas.provider_event import CheckoutSession, Charge, Invoice, PaymentIntent
from creditflow.services.credit_service import CreditService
from creditflow.services.customer_service import CustomerService

logger = structlog.get_logger(__name__)

# Checkout payment_status values meaning the funds have been collected
SETTLED_CHECKOUT_STATUSES = ("paid", "no_payment_required")


class TransactionService:
    """
    Service for recording provider money movements.

    The ledger is append-mostly and does not deduplicate by provider
    reference: a reference revisited with new information (a later refund,
    a retried charge) is a new economic event. Duplicate webhook deliveries
    are filtered earlier by the idempotency ledger.
    """

    def __init__(self, db: AsyncSession):
        """Initialize transaction service with database session."""
        self.db = db

    async def record(
        self,
        user_id: str,
        provider_payment_ref: Optional[str],
        kind: TransactionKind,
        amount: Decimal,
        currency: str,
        status: TransactionStatus,
        description: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        failure_reason: Optional[str] = None,
        fee: Optional[Decimal] = None,
        net_amount: Optional[Decimal] = None,
        processed_at: Optional[datetime] = None,
        provider_session_ref: Optional[str] = None,
    ) -> Transaction:
        """
        Insert a new transaction row.

        Args:
            user_id: Owning user
            provider_payment_ref: Provider payment intent / invoice / charge id
            kind: Kind of money movement
            amount: Amount in major currency units
            currency: ISO currency code (stored upper-case)
            status: Transaction status
            description: Human-readable description
            metadata: Provider details kept for reconciliation
            failure_reason: Why the payment failed, for failed rows
            fee: Provider fee, when known
            net_amount: Amount after fees, when known
            processed_at: When the provider settled the movement
            provider_session_ref: Checkout session id, for checkout rows

        Returns:
            The created transaction
        """
        transaction = Transaction(
            user_id=user_id,
            provider_payment_ref=provider_payment_ref,
            provider_session_ref=provider_session_ref,
            kind=kind,
            amount=amount,
            currency=currency.upper(),
            status=status,
            description=description,
            extra_metadata=metadata,
            failure_reason=failure_reason,
            provider_fee=fee,
            net_amount=net_amount,
            processed_at=processed_at,
        )

        self.db.add(transaction)
        await self.db.flush()

        logger.info(
            "transaction_recorded",
            transaction_id=str(transaction.id),
            user_id=user_id,
            provider_payment_ref=provider_payment_ref,
            kind=kind.value,
            status=status.value,
            amount=str(amount),
            currency=transaction.currency,
        )

        return transaction

    async def update_status_by_provider_ref(
        self,
        provider_payment_ref: str,
        status: TransactionStatus,
        failure_reason: Optional[str] = None,
    ) -> Optional[Transaction]:
        """
        Update the most recent transaction for a provider reference.

        Args:
            provider_payment_ref: Provider payment reference
            status: New status
            failure_reason: Stored when the new status is FAILED

        Returns:
            The updated transaction, or None when nothing matches
        """
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.provider_payment_ref == provider_payment_ref)
            .order_by(Transaction.created_at.desc())
            .limit(1)
        )
        transaction = result.scalar_one_or_none()

        if transaction is None:
            logger.warning("transaction_not_found", provider_payment_ref=provider_payment_ref)
            return None

        transaction.status = status
        if status == TransactionStatus.FAILED and failure_reason:
            transaction.failure_reason = failure_reason
        await self.db.flush()

        logger.info(
            "transaction_status_updated",
            transaction_id=str(transaction.id),
            provider_payment_ref=provider_payment_ref,
            status=status.value,
        )
        return transaction

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Transaction]:
        """List a user's transactions, newest first."""
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # Provider event handlers

    async def _resolve_user(self, customer_ref: Optional[str], source_id: str) -> Optional[str]:
        user_id = await CustomerService(self.db).user_id_for(customer_ref)
        if user_id is None:
            logger.warning("billing_customer_unknown", customer_ref=customer_ref, source_id=source_id)
        return user_id

    async def handle_checkout_session_completed(self, session: CheckoutSession) -> None:
        """
        Record a completed checkout and apply any purchased credit top-up.

        A session without a known customer falls back to ``client_reference_id``
        and links that user to the customer for later events.
        Credits are granted only once the session reports its payment collected;
        an unpaid session is recorded as PENDING.
        """
        customers = CustomerService(self.db)
        user_id = await customers.user_id_for(session.customer)
        if user_id is None and session.client_reference_id:
            user_id = session.client_reference_id
            if session.customer:
                await customers.link(user_id, session.customer, email=session.customer_email)

        if user_id is None:
            logger.warning("billing_customer_unknown", customer_ref=session.customer, source_id=session.id)
            return

        settled = session.payment_status in SETTLED_CHECKOUT_STATUSES
        kind = TransactionKind.SUBSCRIPTION if session.mode == "subscription" else TransactionKind.PAYMENT
        await self.record(
            user_id=user_id,
            provider_payment_ref=session.payment_intent or session.subscription or session.id,
            provider_session_ref=session.id,
            kind=kind,
            amount=session.amount_total,
            currency=session.currency,
            status=TransactionStatus.COMPLETED if settled else TransactionStatus.PENDING,
            description=f"Checkout session completed - {session.mode}",
            metadata={
                "session_id": session.id,
                "mode": session.mode,
                "payment_status": session.payment_status,
                "customer_email": session.customer_email,
            },
            processed_at=datetime.utcnow() if settled else None,
        )

        credits = _purchased_credits(session.metadata)
        if credits and not settled:
            # Delayed methods (bank debits) complete checkout before funds arrive
            logger.info("checkout_top_up_deferred", session_id=session.id, payment_status=session.payment_status)
        elif credits:
            await CreditService(self.db).add_credits(user_id, credits, reason="top_up")

    async def handle_invoice_payment_succeeded(self, invoice: Invoice) -> None:
        """Record a paid subscription invoice."""
        user_id = await self._resolve_user(invoice.customer, invoice.id)
        if user_id is None:
            return

        await self.record(
            user_id=user_id,
            provider_payment_ref=invoice.payment_intent or invoice.id,
            kind=TransactionKind.SUBSCRIPTION,
            amount=invoice.amount_paid,
            currency=invoice.currency,
            status=TransactionStatus.COMPLETED,
            description=f"Invoice payment succeeded - {invoice.number}",
            metadata={
                "invoice_id": invoice.id,
                "invoice_number": invoice.number,
                "subscription_id": invoice.subscription_ref,
                "period_start": _isoformat(invoice.period_start),
                "period_end": _isoformat(invoice.period_end),
            },
            net_amount=invoice.amount_paid,
            processed_at=datetime.utcnow(),
        )

    async def handle_invoice_payment_failed(self, invoice: Invoice) -> None:
        """Record a failed subscription charge."""
        logger.warning(
            "invoice_payment_failed",
            invoice_id=invoice.id,
            customer_ref=invoice.customer,
            subscription_ref=invoice.subscription_ref,
            attempt_count=invoice.attempt_count,
            amount_due=str(invoice.amount_due),
        )
        user_id = await self._resolve_user(invoice.customer, invoice.id)
        if user_id is None:
            return

        await self.record(
            user_id=user_id,
            provider_payment_ref=invoice.payment_intent or invoice.id,
            kind=TransactionKind.SUBSCRIPTION,
            amount=invoice.amount_due,
            currency=invoice.currency,
            status=TransactionStatus.FAILED,
            description=f"Subscription payment failed: {invoice.id}",
            metadata={
                "invoice_id": invoice.id,
                "subscription_id": invoice.subscription_ref,
                "attempt_count": invoice.attempt_count,
                "next_payment_attempt": _isoformat(invoice.next_payment_attempt),
            },
            failure_reason=invoice.failure_reason,
        )

    async def handle_payment_intent_succeeded(self, intent: PaymentIntent) -> None:
        """Record a one-off payment. Invoice payments are recorded by the invoice event."""
        if intent.invoice:
            logger.info("payment_intent_for_invoice_skipped", payment_intent=intent.id, invoice_id=intent.invoice)
            return

        user_id = await self._resolve_user(intent.customer, intent.id)
        if user_id is None:
            return

        await self.record(
            user_id=user_id,
            provider_payment_ref=intent.id,
            kind=TransactionKind.PAYMENT,
            amount=intent.amount,
            currency=intent.currency,
            status=TransactionStatus.COMPLETED,
            description=intent.description or "Payment completed",
            metadata={"payment_method_id": intent.payment_method, "metadata": intent.metadata},
            net_amount=intent.amount,
            processed_at=datetime.utcnow(),
        )

    async def handle_payment_intent_failed(self, intent: PaymentIntent) -> None:
        user_id = await self._resolve_user(intent.customer, intent.id)
        if user_id is None:
            return

        error = intent.last_payment_error or {}
        await self.record(
            user_id=user_id,
            provider_payment_ref=intent.id,
            kind=TransactionKind.PAYMENT,
            amount=intent.amount,
            currency=intent.currency,
            status=TransactionStatus.FAILED,
            description=intent.description or "Payment failed",
            metadata={
                "payment_method_id": intent.payment_method,
                "failure_code": error.get("code"),
                "metadata": intent.metadata,
            },
            failure_reason=intent.failure_reason,
        )

    async def handle_payment_intent_canceled(self, intent: PaymentIntent) -> None:
        user_id = await self._resolve_user(intent.customer, intent.id)
        if user_id is None:
            return

        await self.record(
            user_id=user_id,
            provider_payment_ref=intent.id,
            kind=TransactionKind.PAYMENT,
            amount=intent.amount,
            currency=intent.currency,
            status=TransactionStatus.CANCELLED,
            description=intent.description or "Payment canceled",
            metadata={
                "payment_method_id": intent.payment_method,
                "cancellation_reason": intent.cancellation_reason,
                "metadata": intent.metadata,
            },
        )

    async def handle_charge_refunded(self, charge: Charge) -> None:
        """Record a refund for the charge's latest refund (or the refunded total)."""
        user_id = await self._resolve_user(charge.customer, charge.id)
        if user_id is None:
            return

        refund = charge.latest_refund
        await self.record(
            user_id=user_id,
            provider_payment_ref=charge.payment_intent or charge.id,
            kind=TransactionKind.REFUND,
            amount=refund.amount if refund else charge.amount_refunded,
            currency=charge.currency,
            status=TransactionStatus.REFUNDED,
            description=f"Refund for charge {charge.id}",
            metadata={
                "original_charge_id": charge.id,
                "refund_id": refund.id if refund else None,
                "refund_reason": refund.reason if refund else None,
                "refund_status": refund.status if refund else None,
            },
            processed_at=datetime.utcnow(),
        )


def _purchased_credits(metadata: Optional[dict[str, Any]]) -> int:
    """Credits bought through checkout, from the session's ``credits`` metadata."""
    raw = (metadata or {}).get("credits")
    try:
        credits = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(credits, 0)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
