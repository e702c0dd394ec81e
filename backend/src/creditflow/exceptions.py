"""Domain exceptions raised by the credit and webhook services."""
from typing import Any, Optional

from creditflow.schemas.error import ErrorCode


class CreditFlowError(Exception):
    """Base exception carrying a machine-readable error code."""

    code: str = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class InvalidSignature(CreditFlowError):
    """Webhook payload failed authenticity verification."""

    code = ErrorCode.INVALID_SIGNATURE


class PaymentsNotConfigured(CreditFlowError):
    """Payment provider integration is disabled or missing its secrets."""

    code = ErrorCode.PAYMENTS_NOT_CONFIGURED


class MalformedEvent(CreditFlowError):
    """Verified payload could not be parsed into a provider event."""

    code = ErrorCode.MALFORMED_EVENT


class InsufficientCredits(CreditFlowError):
    """User cannot afford the requested cost. A rejection, not a system fault."""

    code = ErrorCode.INSUFFICIENT_CREDITS

    def __init__(self, user_id: str, cost: int, balance: int = 0):
        self.user_id = user_id
        self.cost = cost
        self.balance = balance
        super().__init__(
            f"Insufficient credits. Required: {cost}, available: {balance}",
            context={"user_id": user_id, "cost": cost, "balance": balance},
        )


class EnqueueFailure(CreditFlowError):
    """Job could not be handed to the queue; the reservation has been rolled back."""

    code = ErrorCode.ENQUEUE_FAILED

    def __init__(self, job_id: str, original: BaseException):
        self.job_id = job_id
        self.original = original
        super().__init__(
            f"Job {job_id} could not be queued: {original}",
            context={"job_id": job_id},
        )


class JobNotFound(CreditFlowError):
    """Referenced job does not exist."""

    code = ErrorCode.JOB_NOT_FOUND


class StorageError(CreditFlowError):
    """Object storage read or write failed."""

    code = ErrorCode.STORAGE_ERROR


class DuplicateEvent(Exception):
    """
    Provider event id is already in the idempotency ledger.

    Not an error: the dispatcher uses it to decide whether to skip or
    re-attempt a redelivered event.
    """

    def __init__(self, record: Any):
        self.record = record
        super().__init__(f"Webhook event {record.provider_event_id} already logged")
