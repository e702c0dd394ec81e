"""Structured error response schemas."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error envelope returned by the job, credit and ledger endpoints."""

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'InsufficientCredits')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(
        default=None, description="Detailed error information (for validation errors)"
    )
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")


# Error codes enum for consistency
class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (400)
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_AMOUNT = "invalid_amount"
    VALIDATION_ERROR = "validation_error"

    # Webhook errors (400, 503)
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED_EVENT = "malformed_event"
    PAYMENTS_NOT_CONFIGURED = "payments_not_configured"

    # Business logic errors (402)
    INSUFFICIENT_CREDITS = "insufficient_credits"

    # Not found errors (404)
    JOB_NOT_FOUND = "job_not_found"

    # External service errors (503)
    ENQUEUE_FAILED = "enqueue_failed"
    STORAGE_ERROR = "storage_error"
    DATABASE_ERROR = "database_error"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.INSUFFICIENT_CREDITS: "Top up credits before submitting another job.",
    ErrorCode.ENQUEUE_FAILED: "The job was not started and its credits were returned. Retry shortly.",
    ErrorCode.STORAGE_ERROR: "Job storage is temporarily unavailable. Retry shortly.",
    ErrorCode.JOB_NOT_FOUND: "Verify the job ID is correct.",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}
