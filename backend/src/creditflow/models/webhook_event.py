"""Webhook event model: the idempotency ledger for inbound provider events."""
import enum

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from creditflow.models.base import Base


class WebhookProcessingStatus(enum.Enum):
    """Processing status of an inbound webhook event."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class WebhookEvent(Base):
    """
    Durable record of an inbound provider event.

    Exactly one row per provider event id; the unique constraint on
    provider_event_id is what makes duplicate deliveries detectable.
    """

    __tablename__ = "webhook_events"

    provider_event_id = Column(String, nullable=False, unique=True, index=True)
    event_type = Column(String, nullable=False, index=True)
    processing_status = Column(
        SQLEnum(WebhookProcessingStatus),
        nullable=False,
        default=WebhookProcessingStatus.PENDING,
        index=True,
    )
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    raw_payload = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    processed_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<WebhookEvent(provider_event_id={self.provider_event_id}, event_type={self.event_type}, "
            f"status={self.processing_status.value}, retries={self.retry_count})>"
        )
