"""Idempotency ledger for inbound provider webhook events."""
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.exceptions import DuplicateEvent
from creditflow.models.webhook_event import WebhookEvent, WebhookProcessingStatus

logger = structlog.get_logger(__name__)


class WebhookService:
    """
    Durable record of every inbound provider event.

    Exactly one row exists per provider event id. The unique constraint on
    ``provider_event_id`` is the at-most-once boundary: a second delivery of
    the same event surfaces as ``DuplicateEvent`` instead of a new row.
    """

    MAX_ERROR_LENGTH = 500

    def __init__(self, db: AsyncSession, logging_enabled: bool = True):
        """
        Initialize webhook service.

        Args:
            db: Database session
            logging_enabled: When False every call is a no-op and duplicate
                deliveries are not detected
        """
        self.db = db
        self.logging_enabled = logging_enabled

    async def get_event(self, provider_event_id: str) -> Optional[WebhookEvent]:
        """Load a ledger record by provider event id."""
        result = await self.db.execute(
            select(WebhookEvent).where(WebhookEvent.provider_event_id == provider_event_id)
        )
        return result.scalar_one_or_none()

    async def log_event(
        self,
        provider_event_id: str,
        event_type: str,
        raw_payload: dict[str, Any],
    ) -> Optional[WebhookEvent]:
        """
        Insert a PENDING record for a newly received event and commit it.

        The record is committed before any handler runs so that a crash
        mid-dispatch leaves it visible as PENDING.

        Args:
            provider_event_id: Provider event id (evt_...)
            event_type: Provider event type
            raw_payload: Verified event payload

        Returns:
            The created record, or None when logging is disabled

        Raises:
            DuplicateEvent: If the event id is already in the ledger
        """
        if not self.logging_enabled:
            return None

        existing = await self.get_event(provider_event_id)
        if existing is not None:
            raise DuplicateEvent(existing)

        event = WebhookEvent(
            provider_event_id=provider_event_id,
            event_type=event_type,
            processing_status=WebhookProcessingStatus.PENDING,
            retry_count=0,
            raw_payload=raw_payload,
        )
        self.db.add(event)

        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent delivery of the same event won the insert
            await self.db.rollback()
            existing = await self.get_event(provider_event_id)
            if existing is None:
                raise
            raise DuplicateEvent(existing)

        logger.info("webhook_event_logged", provider_event_id=provider_event_id, event_type=event_type)
        return event

    async def update_status(
        self,
        provider_event_id: str,
        status: WebhookProcessingStatus,
        error_message: Optional[str] = None,
    ) -> Optional[WebhookEvent]:
        """
        Move a record to COMPLETED, FAILED or RETRYING.

        FAILED and RETRYING transitions increment ``retry_count``.

        Args:
            provider_event_id: Provider event id
            status: New processing status
            error_message: Captured handler error, for FAILED

        Returns:
            The updated record, or None when logging is disabled or the record is missing
        """
        if not self.logging_enabled:
            return None

        event = await self.get_event(provider_event_id)
        if event is None:
            logger.warning("webhook_event_not_found", provider_event_id=provider_event_id)
            return None

        event.processing_status = status
        if status == WebhookProcessingStatus.COMPLETED:
            event.processed_at = datetime.utcnow()
            event.error_message = None
        elif status in (WebhookProcessingStatus.FAILED, WebhookProcessingStatus.RETRYING):
            event.retry_count = (event.retry_count or 0) + 1
            if error_message is not None:
                event.error_message = error_message[: self.MAX_ERROR_LENGTH]
        await self.db.flush()

        logger.info(
            "webhook_event_status_updated",
            provider_event_id=provider_event_id,
            status=status.value,
            retry_count=event.retry_count,
        )
        return event
