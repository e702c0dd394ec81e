"""FastAPI dependencies for database sessions and pipeline collaborators."""
from functools import lru_cache
from typing import AsyncGenerator

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.adapters.queue import ArqJobQueue
from creditflow.adapters.storage import LocalObjectStorage
from creditflow.adapters.stripe_adapter import StripeAdapter
from creditflow.config import settings
from creditflow.database import AsyncSessionLocal
from creditflow.exceptions import PaymentsNotConfigured
from creditflow.services.webhook_dispatcher import WebhookDispatcher

logger = structlog.get_logger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Yields:
        AsyncSession: Database session for the request lifecycle
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@lru_cache
def _build_webhook_dispatcher() -> WebhookDispatcher:
    adapter = StripeAdapter(
        webhook_secret=settings.stripe_webhook_secret,
        tolerance=settings.stripe_webhook_tolerance_seconds,
        api_key=settings.stripe_secret_key,
    )
    return WebhookDispatcher(
        adapter,
        logging_enabled=settings.stripe_webhook_logging_enabled,
    )


def get_webhook_dispatcher() -> WebhookDispatcher:
    """
    Webhook dispatcher dependency.

    Raises:
        PaymentsNotConfigured: If payments are disabled or no secret key is set
    """
    if not settings.payments_configured:
        logger.warning("payments_not_configured", payments_mode=settings.payments_mode)
        raise PaymentsNotConfigured("Payment provider integration is not configured")
    return _build_webhook_dispatcher()


@lru_cache
def get_job_queue() -> ArqJobQueue:
    """Process-wide arq queue; the Redis pool is opened on first enqueue."""
    return ArqJobQueue(settings.arq_redis_url, settings.job_queue_name)


@lru_cache
def get_object_storage() -> LocalObjectStorage:
    """Object storage for job input and output."""
    return LocalObjectStorage(settings.storage_root)
