"""
Background worker for credit-metered text jobs.

Picks job ids off the arq queue, claims each job (PENDING -> PROCESSING),
runs the text transformer and stores the output. A job that is no longer
PENDING when picked up, for example after a redelivery, is skipped.

Usage (with ARQ):
    arq creditflow.workers.job_processor.WorkerSettings
"""
from typing import Any, Optional
from uuid import UUID

import structlog
from arq.connections import RedisSettings

from creditflow.adapters.storage import LocalObjectStorage
from creditflow.adapters.text_transformer import OpenAITextTransformer
from creditflow.config import settings
from creditflow.database import AsyncSessionLocal, engine
from creditflow.middleware.logging import setup_logging
from creditflow.services.job_service import JobService

logger = structlog.get_logger(__name__)


async def startup(ctx: dict) -> None:
    """Build the collaborators shared by every task run in this worker."""
    setup_logging()
    ctx["session_factory"] = AsyncSessionLocal
    ctx["storage"] = LocalObjectStorage(settings.storage_root)
    ctx["transformer"] = OpenAITextTransformer(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        instructions=settings.transform_instructions,
    )
    logger.info("job_worker_started", queue=settings.job_queue_name)


async def shutdown(ctx: dict) -> None:
    await engine.dispose()
    logger.info("job_worker_stopped")


async def process_job(ctx: dict, job_id: str, options: Optional[dict[str, Any]] = None) -> Optional[str]:
    """
    ARQ task processing one job.

    Args:
        ctx: ARQ context populated by ``startup``
        job_id: Job identifier
        options: Transform options from the submission

    Returns:
        Final job status, or None when the job was skipped
    """
    log = logger.bind(job_id=job_id)
    log.info("job_processing_started")

    async with ctx["session_factory"]() as db:
        service = JobService(db, storage=ctx["storage"])
        status = await service.process_job(UUID(job_id), ctx["transformer"], options)

    log.info("job_processing_finished", status=status.value if status else None)
    return status.value if status else None


class WorkerSettings:
    """
    ARQ worker settings for the job pipeline.

    Usage:
        arq creditflow.workers.job_processor.WorkerSettings
    """

    functions = [process_job]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(settings.arq_redis_url)
    queue_name = settings.job_queue_name

    # The claim step makes redelivered jobs no-ops
    max_tries = 3
    job_timeout = 300
    keep_result = 86400
