"""Job queue backed by arq/Redis."""
from typing import Any, Optional

import structlog
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

logger = structlog.get_logger(__name__)


class ArqJobQueue:
    """
    Hands job ids to the arq worker.

    The job id doubles as the arq job id, so enqueueing the same job twice
    while it is queued is a no-op on the Redis side.
    """

    FUNCTION_NAME = "process_job"

    def __init__(self, redis_url: str, queue_name: str):
        """
        Initialize queue.

        Args:
            redis_url: Redis DSN for arq
            queue_name: arq queue the worker listens on
        """
        self.redis_settings = RedisSettings.from_dsn(redis_url)
        self.queue_name = queue_name
        self._pool: Optional[ArqRedis] = None

    async def _get_pool(self) -> ArqRedis:
        if self._pool is None:
            self._pool = await create_pool(self.redis_settings)
        return self._pool

    async def enqueue(self, job_id: str, metadata: Optional[dict[str, Any]] = None) -> None:
        """
        Enqueue a job for processing.

        Args:
            job_id: Job identifier
            metadata: Extra keyword arguments for the worker task

        Raises:
            Exception: Any Redis/connection error; callers treat it as an enqueue failure
        """
        pool = await self._get_pool()
        await pool.enqueue_job(
            self.FUNCTION_NAME,
            job_id,
            _job_id=job_id,
            _queue_name=self.queue_name,
            **(metadata or {}),
        )
        logger.info("job_enqueued", job_id=job_id, queue=self.queue_name)

    async def close(self) -> None:
        """Close the Redis pool, if one was opened."""
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
