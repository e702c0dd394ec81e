"""Credit-metered job pipeline."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.exceptions import EnqueueFailure, JobNotFound
from creditflow.metrics import (
    job_rollback_step_failed_total,
    jobs_enqueue_failed_total,
    jobs_finished_total,
    jobs_submitted_total,
)
from creditflow.models.job import Job, JobStatus
from creditflow.services.credit_service import CreditService

logger = structlog.get_logger(__name__)


class JobService:
    """
    Service for submitting and advancing credit-metered jobs.

    Credit policy:
        - A job that fails before reaching PROCESSING (enqueue failure) has
          its reserved credits refunded exactly once.
        - A job that reaches PROCESSING consumes its credits regardless of
          the outcome; the cost pays for the attempt.
    """

    def __init__(self, db: AsyncSession, queue: Any = None, storage: Any = None):
        """
        Initialize job service.

        Args:
            db: Database session; committed by this service
            queue: Object with ``async enqueue(job_id, metadata)``
            storage: Object with ``async put(path, content)`` and ``async get(reference)``
        """
        self.db = db
        self.queue = queue
        self.storage = storage

    async def submit_job(
        self,
        user_id: str,
        input_text: str,
        cost: int = 1,
        options: Optional[dict[str, Any]] = None,
    ) -> Job:
        """
        Reserve credits, persist a PENDING job and enqueue it.

        Args:
            user_id: Paying user
            input_text: Text to transform
            cost: Credits to reserve
            options: Transform options forwarded to the worker

        Returns:
            The PENDING job

        Raises:
            InsufficientCredits: If the user cannot afford cost; nothing is created
            StorageError: If the input cannot be stored; the reservation is rolled back
            EnqueueFailure: If the queue rejects the job; the job is marked FAILED
                and the credits refunded
        """
        await CreditService(self.db).deduct_credits(user_id, cost)

        job_id = uuid4()
        try:
            input_ref = await self.storage.put(f"jobs/{job_id}/input.txt", input_text)
        except Exception:
            await self.db.rollback()
            raise

        job = Job(
            id=job_id,
            user_id=user_id,
            input_ref=input_ref,
            cost=cost,
            status=JobStatus.PENDING,
        )
        self.db.add(job)
        await self.db.commit()

        try:
            await self.queue.enqueue(str(job_id), {"options": options or {}})
        except Exception as e:
            jobs_enqueue_failed_total.inc()
            logger.error("job_enqueue_failed", job_id=str(job_id), user_id=user_id, error=str(e))
            await self._roll_back_reservation(job_id, user_id, cost, e)
            raise EnqueueFailure(str(job_id), e) from e

        jobs_submitted_total.inc()
        logger.info("job_submitted", job_id=str(job_id), user_id=user_id, cost=cost)
        return job

    async def _roll_back_reservation(self, job_id: UUID, user_id: str, cost: int, error: Exception) -> None:
        """
        Mark the job FAILED and refund its cost as two independent steps.

        Only a job still PENDING is rolled back. If the queue accepted the job
        despite reporting an error and a worker already claimed it, the job
        keeps its status and its credits stay consumed.
        """
        try:
            result = await self.db.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == JobStatus.PENDING)
                .values(
                    status=JobStatus.FAILED,
                    error_message=f"Enqueue failed: {error}"[:500],
                    updated_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            job_rollback_step_failed_total.labels(step="mark_failed").inc()
            logger.exception("job_rollback_mark_failed_error", job_id=str(job_id))
        else:
            if result.rowcount == 0:
                logger.warning("job_rollback_skipped_claimed", job_id=str(job_id), user_id=user_id)
                return

        try:
            await CreditService(self.db).add_credits(user_id, cost, reason="refund")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            job_rollback_step_failed_total.labels(step="refund").inc()
            logger.exception("job_rollback_refund_error", job_id=str(job_id), user_id=user_id, cost=cost)

    async def get_job(self, job_id: UUID) -> Job:
        """
        Load a job.

        Raises:
            JobNotFound: If no job has this id
        """
        result = await self.db.execute(select(Job).where(Job.id == job_id))
        job = result.scalar_one_or_none()
        if job is None:
            raise JobNotFound(f"Job {job_id} not found", context={"job_id": str(job_id)})
        return job

    # Worker transitions

    async def claim_job(self, job_id: UUID) -> bool:
        """
        Move a job from PENDING to PROCESSING.

        Returns:
            False when the job is missing or no longer PENDING (redelivery)
        """
        result = await self.db.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.PENDING)
            .values(status=JobStatus.PROCESSING, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return int(result.rowcount or 0) == 1

    async def mark_completed(self, job_id: UUID, output_ref: str, tokens_used: int) -> None:
        await self._set_status(job_id, JobStatus.COMPLETED, output_ref=output_ref, tokens_used=tokens_used)
        jobs_finished_total.labels(status="completed").inc()

    async def mark_failed(self, job_id: UUID, error: str) -> None:
        await self._set_status(job_id, JobStatus.FAILED, error_message=error[:500])
        jobs_finished_total.labels(status="failed").inc()

    async def _set_status(self, job_id: UUID, status: JobStatus, **values: Any) -> None:
        await self.db.execute(
            update(Job)
            .where(Job.id == job_id)
            .values(status=status, updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info("job_status_updated", job_id=str(job_id), status=status.value)

    async def process_job(
        self,
        job_id: UUID,
        transformer: Any,
        options: Optional[dict[str, Any]] = None,
    ) -> Optional[JobStatus]:
        """
        Run one job through the transformer.

        Failures after the claim mark the job FAILED without a refund.

        Args:
            job_id: Job identifier
            transformer: Object with ``async transform(text, options)``
            options: Transform options from the submission

        Returns:
            Final status, or None when the job could not be claimed
        """
        if not await self.claim_job(job_id):
            logger.info("job_not_claimable", job_id=str(job_id))
            return None

        try:
            job = await self.get_job(job_id)
            text = await self.storage.get(job.input_ref)
            result = await transformer.transform(text, options)
            output_ref = await self.storage.put(f"jobs/{job_id}/output.txt", result.text)
            await self.mark_completed(job_id, output_ref=output_ref, tokens_used=result.tokens_used)
        except Exception as e:
            await self.db.rollback()
            logger.error("job_processing_failed", job_id=str(job_id), error=str(e), exc_info=True)
            await self.mark_failed(job_id, str(e))
            return JobStatus.FAILED

        return JobStatus.COMPLETED
