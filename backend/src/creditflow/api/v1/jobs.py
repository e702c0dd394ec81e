"""Credit-metered job API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.adapters.queue import ArqJobQueue
from creditflow.adapters.storage import LocalObjectStorage
from creditflow.api.deps import get_db, get_job_queue, get_object_storage
from creditflow.config import settings
from creditflow.schemas.error import ErrorResponse
from creditflow.schemas.job import Job, JobCreate
from creditflow.services.job_service import JobService

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post(
    "",
    response_model=Job,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        status.HTTP_402_PAYMENT_REQUIRED: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
)
async def submit_job(
    job_in: JobCreate,
    db: AsyncSession = Depends(get_db),
    queue: ArqJobQueue = Depends(get_job_queue),
    storage: LocalObjectStorage = Depends(get_object_storage),
) -> Job:
    """
    Submit a text job.

    Reserves ``job_credit_cost`` credits and queues the job. Responds 402
    when the user cannot afford it (nothing is created) and 503 when the
    queue is unavailable (the job is marked failed and the credits returned).
    """
    service = JobService(db, queue=queue, storage=storage)
    job = await service.submit_job(
        job_in.user_id,
        job_in.input_text,
        cost=settings.job_credit_cost,
        options=job_in.options,
    )
    return Job.model_validate(job)


@router.get("/{job_id}", response_model=Job, responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}})
async def get_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Job:
    """Get a job's status and output reference."""
    job = await JobService(db).get_job(job_id)
    return Job.model_validate(job)
