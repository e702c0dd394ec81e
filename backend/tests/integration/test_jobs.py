"""Integration tests for the credit-metered job pipeline."""
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from creditflow.exceptions import EnqueueFailure, InsufficientCredits, JobNotFound, StorageError
from creditflow.models.job import Job, JobStatus
from creditflow.services.credit_service import CreditService
from creditflow.services.job_service import JobService
from creditflow.workers import job_processor
from tests.utils.fakes import FakeJobQueue, FakeObjectStorage, FakeTextTransformer


async def _fund(session_factory, user_id: str, amount: int) -> None:
    async with session_factory() as session:
        await CreditService(session).add_credits(user_id, amount, reason="grant")
        await session.commit()


async def _balance(session_factory, user_id: str) -> int:
    async with session_factory() as session:
        return await CreditService(session).get_balance(user_id)


async def _load_job(session_factory, job_id) -> Job:
    async with session_factory() as session:
        return (await session.execute(select(Job).where(Job.id == job_id))).scalar_one()


async def _job_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(Job))


class FailingStorage(FakeObjectStorage):
    async def put(self, path: str, content: str) -> str:
        raise StorageError(f"Could not write {path}")


class ClaimedThenFailingQueue(FakeJobQueue):
    """Queue that hands the job to a worker and still reports an error to the caller."""

    def __init__(self, session_factory):
        super().__init__()
        self.session_factory = session_factory

    async def enqueue(self, job_id, metadata=None):
        async with self.session_factory() as session:
            assert await JobService(session).claim_job(UUID(job_id))
        raise ConnectionError("reply lost")


@pytest.mark.asyncio
async def test_submit_job_reserves_credits_and_enqueues(db_session, session_factory) -> None:
    await _fund(session_factory, "user-job", 5)
    queue, storage = FakeJobQueue(), FakeObjectStorage()

    job = await JobService(db_session, queue=queue, storage=storage).submit_job(
        "user-job", "hello world", cost=2, options={"tone": "casual"}
    )

    assert job.status == JobStatus.PENDING
    assert job.cost == 2
    assert storage.objects[job.input_ref] == "hello world"
    assert queue.enqueued == [(str(job.id), {"options": {"tone": "casual"}})]
    assert await _balance(session_factory, "user-job") == 3
    assert (await _load_job(session_factory, job.id)).status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_enqueue_failure_refunds_and_fails_job(db_session, session_factory) -> None:
    """Test that a queue outage marks the job FAILED and returns the reserved credit."""
    await _fund(session_factory, "user-outage", 1)

    with pytest.raises(EnqueueFailure) as exc_info:
        await JobService(db_session, queue=FakeJobQueue(fail=True), storage=FakeObjectStorage()).submit_job(
            "user-outage", "hello", cost=1
        )

    assert isinstance(exc_info.value.original, ConnectionError)
    job = await _load_job(session_factory, UUID(exc_info.value.job_id))
    assert job.status == JobStatus.FAILED
    assert "Redis unavailable" in job.error_message
    assert await _balance(session_factory, "user-outage") == 1


@pytest.mark.asyncio
async def test_unaffordable_job_creates_nothing(db_session, session_factory) -> None:
    queue, storage = FakeJobQueue(), FakeObjectStorage()

    with pytest.raises(InsufficientCredits) as exc_info:
        await JobService(db_session, queue=queue, storage=storage).submit_job("user-broke", "hello", cost=1)

    assert exc_info.value.balance == 0
    assert await _job_count(session_factory) == 0
    assert queue.enqueued == []
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_storage_failure_releases_reservation(db_session, session_factory) -> None:
    await _fund(session_factory, "user-storage", 1)

    with pytest.raises(StorageError):
        await JobService(db_session, queue=FakeJobQueue(), storage=FailingStorage()).submit_job(
            "user-storage", "hello", cost=1
        )

    assert await _balance(session_factory, "user-storage") == 1
    assert await _job_count(session_factory) == 0


@pytest.mark.asyncio
async def test_refund_still_runs_when_marking_failed_breaks(db_session, session_factory, monkeypatch) -> None:
    await _fund(session_factory, "user-iso", 1)

    def broken_update(*args, **kwargs):
        raise RuntimeError("cannot build update")

    monkeypatch.setattr("creditflow.services.job_service.update", broken_update)

    with pytest.raises(EnqueueFailure) as exc_info:
        await JobService(db_session, queue=FakeJobQueue(fail=True), storage=FakeObjectStorage()).submit_job(
            "user-iso", "hello", cost=1
        )

    assert await _balance(session_factory, "user-iso") == 1
    job = await _load_job(session_factory, UUID(exc_info.value.job_id))
    assert job.status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_job_still_failed_when_refund_breaks(db_session, session_factory, monkeypatch) -> None:
    await _fund(session_factory, "user-norefund", 1)

    async def broken_add_credits(self, user_id, amount, reason="top_up"):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(CreditService, "add_credits", broken_add_credits)

    with pytest.raises(EnqueueFailure) as exc_info:
        await JobService(db_session, queue=FakeJobQueue(fail=True), storage=FakeObjectStorage()).submit_job(
            "user-norefund", "hello", cost=1
        )

    job = await _load_job(session_factory, UUID(exc_info.value.job_id))
    assert job.status == JobStatus.FAILED
    assert await _balance(session_factory, "user-norefund") == 0


@pytest.mark.asyncio
async def test_rollback_leaves_claimed_job_alone(db_session, session_factory) -> None:
    """Test that a job a worker already claimed is neither failed nor refunded by the enqueue rollback."""
    await _fund(session_factory, "user-claimed", 1)

    service = JobService(db_session, queue=ClaimedThenFailingQueue(session_factory), storage=FakeObjectStorage())

    with pytest.raises(EnqueueFailure) as exc_info:
        await service.submit_job("user-claimed", "hello", cost=1)

    job = await _load_job(session_factory, UUID(exc_info.value.job_id))
    assert job.status == JobStatus.PROCESSING
    assert job.error_message is None
    assert await _balance(session_factory, "user-claimed") == 0


@pytest.mark.asyncio
async def test_get_job_raises_for_unknown_id(db_session) -> None:
    with pytest.raises(JobNotFound):
        await JobService(db_session).get_job(uuid4())


@pytest.mark.asyncio
async def test_process_job_completes_without_refund(db_session, session_factory) -> None:
    await _fund(session_factory, "user-work", 1)
    storage, transformer = FakeObjectStorage(), FakeTextTransformer(tokens_used=7)
    service = JobService(db_session, queue=FakeJobQueue(), storage=storage)
    job = await service.submit_job("user-work", "make me loud", cost=1)

    status = await service.process_job(job.id, transformer, {"tone": "loud"})

    assert status == JobStatus.COMPLETED
    stored = await _load_job(session_factory, job.id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.tokens_used == 7
    assert storage.objects[stored.output_ref] == "MAKE ME LOUD"
    assert await _balance(session_factory, "user-work") == 0


@pytest.mark.asyncio
async def test_process_job_failure_keeps_credits_consumed(db_session, session_factory) -> None:
    """Test that a job failing after the claim is FAILED and not refunded."""
    await _fund(session_factory, "user-fail", 1)
    service = JobService(db_session, queue=FakeJobQueue(), storage=FakeObjectStorage())
    job = await service.submit_job("user-fail", "text", cost=1)

    status = await service.process_job(job.id, FakeTextTransformer(error=RuntimeError("model overloaded")))

    assert status == JobStatus.FAILED
    stored = await _load_job(session_factory, job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.error_message == "model overloaded"
    assert await _balance(session_factory, "user-fail") == 0


@pytest.mark.asyncio
async def test_process_job_skips_already_claimed_job(db_session, session_factory) -> None:
    await _fund(session_factory, "user-redeliver", 1)
    transformer = FakeTextTransformer()
    service = JobService(db_session, queue=FakeJobQueue(), storage=FakeObjectStorage())
    job = await service.submit_job("user-redeliver", "text", cost=1)

    assert await service.process_job(job.id, transformer) == JobStatus.COMPLETED
    assert await service.process_job(job.id, transformer) is None
    assert transformer.calls == ["text"]


@pytest.mark.asyncio
async def test_process_job_for_unknown_id_is_skipped(db_session) -> None:
    assert await JobService(db_session).process_job(uuid4(), FakeTextTransformer()) is None


@pytest.mark.asyncio
async def test_worker_task_processes_job(db_session, session_factory) -> None:
    await _fund(session_factory, "user-arq", 1)
    storage = FakeObjectStorage()
    job = await JobService(db_session, queue=FakeJobQueue(), storage=storage).submit_job("user-arq", "arq", cost=1)
    ctx = {"session_factory": session_factory, "storage": storage, "transformer": FakeTextTransformer()}

    result = await job_processor.process_job(ctx, str(job.id), {"tone": "any"})

    assert result == "completed"
    assert storage.objects[f"jobs/{job.id}/output.txt"] == "ARQ"
    assert await job_processor.process_job(ctx, str(job.id)) is None


@pytest.mark.asyncio
async def test_submit_job_endpoint(async_client: AsyncClient, session_factory, job_queue, object_storage) -> None:
    await _fund(session_factory, "user-api-job", 3)

    response = await async_client.post("/v1/jobs", json={"user_id": "user-api-job", "payload": "hi there"})

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["cost"] == 1
    assert job_queue.enqueued[0][0] == body["id"]
    assert object_storage.objects[body["input_ref"]] == "hi there"
    assert await _balance(session_factory, "user-api-job") == 2

    fetched = await async_client.get(f"/v1/jobs/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == body["id"]


@pytest.mark.asyncio
async def test_submit_job_endpoint_without_credits_returns_402(async_client: AsyncClient, session_factory) -> None:
    response = await async_client.post("/v1/jobs", json={"user_id": "user-api-broke", "input_text": "hi"})

    assert response.status_code == 402
    body = response.json()
    assert body["error"] == "InsufficientCredits"
    assert body["details"][0]["code"] == "insufficient_credits"
    assert await _job_count(session_factory) == 0


@pytest.mark.asyncio
async def test_submit_job_endpoint_queue_outage_returns_503(
    async_client: AsyncClient, session_factory, job_queue
) -> None:
    await _fund(session_factory, "user-api-outage", 1)
    job_queue.fail = True

    response = await async_client.post("/v1/jobs", json={"user_id": "user-api-outage", "input_text": "hi"})

    assert response.status_code == 503
    assert response.headers["retry-after"] == "30"
    assert response.json()["details"][0]["code"] == "enqueue_failed"
    assert await _balance(session_factory, "user-api-outage") == 1


@pytest.mark.asyncio
async def test_get_unknown_job_returns_404(async_client: AsyncClient) -> None:
    response = await async_client.get(f"/v1/jobs/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["details"][0]["code"] == "job_not_found"


@pytest.mark.asyncio
async def test_submit_job_endpoint_validates_body(async_client: AsyncClient) -> None:
    response = await async_client.post("/v1/jobs", json={"user_id": "user-x", "input_text": ""})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_job_error_responses_are_documented(async_client: AsyncClient) -> None:
    schema = (await async_client.get("/openapi.json")).json()

    submit = schema["paths"]["/v1/jobs"]["post"]["responses"]
    fetch = schema["paths"]["/v1/jobs/{job_id}"]["get"]["responses"]
    for responses, code in ((submit, "402"), (submit, "503"), (fetch, "404")):
        ref = responses[code]["content"]["application/json"]["schema"]["$ref"]
        assert ref == "#/components/schemas/ErrorResponse"
