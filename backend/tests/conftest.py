"""Pytest configuration and fixtures for async testing."""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import creditflow.models  # noqa: F401  (registers tables on the metadata)
from creditflow.adapters.stripe_adapter import StripeAdapter
from creditflow.api.deps import get_db, get_job_queue, get_object_storage, get_webhook_dispatcher
from creditflow.database import Base
from creditflow.main import app
from creditflow.services.webhook_dispatcher import WebhookDispatcher
from tests.utils.factories import WEBHOOK_SECRET
from tests.utils.fakes import FakeJobQueue, FakeObjectStorage


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed SQLite engine with all tables created.

    A file (not ``:memory:``) so that separate sessions use separate
    connections, as concurrent requests would.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def job_queue() -> FakeJobQueue:
    return FakeJobQueue()


@pytest.fixture(scope="function")
def object_storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture(scope="function")
def webhook_dispatcher() -> WebhookDispatcher:
    """Dispatcher verifying against the test signing secret, ledger enabled."""
    return WebhookDispatcher(StripeAdapter(webhook_secret=WEBHOOK_SECRET), logging_enabled=True)


@pytest_asyncio.fixture(scope="function")
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    job_queue: FakeJobQueue,
    object_storage: FakeObjectStorage,
    webhook_dispatcher: WebhookDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client with database and collaborator overrides.

    Yields:
        AsyncClient: Async HTTP client for API testing
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_job_queue] = lambda: job_queue
    app.dependency_overrides[get_object_storage] = lambda: object_storage
    app.dependency_overrides[get_webhook_dispatcher] = lambda: webhook_dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()
