"""Test fixtures for the care plan backend."""
from __future__ import annotations

import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

from careplan.api import deps
from careplan.core.clock import ScheduleClock
from careplan.core.config import get_settings
from careplan.db.base import Base
from careplan.db.session import dispose_engine, get_sessionmaker
from careplan.integrations.dose_queue import DoseQueueError
from careplan.main import app
from careplan.services import telemetry_buffer

NEW_YEAR = datetime(2025, 1, 1, tzinfo=UTC)


class FakeDoseQueue:
    """In-process stand-in for the redis dose queue."""

    queue_name = "test:dose-generation"

    def __init__(self, *, failures: int = 0) -> None:
        self.sent: list[object] = []
        self.bodies: list[str] = []
        self.attempts = 0
        self.failures = failures

    async def send(self, message) -> None:
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise DoseQueueError("queue unavailable")
        self.sent.append(message)
        self.bodies.append(message.to_json())

    async def send_raw(self, body: str) -> None:
        self.bodies.append(body)

    async def receive(self, timeout: float = 5.0) -> str | None:
        if not self.bodies:
            return None
        return self.bodies.pop(0)


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture(autouse=True)
def clear_telemetry() -> None:
    telemetry_buffer.clear()


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


@pytest_asyncio.fixture()
async def session(reset_database: None, db_url: str) -> AsyncIterator[AsyncSession]:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as db_session:
        yield db_session


@pytest.fixture()
def clock() -> ScheduleClock:
    """Clock frozen at 2025-01-01T00:00:00Z (a Wednesday) in UTC."""
    return ScheduleClock.fixed(NEW_YEAR, "UTC")


@pytest.fixture()
def dose_queue() -> FakeDoseQueue:
    return FakeDoseQueue()


@pytest_asyncio.fixture()
async def client(
    reset_database: None,
    clock: ScheduleClock,
    dose_queue: FakeDoseQueue,
) -> AsyncIterator[AsyncClient]:
    """Yield an API client wired to the fixed clock and the fake queue."""
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.state.dose_queue = dose_queue
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as api_client:
            yield api_client
    finally:
        app.dependency_overrides.pop(deps.get_clock, None)
        app.state.dose_queue = None
