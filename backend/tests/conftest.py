"""Shared test fixtures and configuration."""
import os

# Settings are read from the environment on first access; the application
# engine is built at import time, so these must be set before any import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("POLICY_TIMEZONE", "UTC")

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from admin_policy.models import Base


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    """A file-backed SQLite database so separate sessions get separate connections."""
    db_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'policy.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(db_engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with db_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


class RecordingPublisher:
    """In-memory stand-in for the notification publisher."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    async def publish(self, event_type: str, payload: dict) -> None:
        self.events.append((event_type, payload))


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()
