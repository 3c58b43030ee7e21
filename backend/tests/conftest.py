"""Pytest configuration and shared fixtures."""

import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from studygarden.core.config import Settings
from studygarden.db.base import Base
from studygarden.db.engine import create_db_engine
from studygarden.db.session import create_session_factory
from studygarden.learning_engine.mastery.service import MasteryUpdateService
from studygarden.learning_engine.mastery.store import SqlAlchemyMasteryStore
from studygarden.models import Subject


@pytest.fixture
def test_settings() -> Settings:
    """Settings with fast backoff for tests."""
    return Settings(
        ENV="test",
        MASTERY_UPDATE_MAX_RETRIES=3,
        MASTERY_UPDATE_BACKOFF_BASE_SECONDS=0.01,
        MASTERY_UPDATE_BACKOFF_MAX_SECONDS=0.05,
    )


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the mastery schema created."""
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'mastery.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SqlAlchemyMasteryStore:
    return SqlAlchemyMasteryStore(session_factory)


@pytest.fixture
def sleeps() -> list[float]:
    """Delays the service asked to sleep for, in order."""
    return []


@pytest.fixture
def no_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def service(store, test_settings, no_sleep) -> MasteryUpdateService:
    return MasteryUpdateService(store, config=test_settings, sleep=no_sleep)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest_asyncio.fixture
async def subject(session_factory, user_id) -> Subject:
    """A subject row owned by user_id, with no pass chance yet."""
    async with session_factory() as db:
        subject = Subject(id=uuid.uuid4(), user_id=user_id, name="Biology")
        db.add(subject)
        await db.commit()
    return subject
