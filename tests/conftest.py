"""Pytest configuration and shared fixtures."""

import random

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from catalog_sync.models import Base
from catalog_sync.scrapers.budget import RunBudget
from catalog_sync.scrapers.utils.retry import RetryPolicy
from catalog_sync.services.catalog_store import InMemoryCatalogStore

from helpers import FakeClock, TickingClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def budget(clock: FakeClock) -> RunBudget:
    """Unbounded budget on the fake clock; sleeps are instantaneous."""
    return RunBudget(None, clock=clock, sleeper=clock.sleep)


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Three attempts without backoff."""
    return RetryPolicy(max_attempts=3, jitter=(0.0, 0.0), rng=random.Random(7))


@pytest.fixture
def wall_clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore()


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
