"""Async database session and engine configuration."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from catalog_sync.config import Settings, settings as default_settings


def create_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    settings = settings or default_settings

    # SQLite doesn't support pool_size / max_overflow / pool_pre_ping
    engine_kwargs: dict = {"echo": settings.DEBUG}
    if not settings.DATABASE_URL.startswith("sqlite"):
        engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)

    return create_async_engine(settings.DATABASE_URL, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
