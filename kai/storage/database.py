"""Async database engine & session factory."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from kai.settings import KaiSettings, get_settings
from kai.storage.models import Base

# Module-level singleton (created on first call to get_engine / get_session_factory)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine(settings: KaiSettings | None = None) -> AsyncEngine:
    global _engine
    if _engine is None:
        s = settings or get_settings()
        kwargs: dict = {"echo": s.debug, "pool_pre_ping": True}
        if not s.database_url.startswith("sqlite"):
            kwargs["pool_recycle"] = 1800
        _engine = create_async_engine(s.database_url, **kwargs)
    return _engine


def get_session_factory(settings: KaiSettings | None = None) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        engine = get_engine(settings)
        _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    return _session_factory


async def create_all_tables(settings: KaiSettings | None = None) -> None:
    engine = get_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
