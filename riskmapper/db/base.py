"""Declarative base and the process-wide async engine.

The engine is created once in the app lifespan and passed to Store and the
question seed, which build their own session factories on top of it.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from riskmapper.core.config import get_settings


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None


async def init_db(url: str | None = None) -> AsyncEngine:
    """Create the engine and any missing tables. Calling it again returns the existing engine."""
    global _engine

    if _engine is not None:
        return _engine

    settings = get_settings()
    _engine = create_async_engine(url or settings.database_url, echo=settings.debug, pool_pre_ping=True)

    # Populate metadata before create_all
    import riskmapper.db.models  # noqa: F401

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return _engine


async def close_db() -> None:
    global _engine

    if _engine is not None:
        await _engine.dispose()
        _engine = None
