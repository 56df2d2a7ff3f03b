"""
Database Configuration

Async SQLAlchemy 2.0 engine and sessions for the relational note store.
PostgreSQL through asyncpg by default; ``DATABASE_URL_OVERRIDE`` accepts
any async URL, e.g. ``sqlite+aiosqlite:///./notia.db`` for local use.

The engine is built on first use rather than at import, so tests and
scripts can point settings at another database before anything connects.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from notia.core.config import settings
from notia.models.base import Base

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine  # noqa: PLW0603
    if _engine is None:
        url = make_url(settings.DATABASE_URL)
        _engine = create_async_engine(url, echo=False)
        logger.info(
            "Connected to %s database %s",
            url.get_backend_name(),
            url.host or url.database,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session maker bound to ``get_engine()``; shared by requests and background tasks."""
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        # Attributes stay readable after commit without another round trip
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one session per request, closed afterwards even
    when the handler raises.
    """
    async with get_session_factory()() as session:
        yield session


async def create_schema(engine: AsyncEngine | None = None) -> None:
    """
    Create any missing tables (idempotent).

    Alembic owns the schema in deployed environments; this keeps local
    SQLite setups and tests usable without running migrations.
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database engine disposed")


# Base re-exported for Alembic autogenerate
__all__ = [
    "Base",
    "create_schema",
    "dispose_engine",
    "get_db",
    "get_engine",
    "get_session_factory",
]
