"""Async database engine, session factory, and lifespan management.

SQLAlchemy 2.0 async over asyncpg. Quotes, the audit log and system settings
all live in the same PostgreSQL database; pool sizing comes from
``DatabaseSettings``.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.config import settings

logger = logging.getLogger(__name__)

# ── Async PostgreSQL engine ──────────────────────────────────────────

engine: AsyncEngine = create_async_engine(
    settings.db.database_url,
    echo=settings.db.db_echo,
    pool_size=settings.db.db_pool_size,
    max_overflow=settings.db.db_max_overflow,
    pool_pre_ping=True,
    pool_recycle=settings.db.db_pool_recycle_seconds,
)

# Objects stay readable after commit; repositories return them past the session
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Lifespan helpers ─────────────────────────────────────────────────


async def init_db() -> None:
    """Check the database answers; outside production also create missing tables.

    Production schemas are managed by Alembic only.
    """
    from src.models import Base

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if settings.is_production:
            return
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables ensured: %s", ", ".join(sorted(Base.metadata.tables)))


async def close_db() -> None:
    await engine.dispose()


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncGenerator[None, None]:
    """Open the database for the app's lifetime and dispose the pool afterwards."""
    await init_db()
    try:
        yield
    finally:
        await close_db()
