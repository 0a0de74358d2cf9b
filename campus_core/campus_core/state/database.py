"""Engine and session helpers for the billing store.

The URL scheme picks the backend: ``postgresql+asyncpg://`` for the shared
production database, ``sqlite+aiosqlite://`` for a single operator's
machine and for tests.  Both run the same tables and the same bill
uniqueness constraint.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Build the engine for *database_url*.

    SQLite URLs are handed to :func:`get_local_engine`; the pool options
    only apply to PostgreSQL, where statements and lock waits are capped
    so a stuck generation run cannot hold bill rows indefinitely.
    """
    if database_url.startswith("sqlite"):
        from campus_core.state.sqlite_adapter import get_local_engine

        db_path = database_url.split("///", 1)[-1] if "///" in database_url else ""
        return get_local_engine(db_path or ":memory:")

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=10,
        connect_args={
            "server_settings": {
                "statement_timeout": "30000",
                "lock_timeout": "10000",
            }
        },
    )
    logger.info("PostgreSQL engine ready (pool_size=%d, max_overflow=%d)", pool_size, max_overflow)
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions for *engine* that keep loaded rows usable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create every billing table that does not yet exist."""
    from campus_core.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Billing tables created/verified")


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit when the block exits cleanly, else roll back."""
    session = get_session_factory(engine)()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
