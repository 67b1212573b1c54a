"""
Async database access for the reminder service (SQLAlchemy Core + asyncpg).

Everything that touches Postgres goes through get_connection() for reads or
get_transaction() for writes. The scheduler's job store and Alembic are
synchronous and use get_sync_database_url() instead.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .tables import metadata  # noqa: F401 - exported for Alembic

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None


def _require_database_url() -> str:
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable must be set.")
    return database_url


def get_async_database_url() -> str:
    """DATABASE_URL with the asyncpg driver, whichever form it was given in."""
    database_url = _require_database_url()
    if database_url.startswith("postgres://"):
        # Heroku-style scheme
        database_url = "postgresql://" + database_url[len("postgres://"):]
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def get_sync_database_url() -> str:
    """DATABASE_URL with the default (psycopg2) driver, for Alembic and APScheduler."""
    database_url = get_async_database_url()
    if database_url.startswith("postgresql+asyncpg://"):
        return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)
    raise ValueError("DATABASE_URL must be set to a PostgreSQL URL")


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            get_async_database_url(),
            echo=os.environ.get("SQL_ECHO", "").lower() == "true",
            pool_size=int(os.environ.get("DB_POOL_SIZE", "5")),
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=1800,
            # Timers can sit idle for an hour; don't hand out dead connections
            pool_pre_ping=True,
        )
    return _engine


@asynccontextmanager
async def get_connection() -> AsyncGenerator[AsyncConnection, None]:
    """
    Pooled connection for reads.

    Usage:
        async with get_connection() as conn:
            event = await get_event(conn, event_id)
    """
    async with get_engine().connect() as conn:
        yield conn


@asynccontextmanager
async def get_transaction() -> AsyncGenerator[AsyncConnection, None]:
    """Connection inside a transaction. Commits on success, rolls back on exception."""
    async with get_engine().begin() as conn:
        yield conn


async def check_connection() -> bool:
    """True if the database answers a trivial query."""
    if not is_configured():
        return False
    try:
        async with get_connection() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False


async def close_engine() -> None:
    """Dispose the pool. Call on shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def is_configured() -> bool:
    return bool(os.environ.get("DATABASE_URL"))
