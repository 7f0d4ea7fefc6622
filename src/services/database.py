"""asyncpg access to the caregiving data store.

The caregiving backend owns the schema; this process only reads medication
schedules from it.  One module-level pool is created at app startup and
shared by the schedule store and the health probe.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import asyncpg

from src.config import Settings, get_settings

logger = logging.getLogger("neurolink.db")

# Module-level connection pool, initialized once at app startup
_pool: asyncpg.Pool | None = None


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup."""
    global _pool
    s = settings or get_settings()
    if not s.database_url:
        raise RuntimeError("database_url is not configured")
    _pool = await asyncpg.create_pool(
        s.database_url,
        min_size=1,
        max_size=s.database_pool_size,
        command_timeout=s.database_command_timeout_seconds,
    )
    logger.info("Database pool initialized (max=%d)", s.database_pool_size)
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized — call init_pool() first")
    return _pool


def pool_ready() -> bool:
    return _pool is not None


@asynccontextmanager
async def get_connection() -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a read-only connection from the pool.

    Usage::

        async with get_connection() as conn:
            rows = await conn.fetch("SELECT 1")
    """
    pool = get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction(readonly=True):
            yield conn


async def fetch(query: str, *args: Any) -> list[asyncpg.Record]:
    """Fetch rows inside a read-only transaction."""
    async with get_connection() as conn:
        return await conn.fetch(query, *args)


async def fetchval(query: str, *args: Any) -> Any:
    """Fetch a single value inside a read-only transaction."""
    async with get_connection() as conn:
        return await conn.fetchval(query, *args)
