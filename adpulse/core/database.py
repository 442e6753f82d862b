"""
Async PostgreSQL connection pool module for the metric history table.

The pool is only opened when DATABASE_URL is configured; without it the
service keeps history in a JSON document and never touches this module at
runtime.

Key Components:
- Global connection pool singleton (_pool)
- init_db(): Initialize the connection pool at application startup
- get_db_pool(): Get the pool instance (initializes if needed)
- close_db(): Gracefully close the pool at application shutdown
- ensure_schema(): Create the metric_history table if it does not exist

Connection Pool Configuration:
- min_size: 1 (the refresh cycle is the only writer)
- max_size: 5
- command_timeout: 30 seconds

Usage:
    # At application startup (in FastAPI lifespan)
    await init_db()
    await ensure_schema()

    # In services
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT * FROM metric_history LIMIT 5")

    # At application shutdown
    await close_db()
"""

from typing import Optional

import asyncpg
from asyncpg import Pool

from adpulse.core.config import get_settings


# =============================================================================
# Schema
# =============================================================================

# One row per (provider, metric_date); the primary key is what makes the
# history upsert last-write-wins instead of append.
METRIC_HISTORY_DDL = """
CREATE TABLE IF NOT EXISTS metric_history (
    provider TEXT NOT NULL,
    metric_date DATE NOT NULL,
    fields JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (provider, metric_date)
)
"""


# =============================================================================
# Global Pool Singleton
# =============================================================================

_pool: Optional[Pool] = None


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================

async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    Idempotent: if the pool already exists it is returned unchanged.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        RuntimeError: If DATABASE_URL is not configured.
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError('DATABASE_URL is not configured')

        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=1,
            max_size=5,
            command_timeout=30,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing if needed.

    Returns:
        Pool: The asyncpg connection pool instance.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"

    return _pool


async def close_db() -> None:
    """
    Close the database connection pool gracefully.

    Idempotent - calling it when the pool is not initialized has no effect.
    """
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def ensure_schema() -> None:
    """Create the metric_history table when it is missing."""
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        await conn.execute(METRIC_HISTORY_DDL)
