"""
Async PostgreSQL connection pool module for Supabase database connectivity.

This module provides an async PostgreSQL connection pool using asyncpg. It is the
single point of configuration for every connection the retention backend opens;
the DataAccess layer, the API dependencies and the daily jobs all acquire
connections from this pool.

Key Components:
- Global connection pool singleton (_pool)
- init_db(): Initialize the connection pool at application startup
- get_db_pool(): Get the pool instance (initializes if needed)
- close_db(): Gracefully close the pool at application shutdown

Connection Pool Configuration:
- min_size: 2 (minimum idle connections kept in pool)
- max_size: 10 (maximum connections in pool)
- command_timeout: 60 seconds (query timeout)
- jsonb columns are decoded to Python dicts (health score components)

Usage:
    # At application startup (in FastAPI lifespan)
    await init_db()

    # In services or endpoints
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT id FROM clients WHERE active = $1", True)

    # At application shutdown
    await close_db()

Environment Variables:
    DATABASE_URL: Supabase PostgreSQL connection string (Required)
"""

import json
from typing import Optional

import asyncpg
from asyncpg import Connection, Pool

from crm_retention.core.config import get_settings


# =============================================================================
# Global Pool Singleton
# =============================================================================

# None until init_db() is called; shared across all async tasks
_pool: Optional[Pool] = None


async def _init_connection(conn: Connection) -> None:
    """
    Register JSON codecs on every new pooled connection.

    client_health_scores.components is a jsonb column; with this codec asyncpg
    accepts and returns plain dicts instead of JSON strings.
    """
    for type_name in ('json', 'jsonb'):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema='pg_catalog',
        )


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
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()

        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=2,
            max_size=10,
            command_timeout=60,
            init=_init_connection,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing if needed.

    Prefer calling init_db() explicitly at application startup; the first lazy
    initialization adds latency to the request that triggers it.

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

    Waits for active connections to be released. Safe to call when the pool was
    never initialized; afterwards get_db_pool() creates a fresh pool.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
