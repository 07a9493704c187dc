"""
Shared test fixtures and configuration.

Provides the PostgreSQL pool used by integration and adversarial tests.
Tests depending on it are skipped when the database is unreachable, so
the unit suite runs without docker-compose.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from src.adapters.repository import run_migrations
from src.config.settings import get_settings

TABLES = "notifications, milestones, deliverables, contracts, proposals, jobs, accounts"


@pytest_asyncio.fixture
async def pg_pool() -> AsyncGenerator[AsyncConnectionPool, None]:
    """Open a pool on a migrated, emptied database."""
    settings = get_settings()
    pool = AsyncConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=False,
    )
    try:
        await pool.open(wait=True, timeout=5)
    except PoolTimeout:
        await pool.close()
        pytest.skip("PostgreSQL is not reachable")

    await run_migrations(pool)
    async with pool.connection() as conn:
        await conn.execute(f"TRUNCATE {TABLES} CASCADE")
        await conn.commit()

    yield pool
    await pool.close()
