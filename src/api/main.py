"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import AsyncConnectionPool

from src.adapters.repository.postgres import run_migrations
from src.api.container import build_container
from src.api.errors import install_error_handlers
from src.api.v1 import router as v1_router
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Marketplace Workflow API v1 - OTP-gated registration, "
        "job/proposal/contract lifecycle, and notifications",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Opens the database connection pool and runs migrations
    - Wires the service container and starts the staging sweep
    - Stops the sweep and closes the pool on shutdown
    """
    settings = get_settings()

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing
    pool = AsyncConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        open=False,
    )
    await pool.open()

    logger.info("Running database migrations...")
    await run_migrations(pool)

    # Long-lived services live in app state for dependency injection
    services = build_container(pool, settings)
    services.start()
    app.state.pool = pool
    app.state.services = services

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await services.stop()
    await pool.close()
    logger.info("Database connection pool closed")


app = FastAPI(
    title="hireloop",
    description="Marketplace Workflow API - Staged registration, exactly-one-winner "
    "proposal acceptance, and best-effort live notifications",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

install_error_handlers(app)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    async with pool.connection() as conn:
        await conn.execute("SELECT 1")

    return {"status": "healthy"}
