"""
FastAPI application entry point for the adpulse refresh service.

This module configures logging, registers the API routers and manages the
optional PostgreSQL pool used by the history store.

Routes:
- GET/POST /api/cron/refresh-metrics: run one refresh cycle
- GET /api/metrics/cached: latest cached snapshot
- GET/POST /api/settings/alerts: alert thresholds and channels
- GET /health, GET /
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from adpulse import __version__
from adpulse.api import api_router
from adpulse.core.config import get_settings
from adpulse.core.database import close_db, ensure_schema, init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Initialize the database pool and history table when DATABASE_URL is set

    On shutdown:
        - Close the database pool
    """
    settings = get_settings()
    logger.info("adpulse API starting")

    if settings.database_url:
        try:
            await init_db()
            await ensure_schema()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            # Continue startup; history writes will surface as PersistenceFailure
    else:
        logger.info(f"DATABASE_URL not set, metric history kept in {settings.cache_dir}")

    yield

    logger.info("adpulse API shutting down")
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


# Create FastAPI application
app = FastAPI(
    title="adpulse API",
    version=__version__,
    description=(
        "Marketing metrics refresh service. Aggregates provider metrics, "
        "keeps a cached snapshot and daily history, detects anomalies and "
        "sends alerts."
    ),
    lifespan=lifespan,
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "adpulse API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "adpulse.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
