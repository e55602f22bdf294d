"""
FastAPI application entry point for the EduRisk audit service.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI

from edurisk.platform.audit import (
    AuditContextMiddleware,
    audit_router,
    check_anomaly_configuration,
    get_audit_recorder,
)
from edurisk.platform.audit.retention import RetentionSweeper
from edurisk.platform.db import check_database_health, create_all_tables_async, dispose_engine
from edurisk.platform.logging import setup_logging
from edurisk.platform.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle events."""
    setup_logging()
    logger = structlog.get_logger(__name__)
    logger.info("service.startup.begin", environment=settings.environment.value)

    # Misconfigured audit settings must stop startup, not surface per request
    check_anomaly_configuration()

    try:
        await create_all_tables_async()
        logger.info("database.init.success")
    except Exception as e:
        logger.error("database.init.failed", error=str(e))
        # Continue in development, fail in production
        if settings.is_production:
            raise

    sweeper = RetentionSweeper()
    app.state.retention_sweeper = sweeper
    if not settings.is_testing:
        await sweeper.start()

    logger.info("service.startup.complete")

    yield

    logger.info("service.shutdown.begin")
    await sweeper.stop()
    # Flush fire-and-forget audit writes before the pool goes away
    await get_audit_recorder().drain()
    await dispose_engine()
    logger.info("service.shutdown.complete")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="EduRisk Audit Service",
        description="Audit trail, compliance analytics and anomaly detection",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )

    app.add_middleware(AuditContextMiddleware)
    app.include_router(audit_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint for monitoring."""
        database_ok = await check_database_health()
        return {
            "status": "healthy" if database_ok else "degraded",
            "database": database_ok,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


app = create_application()
