"""FastAPI application entry point — wires everything together.

Usage:
    python -m src.main

Serves the eligibility API and, when enabled, runs the batch jobs
(daily check, activation sweep, notification upkeep) in-process.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.routes import router as eligibility_router
from src.config import settings
from src.db.engine import db_lifespan, ping
from src.observability.audit import audit_on_event
from src.observability.events import emit, start_event_system, stop_event_system, subscribe
from src.schemas.events import EventType, SystemEvent

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.environment == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting eligibility engine (env=%s)", settings.environment)

    # 1. Database
    async with db_lifespan():
        logger.info("Database initialized")

        # 2. Event system
        await start_event_system()
        logger.info("Event system started")

        # 3. Audit logging (global subscriber)
        subscribe(audit_on_event)
        logger.info("Audit logging subscriber registered")

        await emit(SystemEvent(
            event_type=EventType.SYSTEM_STARTUP,
            actor_id="system",
            actor_role="system",
            data={"environment": settings.environment},
            source_module="main",
        ))

        # 4. Batch jobs
        scheduler = None
        if settings.eligibility.scheduler_enabled:
            from src.jobs.scheduler import create_scheduler

            scheduler = create_scheduler()
            scheduler.start()
            logger.info("Job scheduler started")
        else:
            logger.warning("Scheduler disabled — batch jobs must be run externally")

        try:
            yield
        finally:
            # Shutdown in reverse order
            logger.info("Shutting down eligibility engine...")

            if scheduler is not None:
                scheduler.shutdown(wait=False)
                logger.info("Job scheduler stopped")

            await emit(SystemEvent(
                event_type=EventType.SYSTEM_SHUTDOWN,
                actor_id="system",
                actor_role="system",
                source_module="main",
            ))
            await stop_event_system()
            logger.info("Event system stopped")

    logger.info("Eligibility engine shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Eligibility Engine API",
    description="Account and credit-service eligibility for the microfinance back office",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(eligibility_router)


@app.get("/health")
async def health_check() -> dict[str, object]:
    """Health check endpoint; "degraded" when PostgreSQL or Redis is unreachable."""
    checks = await ping()
    return {
        "status": "ok" if all(checks.values()) else "degraded",
        "environment": settings.environment,
        "checks": checks,
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
