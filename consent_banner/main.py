"""FastAPI application entry point — wires everything together.

Usage:
    python -m consent_banner.main

Serves the consent endpoints, the banner stylesheet and a health check.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from consent_banner.config import settings
from consent_banner.events import emit, start_event_system, stop_event_system
from consent_banner.schemas.events import EventType, SystemEvent
from consent_banner.server.web import STATIC_DIR, router

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
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger(__name__)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info(
        "starting consent banner",
        environment=settings.environment,
        policy_version=settings.consent.cookie_version,
    )

    await start_event_system()
    await emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP, source_module="main"))

    try:
        yield
    finally:
        await emit(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, source_module="main"))
        await stop_event_system()
        logger.info("consent banner shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Consent Banner",
    description="Cookie consent banner: client payload, markup and acknowledgement",
    version="1.2.2",
    lifespan=lifespan,
)

app.mount("/consent/static", StaticFiles(directory=str(STATIC_DIR)), name="consent_static")
app.include_router(router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "policy_version": settings.consent.cookie_version,
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "consent_banner.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
