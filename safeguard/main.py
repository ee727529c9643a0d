"""SafeGuard FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the alert engine and its collaborators
(GeoProbe, Dispatcher, EventStore, ContactRegistry, SafetyAnalytics).
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from config.settings import settings
from safeguard import __version__
from safeguard.api.router import api_router
from safeguard.errors import InvariantViolation

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine and its collaborators, and tear them down on exit.

    On startup:
      1. Host capability adapters (location, vitals, messaging)
      2. GeoProbe and Dispatcher
      3. EventStore (JSON-lines file when configured, else in-memory)
      4. SOSEngine, started so detector triggers are consumed
      5. SafetyAnalytics over the same store

    On shutdown the engine cancels its countdown and follow-up timers.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env, event_log=settings.event_log_path or None)

    app.state.start_time = time.time()

    from safeguard.services.capabilities import (
        LoggingMessenger,
        StaticLocationProvider,
        StaticVitalsProvider,
    )
    from safeguard.services.analytics import SafetyAnalytics
    from safeguard.services.contacts import ContactRegistry
    from safeguard.services.dispatcher import Dispatcher
    from safeguard.services.engine import SOSEngine
    from safeguard.services.event_store import EventStore, JsonLinesPersistence
    from safeguard.services.geo_probe import GeoProbe

    # -- 1. Capabilities ----------------------------------------------------
    messenger = LoggingMessenger()
    location = StaticLocationProvider(
        settings.static_latitude,
        settings.static_longitude,
        settings.static_accuracy_meters,
    )
    app.state.messenger = messenger

    # -- 2. Probe and dispatcher -------------------------------------------
    probe = GeoProbe(
        location,
        StaticVitalsProvider(),
        timeout_seconds=settings.location_timeout_seconds,
    )
    dispatcher = Dispatcher(
        messenger,
        send_timeout_seconds=settings.send_timeout_seconds,
        retry_backoff_seconds=settings.send_retry_backoff_seconds,
    )

    # -- 3. Event store -----------------------------------------------------
    backend = JsonLinesPersistence(settings.event_log_path) if settings.event_log_path else None
    store = EventStore(backend)

    # -- 4. Engine ----------------------------------------------------------
    engine = SOSEngine(
        geo_probe=probe,
        dispatcher=dispatcher,
        event_store=store,
        contacts=ContactRegistry(),
        tick_seconds=settings.countdown_tick_seconds,
    )
    await engine.start()
    app.state.engine = engine

    # -- 5. Analytics -------------------------------------------------------
    app.state.analytics = SafetyAnalytics(
        store,
        window_days=settings.analytics_window_days,
        penalty_per_event=settings.score_penalty_per_event,
        hotspot_radius_meters=settings.hotspot_radius_meters,
    )

    logger.info("app.ready")
    try:
        yield
    finally:
        await engine.shutdown()
        logger.info("app.shutdown")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SafeGuard API",
    description="Emergency trigger detection and alert dispatch for a personal safety device.",
    version=__version__,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8000", "http://127.0.0.1:8000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )


# -- Error mapping ----------------------------------------------------------


@app.exception_handler(InvariantViolation)
async def invariant_violation_handler(request: Request, exc: InvariantViolation) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=409,
        content={"detail": exc.message, "action": exc.action, "status": exc.status},
    )


# -- Prometheus metrics -----------------------------------------------------
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/api/v1/health"],
).instrument(app).expose(
    app,
    endpoint="/metrics",
    include_in_schema=not settings.is_production,
)

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/")
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "SafeGuard API",
        "description": "Emergency trigger and alert engine",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "safeguard.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=not settings.is_production,
    )
