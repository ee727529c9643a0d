"""Liveness and readiness probes."""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe.  Does *not* check the engine."""
    start_time: float = getattr(request.app.state, "start_time", time.time())
    uptime = time.time() - start_time

    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(uptime, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe: the engine is running and its event log is readable."""
    checks: dict[str, str] = {}
    all_ok = True

    engine = getattr(request.app.state, "engine", None)
    if engine is not None and engine.is_running:
        checks["engine"] = f"ok ({engine.status})"
        try:
            events = await engine.event_store.all()
            checks["event_store"] = f"ok ({len(events)} events)"
        except Exception as exc:
            checks["event_store"] = f"error: {exc!s}"
            all_ok = False
        checks["contacts"] = "ok" if len(engine.contacts) else "none_configured"
    else:
        checks["engine"] = "not_running"
        all_ok = False

    status = "ready" if all_ok else "degraded"
    logger.info("health.readiness_check", status=status, checks=checks)
    return ReadinessResponse(status=status, checks=checks)
