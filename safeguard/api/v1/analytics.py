"""Safety analytics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from safeguard.models.analytics import SafetyInsights

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("", response_model=SafetyInsights)
async def get_insights(request: Request) -> SafetyInsights:
    """Score, peak hour, streak and hotspots computed from the event log."""
    analytics = getattr(request.app.state, "analytics", None)
    engine = getattr(request.app.state, "engine", None)
    if analytics is None or engine is None:
        raise HTTPException(status_code=503, detail="Analytics not available")
    return await analytics.insights(contact_count=len(engine.contacts))
