"""User emergency preference endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from safeguard.api.v1.deps import get_engine
from safeguard.models.user_settings import UserSettings
from safeguard.services.engine import SOSEngine

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=UserSettings)
async def get_settings(engine: SOSEngine = Depends(get_engine)) -> UserSettings:
    return engine.settings


@router.put("")
async def put_settings(body: UserSettings, engine: SOSEngine = Depends(get_engine)) -> dict:
    """Replace the settings.  Malformed trigger patterns come back as warnings."""
    problems = engine.update_settings(body)
    return {
        "settings": engine.settings.model_dump(mode="json"),
        "warnings": [p.message for p in problems],
    }
