"""Emergency lifecycle endpoints.

Thin wrappers over :class:`SOSEngine`.  Illegal transitions surface as
``409 Conflict`` via the application's ``InvariantViolation`` handler.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from safeguard.api.presentation import ENGINE_STATUS_DISPLAY, SOS_STATUS_DISPLAY, TRIGGER_LABELS
from safeguard.api.v1.deps import get_engine
from safeguard.models.enums import TriggerType
from safeguard.services.engine import SOSEngine


router = APIRouter(prefix="/sos", tags=["sos"])


class TriggerRequest(BaseModel):
    trigger_type: TriggerType = TriggerType.MANUAL_BUTTON
    silent: bool = False


class RawInputRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=32)
    timestamp: float | None = None


def _state_payload(engine: SOSEngine) -> dict:
    last = engine.last_dispatch
    return {
        "state": engine.state.model_dump(mode="json"),
        "display": ENGINE_STATUS_DISPLAY[engine.status],
        "current_event_id": engine.current_event_id,
        "last_dispatch": (
            {
                "sent": last.sent,
                "failed": last.failed,
                "failed_contact_ids": last.failed_contact_ids,
                "partial": last.partial,
            }
            if last is not None
            else None
        ),
        "warnings": [w.message for w in engine.warnings],
    }


@router.post("/trigger")
async def trigger_sos(body: TriggerRequest, engine: SOSEngine = Depends(get_engine)) -> dict:
    """Start an emergency (countdown unless silent)."""
    await engine.trigger(body.trigger_type, silent_override=body.silent)
    return _state_payload(engine)


@router.post("/cancel")
async def cancel_sos(engine: SOSEngine = Depends(get_engine)) -> dict:
    await engine.cancel()
    return _state_payload(engine)


@router.post("/resolve")
async def resolve_sos(engine: SOSEngine = Depends(get_engine)) -> dict:
    """Close the active emergency after the user confirmed they are safe."""
    await engine.resolve()
    return _state_payload(engine)


@router.post("/input")
async def submit_input(body: RawInputRequest, engine: SOSEngine = Depends(get_engine)) -> dict:
    """Feed one raw sensor/input token to the trigger detector."""
    fired = engine.submit_raw_input(body.token, body.timestamp)
    return {"fired": fired.model_dump(mode="json") if fired is not None else None}


@router.get("/state")
async def get_state(engine: SOSEngine = Depends(get_engine)) -> dict:
    return _state_payload(engine)


@router.get("/events")
async def list_events(engine: SOSEngine = Depends(get_engine)) -> dict:
    events = await engine.event_store.all()
    return {
        "events": [
            {
                **event.model_dump(mode="json"),
                "display": SOS_STATUS_DISPLAY[event.status],
                "trigger_label": TRIGGER_LABELS[event.trigger_type],
            }
            for event in events
        ],
        "total": len(events),
    }


@router.get("/events/{event_id}/locations")
async def list_location_updates(event_id: int, engine: SOSEngine = Depends(get_engine)) -> dict:
    """Positions reported by the follow-ups of one emergency."""
    if await engine.event_store.get(event_id) is None:
        raise HTTPException(status_code=404, detail="Event not found")
    updates = await engine.event_store.location_updates(event_id)
    return {
        "event_id": event_id,
        "updates": [u.model_dump(mode="json") for u in updates],
        "total": len(updates),
    }
