from __future__ import annotations

from fastapi import HTTPException, Request

from safeguard.services.engine import SOSEngine


def get_engine(request: Request) -> SOSEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="SOS engine not available")
    return engine
