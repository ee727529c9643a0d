"""Engine lifecycle states.

Exactly one of these is held by a running engine; the engine replaces it
on every transition and never mutates one in place.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from safeguard.models.enums import TriggerType


class _State(BaseModel):
    model_config = ConfigDict(frozen=True)


class IdleState(_State):
    status: Literal["idle"] = "idle"


class CountdownState(_State):
    status: Literal["countdown"] = "countdown"
    remaining: int = Field(..., ge=0)
    started_at: datetime
    trigger_type: TriggerType


class ActiveState(_State):
    status: Literal["active"] = "active"
    event_id: int
    updates_sent: int = Field(default=0, ge=0)
    last_update_at: datetime | None = None


class ResolvingState(_State):
    status: Literal["resolving"] = "resolving"
    event_id: int


EngineState = Annotated[
    Union[IdleState, CountdownState, ActiveState, ResolvingState],
    Field(discriminator="status"),
]

IDLE = IdleState()
