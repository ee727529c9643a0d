"""Trigger pattern configuration and the events the detector emits.

Patterns are immutable once built; only a settings change (made by the
host) produces a new pattern set.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from safeguard.models.enums import ButtonToken, PatternKind, TriggerType


class ButtonSequencePattern(BaseModel):
    """An ordered list of volume button presses inside a time window."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["button_sequence"] = "button_sequence"
    sequence: tuple[ButtonToken, ...] = Field(..., min_length=1)
    window_seconds: float = Field(..., gt=0)
    enabled: bool = True

    @field_validator("sequence", mode="before")
    @classmethod
    def _split_sequence(cls, value: object) -> object:
        # Accept the "UP,UP,DOWN,DOWN" form stored in user settings.
        if isinstance(value, str):
            return tuple(part.strip().upper() for part in value.split(",") if part.strip())
        return value

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.VOLUME_BUTTON_SEQUENCE


class ShakeCountPattern(BaseModel):
    """A number of distinct shakes inside a time window."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["shake_count"] = "shake_count"
    required: int = Field(..., ge=1)
    window_seconds: float = Field(..., gt=0)
    debounce_seconds: float = Field(default=0.5, ge=0)
    enabled: bool = True

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.SHAKE_DETECTION


class PowerPressCountPattern(BaseModel):
    """A number of power button presses inside a time window."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["power_press_count"] = "power_press_count"
    required: int = Field(..., ge=1)
    window_seconds: float = Field(..., gt=0)
    enabled: bool = True

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.POWER_BUTTON_PATTERN


TriggerPattern = Annotated[
    Union[ButtonSequencePattern, ShakeCountPattern, PowerPressCountPattern],
    Field(discriminator="kind"),
]


class TriggerEvent(BaseModel):
    """A recognised trigger, consumed once by the engine."""

    model_config = ConfigDict(frozen=True)

    trigger_type: TriggerType
    kind: PatternKind | None = None  # None for direct (button/widget) triggers
    fired_at: float
