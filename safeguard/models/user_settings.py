"""User-facing emergency preferences.

Edited by the host (settings screens); the engine only reads them.
"""

from __future__ import annotations

from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SMS_TEMPLATE: Final[str] = (
    "EMERGENCY! I need help!\n"
    "\n"
    "Location: {LOCATION}\n"
    "Maps: {MAPS_LINK}\n"
    "Time: {TIMESTAMP}\n"
    "Battery: {BATTERY}\n"
    "{PERSONAL_INFO}\n"
    "\n"
    "This is an automated emergency alert from SafeGuard."
)


class UserSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # ── Profile (only sent when include_personal_info is set) ──────────
    user_name: str = ""
    blood_group: str = ""
    medical_notes: str = ""
    allergies: str = ""
    include_personal_info: bool = False

    # ── Triggers ───────────────────────────────────────────────────────
    enable_volume_button_trigger: bool = True
    volume_button_sequence: str = "UP,UP,DOWN,DOWN"
    volume_button_timeout_ms: int = 3000

    enable_power_button_trigger: bool = False
    power_button_press_count: int = 5
    power_button_timeout_ms: int = 3000

    enable_shake_trigger: bool = True
    shake_count: int = 3
    shake_timeout_ms: int = 2000
    shake_debounce_ms: int = 500

    # ── SOS behaviour ──────────────────────────────────────────────────
    countdown_seconds: int = Field(default=5, ge=0)
    silent_mode: bool = False
    enable_follow_up_updates: bool = True
    location_update_interval_minutes: float = Field(default=0.25, gt=0)
    max_location_updates: int = Field(default=100, gt=0)

    # ── Message ────────────────────────────────────────────────────────
    sms_template: str = DEFAULT_SMS_TEMPLATE
    include_map_link: bool = True
    include_timestamp: bool = True
    include_battery_info: bool = True

    @field_validator("sms_template")
    @classmethod
    def _template_has_location(cls, value: str) -> str:
        if "{LOCATION}" not in value and "{MAPS_LINK}" not in value:
            raise ValueError("template must contain {LOCATION} or {MAPS_LINK}")
        return value

    @property
    def follow_up_interval_seconds(self) -> float:
        return self.location_update_interval_minutes * 60.0
