from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GeoFix(BaseModel):
    """A position reported by the location capability."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)  # metres
    address: str | None = None


class DeviceVitals(BaseModel):
    model_config = ConfigDict(frozen=True)

    battery_level: int = Field(default=0, ge=0, le=100)
    is_charging: bool = False
    network_type: str = "unknown"


class DeviceSnapshot(BaseModel):
    """Point-in-time capture of location and vitals used to compose an alert.

    Built fresh for every alert and follow-up; only ever persisted as part
    of an :class:`~safeguard.models.event.SOSEvent`.
    """

    model_config = ConfigDict(frozen=True)

    location: GeoFix | None = None
    battery_level: int = Field(default=0, ge=0, le=100)
    is_charging: bool = False
    network_type: str = "unknown"

    @property
    def has_location(self) -> bool:
        return self.location is not None
