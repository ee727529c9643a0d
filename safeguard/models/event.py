"""Durable record of a single emergency activation."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from safeguard.models.enums import SOSStatus, TriggerType
from safeguard.models.snapshot import DeviceSnapshot


class SOSEvent(BaseModel):
    """One activation as persisted by the event store.

    ``status`` only ever moves ``active -> resolved`` or
    ``active -> cancelled``; ``sms_sent_count`` accumulates delivered
    alerts and follow-ups.  Records are never deleted.
    """

    id: int
    trigger_type: TriggerType
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    address: str | None = None
    battery_level: int = Field(default=0, ge=0, le=100)
    is_charging: bool = False
    network_type: str = "unknown"
    status: SOSStatus = SOSStatus.ACTIVE
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    resolved_at: datetime | None = None
    sms_sent_count: int = Field(default=0, ge=0)

    @classmethod
    def from_snapshot(
        cls,
        event_id: int,
        trigger_type: TriggerType,
        snapshot: DeviceSnapshot,
        created_at: datetime | None = None,
    ) -> SOSEvent:
        location = snapshot.location
        return cls(
            id=event_id,
            trigger_type=trigger_type,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            accuracy=location.accuracy if location else None,
            address=location.address if location else None,
            battery_level=snapshot.battery_level,
            is_charging=snapshot.is_charging,
            network_type=snapshot.network_type,
            created_at=created_at or datetime.now(UTC),
        )

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class LocationUpdate(BaseModel):
    """A position reported by one follow-up while an event was active."""

    event_id: int
    update_number: int = Field(..., ge=1)
    latitude: float
    longitude: float
    accuracy: float | None = None
    battery_level: int = Field(default=0, ge=0, le=100)
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_snapshot(
        cls,
        event_id: int,
        update_number: int,
        snapshot: DeviceSnapshot,
        recorded_at: datetime | None = None,
    ) -> LocationUpdate | None:
        """``None`` when the snapshot carries no fix."""
        location = snapshot.location
        if location is None:
            return None
        return cls(
            event_id=event_id,
            update_number=update_number,
            latitude=location.latitude,
            longitude=location.longitude,
            accuracy=location.accuracy,
            battery_level=snapshot.battery_level,
            recorded_at=recorded_at or datetime.now(UTC),
        )
