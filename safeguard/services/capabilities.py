"""Default host capability adapters used by the HTTP service.

The real SMS transport and GPS live on the host device; these adapters let
the service run standalone.  Messages are recorded and logged rather than
sent, and the position comes from configuration.
"""

from __future__ import annotations

from collections import deque
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field

from safeguard.models.contact import EmergencyContact
from safeguard.models.snapshot import DeviceVitals, GeoFix

logger = structlog.get_logger(__name__)


class OutboundMessage(BaseModel):
    contact_id: int
    phone_number: str
    message: str
    sent_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class LoggingMessenger:
    """Messaging capability that records every message it is asked to send."""

    __slots__ = ("_outbox",)

    def __init__(self, max_messages: int = 500) -> None:
        self._outbox: deque[OutboundMessage] = deque(maxlen=max_messages)

    @property
    def outbox(self) -> list[OutboundMessage]:
        return list(self._outbox)

    async def send(self, contact: EmergencyContact, message: str) -> bool:
        self._outbox.append(
            OutboundMessage(contact_id=contact.id, phone_number=contact.phone_number, message=message)
        )
        logger.info(
            "messenger.recorded",
            contact_id=contact.id,
            chars=len(message),
        )
        return True


class StaticLocationProvider:
    """Reports a fixed position, or no position when none is configured."""

    __slots__ = ("_fix",)

    def __init__(
        self,
        latitude: float | None = None,
        longitude: float | None = None,
        accuracy: float | None = None,
    ) -> None:
        self._fix = (
            GeoFix(latitude=latitude, longitude=longitude, accuracy=accuracy)
            if latitude is not None and longitude is not None
            else None
        )

    async def get_current_location(self, timeout: float) -> GeoFix | None:
        return self._fix


class StaticVitalsProvider:
    __slots__ = ("_vitals",)

    def __init__(self, vitals: DeviceVitals | None = None) -> None:
        self._vitals = vitals or DeviceVitals(battery_level=100, is_charging=False, network_type="unknown")

    async def get_vitals(self) -> DeviceVitals:
        return self._vitals
