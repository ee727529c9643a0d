"""Best-effort position and device vitals acquisition.

Stateless: every call to :meth:`GeoProbe.acquire` queries the host
capabilities afresh.  Any capability failure or timeout degrades to
absent data so that an emergency activation is never blocked on GPS.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

import structlog

from safeguard.models.snapshot import DeviceSnapshot, DeviceVitals, GeoFix

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Capability protocols (implemented by the host platform)
# ---------------------------------------------------------------------------


@runtime_checkable
class LocationProvider(Protocol):
    async def get_current_location(self, timeout: float) -> GeoFix | None: ...


@runtime_checkable
class VitalsProvider(Protocol):
    async def get_vitals(self) -> DeviceVitals: ...


@runtime_checkable
class ReverseGeocoder(Protocol):
    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None: ...


# ---------------------------------------------------------------------------
# GeoProbe
# ---------------------------------------------------------------------------


class GeoProbe:
    """Builds :class:`DeviceSnapshot` values from the host capabilities.

    Parameters
    ----------
    location:
        Location capability.  ``None`` means the device has no location
        support and every snapshot is location-less.
    vitals:
        Battery / network capability.  Optional.
    geocoder:
        Reverse geocoder used to fill ``GeoFix.address`` when the location
        capability did not supply one.  Optional.
    timeout_seconds:
        Upper bound for the location fix plus reverse geocoding, and
        separately for the vitals read.
    """

    __slots__ = ("_geocoder", "_location", "_timeout", "_vitals")

    def __init__(
        self,
        location: LocationProvider | None,
        vitals: VitalsProvider | None = None,
        geocoder: ReverseGeocoder | None = None,
        *,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._location = location
        self._vitals = vitals
        self._geocoder = geocoder
        self._timeout = timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    async def acquire(self) -> DeviceSnapshot:
        """Return a fresh snapshot.  Never raises for capability failures."""
        fix, vitals = await asyncio.gather(self._locate(), self._read_vitals())
        return DeviceSnapshot(
            location=fix,
            battery_level=vitals.battery_level,
            is_charging=vitals.is_charging,
            network_type=vitals.network_type,
        )

    async def _locate(self) -> GeoFix | None:
        if self._location is None:
            return None
        loop = asyncio.get_running_loop()
        # Location and reverse geocoding share one acquisition budget.
        deadline = loop.time() + self._timeout
        try:
            fix = await asyncio.wait_for(
                self._location.get_current_location(self._timeout),
                timeout=self._timeout,
            )
        except TimeoutError:
            logger.warning("geo_probe.location_timeout", timeout_s=self._timeout)
            return None
        except Exception:
            logger.warning("geo_probe.location_failed", exc_info=True)
            return None

        if fix is None:
            logger.info("geo_probe.location_unavailable")
            return None

        if fix.address is None and self._geocoder is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info("geo_probe.geocode_skipped", reason="deadline")
                return fix
            address = await self._reverse_geocode(fix, remaining)
            if address:
                fix = fix.model_copy(update={"address": address})
        return fix

    async def _reverse_geocode(self, fix: GeoFix, timeout: float) -> str | None:
        try:
            return await asyncio.wait_for(
                self._geocoder.reverse_geocode(fix.latitude, fix.longitude),  # type: ignore[union-attr]
                timeout=timeout,
            )
        except Exception:
            # Includes TimeoutError; the address is optional.
            logger.warning("geo_probe.geocode_failed", exc_info=True)
            return None

    async def _read_vitals(self) -> DeviceVitals:
        if self._vitals is None:
            return DeviceVitals()
        try:
            return await asyncio.wait_for(self._vitals.get_vitals(), timeout=self._timeout)
        except Exception:
            logger.warning("geo_probe.vitals_failed", exc_info=True)
            return DeviceVitals()
