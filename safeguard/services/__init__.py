"""SafeGuard engine components.

Leaves first: geo probe, trigger detector, alert composer, dispatcher and
event store; the engine orchestrates them and analytics reads the store.
"""

from __future__ import annotations

from safeguard.services.alert_composer import compose_alert, compose_follow_up, parse_maps_link
from safeguard.services.analytics import SafetyAnalytics, haversine_meters
from safeguard.services.contacts import ContactRegistry, dispatch_order
from safeguard.services.dispatcher import (
    ContactDelivery,
    Dispatcher,
    DispatchResult,
    MessagingCapability,
)
from safeguard.services.engine import SOSEngine
from safeguard.services.event_store import (
    EventStore,
    InMemoryPersistence,
    JsonLinesPersistence,
    PersistenceBackend,
)
from safeguard.services.geo_probe import GeoProbe, LocationProvider, ReverseGeocoder, VitalsProvider
from safeguard.services.trigger_detector import TriggerDetector, patterns_from_settings

__all__ = [
    "ContactDelivery",
    "ContactRegistry",
    "DispatchResult",
    "Dispatcher",
    "EventStore",
    "GeoProbe",
    "InMemoryPersistence",
    "JsonLinesPersistence",
    "LocationProvider",
    "MessagingCapability",
    "PersistenceBackend",
    "ReverseGeocoder",
    "SOSEngine",
    "SafetyAnalytics",
    "TriggerDetector",
    "VitalsProvider",
    "compose_alert",
    "compose_follow_up",
    "dispatch_order",
    "haversine_meters",
    "parse_maps_link",
    "patterns_from_settings",
]
