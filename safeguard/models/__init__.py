from safeguard.models.analytics import Hotspot, SafetyInsights, SafetyRecommendation
from safeguard.models.contact import EmergencyContact
from safeguard.models.enums import (
    ButtonToken,
    DeliveryOutcome,
    EngineStatus,
    PatternKind,
    RawInput,
    RecommendationPriority,
    SOSStatus,
    TriggerType,
)
from safeguard.models.event import LocationUpdate, SOSEvent
from safeguard.models.snapshot import DeviceSnapshot, DeviceVitals, GeoFix
from safeguard.models.state import (
    IDLE,
    ActiveState,
    CountdownState,
    EngineState,
    IdleState,
    ResolvingState,
)
from safeguard.models.trigger import (
    ButtonSequencePattern,
    PowerPressCountPattern,
    ShakeCountPattern,
    TriggerEvent,
    TriggerPattern,
)
from safeguard.models.user_settings import DEFAULT_SMS_TEMPLATE, UserSettings

__all__ = [
    "ActiveState",
    "ButtonSequencePattern",
    "ButtonToken",
    "CountdownState",
    "DEFAULT_SMS_TEMPLATE",
    "DeliveryOutcome",
    "DeviceSnapshot",
    "DeviceVitals",
    "EmergencyContact",
    "EngineState",
    "EngineStatus",
    "GeoFix",
    "Hotspot",
    "IDLE",
    "IdleState",
    "LocationUpdate",
    "PatternKind",
    "PowerPressCountPattern",
    "RawInput",
    "RecommendationPriority",
    "ResolvingState",
    "SOSEvent",
    "SOSStatus",
    "SafetyInsights",
    "SafetyRecommendation",
    "ShakeCountPattern",
    "TriggerEvent",
    "TriggerPattern",
    "TriggerType",
    "UserSettings",
]
