from __future__ import annotations

from enum import StrEnum


class TriggerType(StrEnum):
    """How an emergency activation was initiated."""

    __slots__ = ()

    VOLUME_BUTTON_SEQUENCE = "volume_button_sequence"
    SHAKE_DETECTION = "shake_detection"
    POWER_BUTTON_PATTERN = "power_button_pattern"
    MANUAL_BUTTON = "manual_button"
    WIDGET_BUTTON = "widget_button"
    NOTIFICATION_ACTION = "notification_action"
    LOCK_SCREEN_WIDGET = "lock_screen_widget"


class PatternKind(StrEnum):
    __slots__ = ()

    BUTTON_SEQUENCE = "button_sequence"
    SHAKE_COUNT = "shake_count"
    POWER_PRESS_COUNT = "power_press_count"


class ButtonToken(StrEnum):
    __slots__ = ()

    UP = "UP"
    DOWN = "DOWN"


class RawInput(StrEnum):
    """Raw tokens delivered by the host's sensor/input layer."""

    __slots__ = ()

    VOLUME_UP = "volume_up"
    VOLUME_DOWN = "volume_down"
    SHAKE = "shake"
    POWER_PRESS = "power_press"


class SOSStatus(StrEnum):
    __slots__ = ()

    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class EngineStatus(StrEnum):
    __slots__ = ()

    IDLE = "idle"
    COUNTDOWN = "countdown"
    ACTIVE = "active"
    RESOLVING = "resolving"


class DeliveryOutcome(StrEnum):
    __slots__ = ()

    SENT = "sent"
    FAILED = "failed"


class RecommendationPriority(StrEnum):
    __slots__ = ()

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
