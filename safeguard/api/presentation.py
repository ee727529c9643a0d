"""Display lookup tables for the host UI.

Plain mappings from a variant tag to what the UI shows.  The engine never
reads these.
"""

from __future__ import annotations

from typing import Final

from safeguard.models.enums import EngineStatus, SOSStatus, TriggerType

SOS_STATUS_DISPLAY: Final[dict[SOSStatus, dict[str, str]]] = {
    SOSStatus.ACTIVE: {"label": "Active", "color": "#D32F2F"},
    SOSStatus.RESOLVED: {"label": "Resolved", "color": "#388E3C"},
    SOSStatus.CANCELLED: {"label": "Cancelled", "color": "#757575"},
}

ENGINE_STATUS_DISPLAY: Final[dict[EngineStatus, dict[str, str]]] = {
    EngineStatus.IDLE: {"label": "Ready", "color": "#388E3C"},
    EngineStatus.COUNTDOWN: {"label": "Sending alert in", "color": "#F57C00"},
    EngineStatus.ACTIVE: {"label": "SOS active", "color": "#D32F2F"},
    EngineStatus.RESOLVING: {"label": "Stopping", "color": "#757575"},
}

TRIGGER_LABELS: Final[dict[TriggerType, str]] = {
    TriggerType.VOLUME_BUTTON_SEQUENCE: "Volume buttons",
    TriggerType.SHAKE_DETECTION: "Shake",
    TriggerType.POWER_BUTTON_PATTERN: "Power button",
    TriggerType.MANUAL_BUTTON: "SOS button",
    TriggerType.WIDGET_BUTTON: "Home screen widget",
    TriggerType.NOTIFICATION_ACTION: "Notification",
    TriggerType.LOCK_SCREEN_WIDGET: "Lock screen",
}
