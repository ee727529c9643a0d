"""Alert message composition.

Pure functions: ``(template, snapshot, settings) -> text``.  No I/O and no
clock reads unless the caller omits ``now``.

Supported placeholders
----------------------
``{LOCATION}``       ``Lat: <lat>, Lng: <lng>`` or ``Location unavailable``
``{MAPS_LINK}``      ``https://maps.google.com/?q=<lat>,<lng>`` (omitted without a fix)
``{TIMESTAMP}``      ``YYYY-MM-DD HH:MM:SS`` when ``include_timestamp``
``{BATTERY}``        ``NN%`` when ``include_battery_info``
``{PERSONAL_INFO}``  blood group / medical notes / allergies, only when
                     ``include_personal_info`` is explicitly enabled

A template line whose placeholders all render empty is dropped, so a
``Maps:`` label never dangles without a link.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Final

from safeguard.models.snapshot import DeviceSnapshot
from safeguard.models.user_settings import UserSettings

LOCATION_UNAVAILABLE: Final[str] = "Location unavailable"
MAPS_URL: Final[str] = "https://maps.google.com/?q={lat},{lng}"

_PLACEHOLDER_RE: Final[re.Pattern[str]] = re.compile(
    r"\{(LOCATION|MAPS_LINK|TIMESTAMP|BATTERY|PERSONAL_INFO)\}"
)
_MAPS_LINK_RE: Final[re.Pattern[str]] = re.compile(
    r"https://maps\.google\.com/\?q=(-?\d+(?:\.\d+)?(?:[eE]-?\d+)?),(-?\d+(?:\.\d+)?(?:[eE]-?\d+)?)"
)
_TIMESTAMP_FMT: Final[str] = "%Y-%m-%d %H:%M:%S"


# ---------------------------------------------------------------------------
# Fragments
# ---------------------------------------------------------------------------


def location_text(snapshot: DeviceSnapshot) -> str:
    fix = snapshot.location
    if fix is None:
        return LOCATION_UNAVAILABLE
    text = f"Lat: {fix.latitude}, Lng: {fix.longitude}"
    if fix.address:
        text += f" ({fix.address})"
    return text


def maps_link(snapshot: DeviceSnapshot) -> str:
    fix = snapshot.location
    if fix is None:
        return ""
    return MAPS_URL.format(lat=fix.latitude, lng=fix.longitude)


def battery_text(snapshot: DeviceSnapshot) -> str:
    text = f"{snapshot.battery_level}%"
    if snapshot.is_charging:
        text += " (charging)"
    return text


def personal_info_text(user_settings: UserSettings) -> str:
    if user_settings.include_personal_info is not True:
        return ""
    lines: list[str] = []
    if user_settings.blood_group:
        lines.append(f"Blood: {user_settings.blood_group}")
    if user_settings.medical_notes:
        lines.append(f"Medical: {user_settings.medical_notes}")
    if user_settings.allergies:
        lines.append(f"Allergies: {user_settings.allergies}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def compose_alert(
    template: str,
    snapshot: DeviceSnapshot,
    user_settings: UserSettings,
    now: datetime | None = None,
) -> str:
    """Render *template* against *snapshot*."""
    now = now or datetime.now()
    battery = battery_text(snapshot) if user_settings.include_battery_info else ""
    personal = personal_info_text(user_settings)

    values = {
        "LOCATION": location_text(snapshot),
        "MAPS_LINK": maps_link(snapshot) if user_settings.include_map_link else "",
        "TIMESTAMP": now.strftime(_TIMESTAMP_FMT) if user_settings.include_timestamp else "",
        "BATTERY": battery,
        "PERSONAL_INFO": personal,
    }

    lines: list[str] = []
    for line in template.splitlines():
        names = _PLACEHOLDER_RE.findall(line)
        if names and not any(values[name] for name in names):
            continue
        lines.append(_PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], line))
    message = "\n".join(lines)

    if battery and "{BATTERY}" not in template:
        message += f"\nBattery: {battery}"
    if personal and "{PERSONAL_INFO}" not in template:
        message += f"\n{personal}"

    return _collapse_blank_lines(message).strip()


def compose_follow_up(
    snapshot: DeviceSnapshot,
    update_number: int,
    user_settings: UserSettings,
    now: datetime | None = None,
) -> str:
    """Render a periodic live-location update."""
    now = now or datetime.now()
    lines = [f"LIVE LOCATION UPDATE #{update_number}", location_text(snapshot)]
    link = maps_link(snapshot)
    if link and user_settings.include_map_link:
        lines.append(link)
    lines.append(f"Time: {now.strftime('%H:%M:%S')}")
    if user_settings.include_battery_info:
        lines.append(f"Battery: {battery_text(snapshot)}")
    fix = snapshot.location
    if fix is not None and fix.accuracy is not None:
        lines.append(f"Accuracy: {int(fix.accuracy)}m")
    return "\n".join(lines)


def parse_maps_link(message: str) -> tuple[float, float] | None:
    """Extract ``(lat, lng)`` from the first maps link in *message*."""
    match = _MAPS_LINK_RE.search(message)
    if match is None:
        return None
    return float(match.group(1)), float(match.group(2))


def _collapse_blank_lines(text: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", text)
