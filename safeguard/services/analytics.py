"""Read-only safety analytics over the activation history.

All functions are pure over a list of :class:`SOSEvent`; the
:class:`SafetyAnalytics` facade only adds "read everything from the
event store, then compute".  Nothing here mutates state or caches.

Metrics
-------
* **score**: 100 minus a fixed penalty for every event inside the
  trailing window, floored at 0.
* **peak hour**: hour of day (local time) with the most events; ties go to
  the lowest hour.
* **streak**: whole days since the most recent event.
* **hotspots**: greedy clustering in chronological order.  An event joins
  the first existing cluster whose running centroid lies within the
  radius (haversine distance); otherwise it starts a new cluster.  The
  result is stable for a given event order, not globally optimal.
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Callable, Final

import structlog

from safeguard.models.analytics import Hotspot, SafetyInsights, SafetyRecommendation
from safeguard.models.enums import RecommendationPriority, TriggerType
from safeguard.models.event import SOSEvent
from safeguard.services.event_store import EventStore

logger = structlog.get_logger(__name__)

EARTH_RADIUS_M: Final[float] = 6_371_000.0
MAX_SCORE: Final[int] = 100


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in metres."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


# ---------------------------------------------------------------------------
# Pure metrics
# ---------------------------------------------------------------------------


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def _local(dt: datetime, tz: tzinfo | None) -> datetime:
    return _aware(dt).astimezone(tz)


def events_in_window(events: list[SOSEvent], now: datetime, window_days: int = 30) -> list[SOSEvent]:
    cutoff = _aware(now) - timedelta(days=window_days)
    return [e for e in events if _aware(e.created_at) > cutoff]


def safety_score(
    events: list[SOSEvent],
    now: datetime,
    *,
    window_days: int = 30,
    penalty_per_event: int = 10,
) -> int:
    recent = events_in_window(events, now, window_days)
    return max(0, MAX_SCORE - penalty_per_event * len(recent))


def peak_hours(events: list[SOSEvent], tz: tzinfo | None = None, top: int = 3) -> list[int]:
    """Busiest hours of day, most events first, ties by lowest hour."""
    counts = Counter(_local(e.created_at, tz).hour for e in events)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [hour for hour, _ in ranked[:top]]


def peak_hour(events: list[SOSEvent], tz: tzinfo | None = None) -> int | None:
    hours = peak_hours(events, tz, top=1)
    return hours[0] if hours else None


def peak_weekdays(events: list[SOSEvent], tz: tzinfo | None = None, top: int = 3) -> list[int]:
    counts = Counter(_local(e.created_at, tz).weekday() for e in events)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [day for day, _ in ranked[:top]]


def streak_days(events: list[SOSEvent], now: datetime) -> int:
    """Whole days since the latest event; 0 when there is no history."""
    if not events:
        return 0
    latest = max(_aware(e.created_at) for e in events)
    return max(0, (_aware(now) - latest).days)


def most_used_trigger(events: list[SOSEvent]) -> TriggerType | None:
    if not events:
        return None
    return Counter(e.trigger_type for e in events).most_common(1)[0][0]


def cluster_events(events: list[SOSEvent], radius_meters: float = 500.0) -> list[Hotspot]:
    """Every cluster, in creation order.  Events without a fix are skipped."""
    located = sorted(
        (e for e in events if e.has_location),
        key=lambda e: (_aware(e.created_at), e.id),
    )

    clusters: list[Hotspot] = []
    for event in located:
        lat, lon = event.latitude, event.longitude
        target = next(
            (
                c
                for c in clusters
                if haversine_meters(c.latitude, c.longitude, lat, lon) <= radius_meters  # type: ignore[arg-type]
            ),
            None,
        )
        if target is None:
            clusters.append(
                Hotspot(
                    latitude=lat,  # type: ignore[arg-type]
                    longitude=lon,  # type: ignore[arg-type]
                    member_count=1,
                    radius_meters=radius_meters,
                    event_ids=[event.id],
                    description=event.address,
                )
            )
            continue

        n = target.member_count
        target.latitude = (target.latitude * n + lat) / (n + 1)  # type: ignore[operator]
        target.longitude = (target.longitude * n + lon) / (n + 1)  # type: ignore[operator]
        target.member_count = n + 1
        target.event_ids.append(event.id)
        if target.description is None:
            target.description = event.address

    return clusters


def hotspots(
    events: list[SOSEvent],
    radius_meters: float = 500.0,
    *,
    min_members: int = 2,
    limit: int = 5,
) -> list[Hotspot]:
    """Clusters with repeat incidents, largest first."""
    clusters = [c for c in cluster_events(events, radius_meters) if c.member_count >= min_members]
    clusters.sort(key=lambda c: -c.member_count)
    return clusters[:limit]


def recommendations(
    *,
    score: int,
    peak: int | None,
    current_hour: int,
    hotspot_count: int,
    contact_count: int | None,
) -> list[SafetyRecommendation]:
    recs: list[SafetyRecommendation] = []

    if contact_count == 0:
        recs.append(
            SafetyRecommendation(
                id="add_contact",
                priority=RecommendationPriority.HIGH,
                title="Add an emergency contact",
                description="Alerts cannot reach anyone until at least one contact is configured.",
            )
        )
    if score < 50:
        recs.append(
            SafetyRecommendation(
                id="share_location",
                priority=RecommendationPriority.HIGH,
                title="Consider sharing your location",
                description=(
                    "Based on recent events, sharing your live location with trusted "
                    "contacts during risky times could help."
                ),
            )
        )
    if peak is not None and min((current_hour - peak) % 24, (peak - current_hour) % 24) <= 1:
        recs.append(
            SafetyRecommendation(
                id="peak_hour_alert",
                priority=RecommendationPriority.MEDIUM,
                title="You're in a peak risk time",
                description=(
                    "Historical data shows more incidents around this time. "
                    "Stay alert and consider scheduling a check-in."
                ),
            )
        )
    if hotspot_count:
        recs.append(
            SafetyRecommendation(
                id="danger_zone",
                priority=RecommendationPriority.MEDIUM,
                title="Add danger zone alerts",
                description=(
                    f"We've identified {hotspot_count} location(s) with multiple incidents. "
                    "Consider adding them as danger zones."
                ),
            )
        )

    order = list(RecommendationPriority)
    return sorted(recs, key=lambda r: order.index(r.priority))


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class SafetyAnalytics:
    """On-demand analytics over an :class:`EventStore`.

    Parameters
    ----------
    store:
        Source of the event history.  Only read.
    window_days:
        Trailing window used by the score.
    penalty_per_event:
        Score deduction per event inside the window.
    hotspot_radius_meters:
        Cluster radius.
    tz:
        Time zone for hour-of-day grouping.  ``None`` uses the host's
        local zone.
    clock:
        Source of "now".
    """

    __slots__ = ("_clock", "_penalty", "_radius", "_store", "_tz", "_window")

    def __init__(
        self,
        store: EventStore,
        *,
        window_days: int = 30,
        penalty_per_event: int = 10,
        hotspot_radius_meters: float = 500.0,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._window = window_days
        self._penalty = penalty_per_event
        self._radius = hotspot_radius_meters
        self._tz = tz
        self._clock = clock

    async def score(self) -> int:
        return safety_score(
            await self._store.all(),
            self._clock(),
            window_days=self._window,
            penalty_per_event=self._penalty,
        )

    async def peak_hour(self) -> int | None:
        return peak_hour(await self._store.all(), self._tz)

    async def streak_days(self) -> int:
        return streak_days(await self._store.all(), self._clock())

    async def hotspots(self) -> list[Hotspot]:
        return hotspots(await self._store.all(), self._radius)

    async def insights(self, contact_count: int | None = None) -> SafetyInsights:
        events = await self._store.all()
        now = self._clock()

        score = safety_score(events, now, window_days=self._window, penalty_per_event=self._penalty)
        peak = peak_hour(events, self._tz)
        spots = hotspots(events, self._radius)

        insights = SafetyInsights(
            total_events=len(events),
            events_in_window=len(events_in_window(events, now, self._window)),
            score=score,
            peak_hour=peak,
            peak_hours=peak_hours(events, self._tz),
            peak_weekdays=peak_weekdays(events, self._tz),
            streak_days=streak_days(events, now),
            most_used_trigger=most_used_trigger(events),
            hotspots=spots,
            recommendations=recommendations(
                score=score,
                peak=peak,
                current_hour=_local(now, self._tz).hour,
                hotspot_count=len(spots),
                contact_count=contact_count,
            ),
            generated_at=now,
        )
        logger.info(
            "analytics.computed",
            total_events=insights.total_events,
            score=insights.score,
            hotspots=len(spots),
        )
        return insights
