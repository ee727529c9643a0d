"""Tests for safety analytics over the event history."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from safeguard.models.enums import TriggerType
from safeguard.models.event import SOSEvent
from safeguard.services.analytics import (
    SafetyAnalytics,
    cluster_events,
    haversine_meters,
    hotspots,
    peak_hour,
    recommendations,
    safety_score,
    streak_days,
)
from safeguard.services.event_store import EventStore, InMemoryPersistence

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


def _event(
    event_id: int,
    created_at: datetime,
    *,
    lat: float | None = None,
    lon: float | None = None,
    trigger_type: TriggerType = TriggerType.MANUAL_BUTTON,
) -> SOSEvent:
    return SOSEvent(
        id=event_id,
        trigger_type=trigger_type,
        latitude=lat,
        longitude=lon,
        created_at=created_at,
    )


def _at_hours(hours: list[int]) -> list[SOSEvent]:
    base = datetime(2024, 6, 1, tzinfo=UTC)
    return [_event(i, base + timedelta(days=i, hours=h)) for i, h in enumerate(hours, start=1)]


class TestPeakHour:
    def test_most_frequent_hour(self) -> None:
        events = _at_hours([22, 22, 22, 22, 22, 23, 23, 23, 21, 21, 14])
        assert peak_hour(events, UTC) == 22, "hour 22 occurs most often"

    def test_tie_goes_to_lowest_hour(self) -> None:
        assert peak_hour(_at_hours([9, 9, 3, 3]), UTC) == 3, "a tie resolves to the earliest hour"

    def test_empty_history(self) -> None:
        assert peak_hour([], UTC) is None, "no history has no peak hour"


class TestSafetyScore:
    def test_no_events_is_perfect(self) -> None:
        assert safety_score([], NOW) == 100, "an empty history scores 100"

    def test_penalty_per_recent_event(self) -> None:
        events = [_event(i, NOW - timedelta(days=i)) for i in range(1, 4)]
        assert safety_score(events, NOW) == 70, "three recent events cost 10 points each"

    def test_events_outside_window_are_ignored(self) -> None:
        events = [_event(1, NOW - timedelta(days=45))]
        assert safety_score(events, NOW) == 100, "events older than the window do not count"

    def test_floor_at_zero(self) -> None:
        events = [_event(i, NOW - timedelta(hours=i)) for i in range(1, 15)]
        assert safety_score(events, NOW) == 0, "the score never goes below zero"

    def test_adding_an_event_never_raises_the_score(self) -> None:
        events: list[SOSEvent] = []
        previous = safety_score(events, NOW)
        for i in range(1, 13):
            events.append(_event(i, NOW - timedelta(days=i * 3)))
            current = safety_score(events, NOW)
            assert current <= previous, "score must be monotonically non-increasing"
            previous = current

    def test_naive_timestamps_are_treated_as_utc(self) -> None:
        events = [_event(1, (NOW - timedelta(days=1)).replace(tzinfo=None))]
        assert safety_score(events, NOW) == 90, "a naive timestamp one day old is inside the window"


class TestStreak:
    def test_days_since_latest_event(self) -> None:
        events = [_event(1, NOW - timedelta(days=10)), _event(2, NOW - timedelta(days=3, hours=2))]
        assert streak_days(events, NOW) == 3, "whole days since the newest event"

    def test_no_history(self) -> None:
        assert streak_days([], NOW) == 0, "no history means no streak"


class TestHotspots:
    def test_haversine_one_degree_latitude(self) -> None:
        distance = haversine_meters(0.0, 0.0, 1.0, 0.0)
        assert distance == pytest.approx(111_195, rel=1e-3), "one degree of latitude is about 111 km"

    def test_nearby_events_cluster(self) -> None:
        events = [
            _event(1, NOW - timedelta(days=3), lat=12.9716, lon=77.5946),
            _event(2, NOW - timedelta(days=2), lat=12.9720, lon=77.5950),
            _event(3, NOW - timedelta(days=1), lat=12.9712, lon=77.5942),
            _event(4, NOW, lat=13.0827, lon=80.2707),
        ]

        clusters = cluster_events(events, radius_meters=500)

        assert [c.member_count for c in clusters] == [3, 1], "three nearby events and one far away"
        assert clusters[0].event_ids == [1, 2, 3], "cluster members keep event order"
        assert clusters[0].latitude == pytest.approx(12.9716, abs=1e-4), "the centroid sits among the members"

    def test_singletons_and_unlocated_events_are_not_hotspots(self) -> None:
        events = [
            _event(1, NOW, lat=12.9716, lon=77.5946),
            _event(2, NOW, lat=12.9717, lon=77.5947),
            _event(3, NOW, lat=40.0, lon=-74.0),
            _event(4, NOW),
        ]
        spots = hotspots(events, 500)
        assert len(spots) == 1, "only the two-member cluster qualifies"
        assert spots[0].member_count == 2, "the hotspot counts both nearby events"

    def test_largest_first_and_limited(self) -> None:
        events = []
        event_id = 0
        for cluster, size in enumerate([2, 4, 3, 2, 2, 2]):
            for _ in range(size):
                event_id += 1
                events.append(_event(event_id, NOW, lat=10.0 + cluster, lon=20.0))
        spots = hotspots(events, 500)
        assert len(spots) == 5, "at most five hotspots are reported"
        assert [s.member_count for s in spots[:2]] == [4, 3], "hotspots are ordered largest first"


class TestRecommendations:
    def test_missing_contacts_is_high_priority(self) -> None:
        recs = recommendations(score=100, peak=None, current_hour=12, hotspot_count=0, contact_count=0)
        assert [r.id for r in recs] == ["add_contact"], "no contacts yields only the add-contact advice"

    def test_peak_hour_wraps_around_midnight(self) -> None:
        recs = recommendations(score=100, peak=23, current_hour=0, hotspot_count=0, contact_count=2)
        assert [r.id for r in recs] == ["peak_hour_alert"], "hour 0 is within one hour of a 23:00 peak"

    def test_high_priority_sorted_first(self) -> None:
        recs = recommendations(score=20, peak=None, current_hour=12, hotspot_count=2, contact_count=2)
        assert [r.id for r in recs] == ["share_location", "danger_zone"], "high priority advice comes first"


class TestSafetyAnalytics:
    async def test_insights(self) -> None:
        history = _at_hours([22, 22, 21])
        store = EventStore(InMemoryPersistence(history))
        analytics = SafetyAnalytics(store, tz=UTC, clock=lambda: NOW)

        insights = await analytics.insights(contact_count=1)

        assert insights.total_events == 3, "every stored event is counted"
        assert insights.events_in_window == 3, "all three events fall inside the window"
        assert insights.score == 70, "three events in the window score 70"
        assert insights.peak_hour == 22, "hour 22 is the peak"
        assert insights.most_used_trigger == TriggerType.MANUAL_BUTTON, "only manual triggers were used"
        assert insights.hotspots == [], "singleton events make no hotspots"
        assert await analytics.peak_hour() == 22, "the facade peak hour matches insights"
        assert await analytics.score() == 70, "the facade score matches insights"
        assert await analytics.streak_days() == 10, "ten days since the newest event"
