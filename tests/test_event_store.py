"""Tests for the durable activation log."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from safeguard.errors import InvariantViolation
from safeguard.models.enums import SOSStatus, TriggerType
from safeguard.models.event import SOSEvent
from safeguard.models.snapshot import DeviceSnapshot, GeoFix
from safeguard.services.event_store import EventStore, InMemoryPersistence, JsonLinesPersistence

SNAPSHOT = DeviceSnapshot(
    location=GeoFix(latitude=12.97, longitude=77.59, accuracy=8.0),
    battery_level=64,
    network_type="wifi",
)
MOVED = DeviceSnapshot(
    location=GeoFix(latitude=12.98, longitude=77.60, accuracy=5.0),
    battery_level=61,
)


class TestEventStoreInMemory:
    async def test_create_assigns_increasing_ids(self) -> None:
        backend = InMemoryPersistence()
        store = EventStore(backend)

        first = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        second = await store.create(TriggerType.SHAKE_DETECTION, DeviceSnapshot())

        assert (first.id, second.id) == (1, 2), "ids start at 1 and increase"
        assert first.status == SOSStatus.ACTIVE, "a new event starts active"
        assert first.latitude == 12.97, "the snapshot fix is copied onto the event"
        assert first.sms_sent_count == 0, "no messages are counted before dispatch"
        assert second.has_location is False, "a location-less snapshot stores no coordinates"
        assert backend.writes == 2, "each create is one backend write"

    async def test_resolve_sets_status_and_timestamp(self) -> None:
        store = EventStore()
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

        updated = await store.transition(event.id, SOSStatus.RESOLVED, when)

        assert updated.status == SOSStatus.RESOLVED, "transition returns the new status"
        assert updated.resolved_at == when, "resolved_at is the supplied timestamp"
        assert (await store.get(event.id)).status == SOSStatus.RESOLVED, "get sees the transition"

    async def test_terminal_status_is_final(self) -> None:
        store = EventStore()
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        await store.transition(event.id, SOSStatus.CANCELLED)

        with pytest.raises(InvariantViolation):
            await store.transition(event.id, SOSStatus.RESOLVED)

    async def test_cannot_transition_back_to_active(self) -> None:
        store = EventStore()
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        with pytest.raises(InvariantViolation):
            await store.transition(event.id, SOSStatus.ACTIVE)

    async def test_unknown_event_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            await EventStore().transition(42, SOSStatus.RESOLVED)

    async def test_ids_continue_after_existing_history(self) -> None:
        history = [SOSEvent(id=7, trigger_type=TriggerType.MANUAL_BUTTON)]
        store = EventStore(InMemoryPersistence(history))
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        assert event.id == 8, f"ids continue after the highest stored id, got {event.id}"

    async def test_active_lists_only_open_events(self) -> None:
        store = EventStore()
        first = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        second = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        await store.transition(first.id, SOSStatus.RESOLVED)
        assert [e.id for e in await store.active()] == [second.id], "resolved events are not active"


class TestDeliveryAudit:
    async def test_record_delivery_accumulates(self) -> None:
        store = EventStore()
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)

        await store.record_delivery(event.id, 3)
        updated = await store.record_delivery(event.id, 2)

        assert updated.sms_sent_count == 5, f"counts add up, got {updated.sms_sent_count}"
        assert (await store.get(event.id)).sms_sent_count == 5, "get sees the running count"

    async def test_record_delivery_after_close(self) -> None:
        store = EventStore()
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        await store.transition(event.id, SOSStatus.CANCELLED)

        updated = await store.record_delivery(event.id, 1)

        assert updated.status == SOSStatus.CANCELLED, "recording a delivery never changes status"
        assert updated.sms_sent_count == 1, "a late fan-out is still counted"

    async def test_zero_deliveries_write_nothing(self) -> None:
        backend = InMemoryPersistence()
        store = EventStore(backend)
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)

        await store.record_delivery(event.id, 0)

        assert backend.writes == 1, "only the create reached the backend"

    async def test_record_delivery_unknown_event(self) -> None:
        with pytest.raises(KeyError):
            await EventStore().record_delivery(42, 1)

    async def test_location_updates_in_order(self) -> None:
        store = EventStore()
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)

        await store.add_location_update(event.id, 1, SNAPSHOT)
        second = await store.add_location_update(event.id, 2, MOVED)

        assert second is not None, "a snapshot with a fix is stored"
        assert second.latitude == 12.98 and second.battery_level == 61, "the row mirrors the snapshot"
        updates = await store.location_updates(event.id)
        assert [u.update_number for u in updates] == [1, 2], "rows come back in recording order"

    async def test_location_update_without_fix_is_skipped(self) -> None:
        backend = InMemoryPersistence()
        store = EventStore(backend)
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)

        assert await store.add_location_update(event.id, 1, DeviceSnapshot()) is None, "no fix, no row"
        assert await store.location_updates(event.id) == [], "nothing was stored"
        assert backend.writes == 1, "only the create reached the backend"

    async def test_location_update_unknown_event(self) -> None:
        with pytest.raises(KeyError):
            await EventStore().add_location_update(42, 1, SNAPSHOT)


class TestJsonLinesPersistence:
    async def test_history_survives_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "events" / "sos.jsonl"
        store = EventStore(JsonLinesPersistence(path))
        first = await store.create(TriggerType.VOLUME_BUTTON_SEQUENCE, SNAPSHOT)
        await store.create(TriggerType.MANUAL_BUTTON, DeviceSnapshot())
        await store.transition(first.id, SOSStatus.RESOLVED)

        reloaded = EventStore(JsonLinesPersistence(path))
        events = await reloaded.all()

        assert [e.id for e in events] == [1, 2], "both events are replayed"
        assert events[0].status == SOSStatus.RESOLVED, "the status update is replayed"
        assert events[0].resolved_at is not None, "resolved_at survives the reload"
        assert events[0].network_type == "wifi", "snapshot fields survive the reload"
        assert events[1].status == SOSStatus.ACTIVE, "an open event stays active"
        assert (await reloaded.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)).id == 3, "ids continue"

    async def test_delivery_audit_survives_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "sos.jsonl"
        store = EventStore(JsonLinesPersistence(path))
        event = await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        await store.record_delivery(event.id, 3)
        await store.add_location_update(event.id, 1, MOVED)
        await store.record_delivery(event.id, 2)

        reloaded = EventStore(JsonLinesPersistence(path))

        assert (await reloaded.get(event.id)).sms_sent_count == 5, "delivery records are replayed"
        updates = await reloaded.location_updates(event.id)
        assert len(updates) == 1, f"one location row expected, got {len(updates)}"
        assert (updates[0].latitude, updates[0].longitude) == (12.98, 77.60), "coordinates survive"

    async def test_corrupt_trailing_line_is_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "sos.jsonl"
        store = EventStore(JsonLinesPersistence(path))
        await store.create(TriggerType.MANUAL_BUTTON, SNAPSHOT)
        with path.open("ab") as fh:
            fh.write(b'{"op": "append", "ev')

        events = await JsonLinesPersistence(path).query_all()
        assert [e.id for e in events] == [1], "the torn line is dropped, earlier records kept"

    async def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        backend = JsonLinesPersistence(tmp_path / "absent.jsonl")
        assert await backend.query_all() == [], "a missing log has no events"
        assert await backend.query_locations(1) == [], "a missing log has no location rows"
