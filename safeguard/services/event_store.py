"""Durable append/update log of emergency activations.

:class:`EventStore` is a thin typed wrapper over a
:class:`PersistenceBackend`.  It assigns monotonically increasing ids,
enforces the one-way status lifecycle ``active -> resolved | cancelled``
and keeps the delivery audit (SMS count per event, one
:class:`LocationUpdate` per follow-up with a fix).  Two backends are
provided: an in-memory one and an append-only JSON-lines file that is
flushed and fsynced on every write.
"""

from __future__ import annotations

import asyncio
import os
from collections import defaultdict
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

import orjson
import structlog

from safeguard.errors import InvariantViolation
from safeguard.models.enums import SOSStatus, TriggerType
from safeguard.models.event import LocationUpdate, SOSEvent
from safeguard.models.snapshot import DeviceSnapshot

logger = structlog.get_logger(__name__)

_TERMINAL_STATUSES = frozenset({SOSStatus.RESOLVED, SOSStatus.CANCELLED})


# ---------------------------------------------------------------------------
# Persistence backend protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class PersistenceBackend(Protocol):
    """Async storage interface supplied by the host."""

    async def append(self, event: SOSEvent) -> None: ...

    async def update(self, event_id: int, status: SOSStatus, resolved_at: datetime | None) -> None: ...

    async def record_delivery(self, event_id: int, sent: int) -> None: ...

    async def append_location(self, update: LocationUpdate) -> None: ...

    async def query_all(self) -> list[SOSEvent]: ...

    async def query_locations(self, event_id: int) -> list[LocationUpdate]: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryPersistence:
    """Dict-backed store for tests and ephemeral sessions."""

    __slots__ = ("_events", "_locations", "writes")

    def __init__(self, events: list[SOSEvent] | None = None) -> None:
        self._events: dict[int, SOSEvent] = {e.id: e for e in events or []}
        self._locations: dict[int, list[LocationUpdate]] = defaultdict(list)
        self.writes = 0

    async def append(self, event: SOSEvent) -> None:
        if event.id in self._events:
            raise ValueError(f"event {event.id} already exists")
        self._events[event.id] = event
        self.writes += 1

    async def update(self, event_id: int, status: SOSStatus, resolved_at: datetime | None) -> None:
        event = self._events[event_id]
        self._events[event_id] = event.model_copy(update={"status": status, "resolved_at": resolved_at})
        self.writes += 1

    async def record_delivery(self, event_id: int, sent: int) -> None:
        event = self._events[event_id]
        self._events[event_id] = event.model_copy(
            update={"sms_sent_count": event.sms_sent_count + sent}
        )
        self.writes += 1

    async def append_location(self, update: LocationUpdate) -> None:
        self._locations[update.event_id].append(update)
        self.writes += 1

    async def query_all(self) -> list[SOSEvent]:
        return list(self._events.values())

    async def query_locations(self, event_id: int) -> list[LocationUpdate]:
        return list(self._locations.get(event_id, []))


# ---------------------------------------------------------------------------
# JSON-lines file backend
# ---------------------------------------------------------------------------


class JsonLinesPersistence:
    """Append-only file log, replayed on every query.

    Record shapes::

        {"op": "append", "event": {...}}
        {"op": "update", "id": ..., "status": ..., "resolved_at": ...}
        {"op": "delivery", "id": ..., "sent": ...}
        {"op": "location", "update": {...}}
    """

    __slots__ = ("_lock", "_path")

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def append(self, event: SOSEvent) -> None:
        await self._write({"op": "append", "event": event.model_dump(mode="json")})

    async def update(self, event_id: int, status: SOSStatus, resolved_at: datetime | None) -> None:
        await self._write(
            {
                "op": "update",
                "id": event_id,
                "status": str(status),
                "resolved_at": resolved_at.isoformat() if resolved_at else None,
            }
        )

    async def record_delivery(self, event_id: int, sent: int) -> None:
        await self._write({"op": "delivery", "id": event_id, "sent": sent})

    async def append_location(self, update: LocationUpdate) -> None:
        await self._write({"op": "location", "update": update.model_dump(mode="json")})

    async def query_all(self) -> list[SOSEvent]:
        events, _ = await self._replay()
        return list(events.values())

    async def query_locations(self, event_id: int) -> list[LocationUpdate]:
        _, locations = await self._replay()
        return [u for u in locations if u.event_id == event_id]

    async def _replay(self) -> tuple[dict[int, SOSEvent], list[LocationUpdate]]:
        async with self._lock:
            raw = await asyncio.to_thread(self._read)

        events: dict[int, SOSEvent] = {}
        locations: list[LocationUpdate] = []
        for lineno, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                record = orjson.loads(line)
            except orjson.JSONDecodeError:
                # A torn final line from a crash mid-write.
                logger.warning("event_store.corrupt_line", path=str(self._path), line=lineno)
                continue

            op = record["op"]
            if op == "append":
                event = SOSEvent.model_validate(record["event"])
                events[event.id] = event
            elif op == "location":
                locations.append(LocationUpdate.model_validate(record["update"]))
            elif record.get("id") not in events:
                continue
            elif op == "update":
                events[record["id"]] = events[record["id"]].model_copy(
                    update={
                        "status": SOSStatus(record["status"]),
                        "resolved_at": (
                            datetime.fromisoformat(record["resolved_at"]) if record["resolved_at"] else None
                        ),
                    }
                )
            elif op == "delivery":
                event = events[record["id"]]
                events[event.id] = event.model_copy(
                    update={"sms_sent_count": event.sms_sent_count + record["sent"]}
                )
        return events, locations

    async def _write(self, record: dict) -> None:
        line = orjson.dumps(record) + b"\n"
        async with self._lock:
            await asyncio.to_thread(self._append_line, line)

    def _append_line(self, line: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("ab") as fh:
            fh.write(line)
            fh.flush()
            os.fsync(fh.fileno())

    def _read(self) -> bytes:
        if not self._path.exists():
            return b""
        return self._path.read_bytes()


# ---------------------------------------------------------------------------
# EventStore
# ---------------------------------------------------------------------------


class EventStore:
    """Typed access to the activation log.  Owned by the engine."""

    __slots__ = ("_backend", "_index", "_lock", "_next_id")

    def __init__(self, backend: PersistenceBackend | None = None) -> None:
        self._backend: PersistenceBackend = backend if backend is not None else InMemoryPersistence()
        self._index: dict[int, SOSEvent] | None = None
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[int, SOSEvent]:
        if self._index is None:
            events = await self._backend.query_all()
            self._index = {e.id: e for e in events}
            self._next_id = max(self._index, default=0) + 1
            logger.info("event_store.loaded", events=len(self._index), next_id=self._next_id)
        return self._index

    async def create(
        self,
        trigger_type: TriggerType,
        snapshot: DeviceSnapshot,
        created_at: datetime | None = None,
    ) -> SOSEvent:
        """Persist a new ``active`` event.  Returns once the write is durable."""
        async with self._lock:
            index = await self._load()
            event = SOSEvent.from_snapshot(self._next_id, trigger_type, snapshot, created_at)
            await self._backend.append(event)
            index[event.id] = event
            self._next_id += 1

        logger.info(
            "event_store.created",
            event_id=event.id,
            trigger_type=event.trigger_type,
            has_location=event.has_location,
        )
        return event

    async def transition(
        self,
        event_id: int,
        status: SOSStatus,
        resolved_at: datetime | None = None,
    ) -> SOSEvent:
        """Move an active event to ``resolved`` or ``cancelled``."""
        async with self._lock:
            index = await self._load()
            event = index.get(event_id)
            if event is None:
                raise KeyError(event_id)
            if event.status != SOSStatus.ACTIVE or status not in _TERMINAL_STATUSES:
                raise InvariantViolation(f"mark event {event_id} {status}", str(event.status))

            resolved_at = resolved_at or datetime.now(UTC)
            await self._backend.update(event_id, status, resolved_at)
            updated = event.model_copy(update={"status": status, "resolved_at": resolved_at})
            index[event_id] = updated

        logger.info("event_store.transitioned", event_id=event_id, status=status)
        return updated

    async def record_delivery(self, event_id: int, sent: int) -> SOSEvent:
        """Add *sent* delivered messages to the event's SMS count.

        Allowed in any status: an alert fan-out may finish after the
        emergency was already closed.
        """
        async with self._lock:
            index = await self._load()
            event = index.get(event_id)
            if event is None:
                raise KeyError(event_id)
            if sent <= 0:
                return event
            await self._backend.record_delivery(event_id, sent)
            updated = event.model_copy(update={"sms_sent_count": event.sms_sent_count + sent})
            index[event_id] = updated

        logger.debug("event_store.delivery_recorded", event_id=event_id, sent=sent)
        return updated

    async def add_location_update(
        self,
        event_id: int,
        update_number: int,
        snapshot: DeviceSnapshot,
        recorded_at: datetime | None = None,
    ) -> LocationUpdate | None:
        """Record a follow-up position.  Snapshots without a fix are not stored."""
        async with self._lock:
            index = await self._load()
            if event_id not in index:
                raise KeyError(event_id)
            update = LocationUpdate.from_snapshot(event_id, update_number, snapshot, recorded_at)
            if update is None:
                return None
            await self._backend.append_location(update)

        logger.debug("event_store.location_recorded", event_id=event_id, update_number=update_number)
        return update

    async def location_updates(self, event_id: int) -> list[LocationUpdate]:
        """Follow-up positions for one event, in recording order."""
        return await self._backend.query_locations(event_id)

    async def get(self, event_id: int) -> SOSEvent | None:
        index = await self._load()
        return index.get(event_id)

    async def all(self) -> list[SOSEvent]:
        """Every event, oldest first."""
        index = await self._load()
        return sorted(index.values(), key=lambda e: e.id)

    async def active(self) -> list[SOSEvent]:
        return [e for e in await self.all() if e.status == SOSStatus.ACTIVE]
