"""The emergency lifecycle state machine.

States and transitions
----------------------
``idle --trigger--> countdown``  (countdown > 0 and not silent)
``idle --trigger--> active``     (silent, or countdown == 0)
``countdown --tick--> countdown`` until the count reaches zero, then ``active``
``countdown --cancel--> idle``   (nothing is persisted)
``active --follow-up--> active`` while ``updates_sent < max_location_updates``
``active --cancel|resolve--> resolving --> idle``

Concurrency
-----------
Every transition runs under one :class:`asyncio.Lock`, so at most one is
in flight.  Countdown ticks and follow-ups are background tasks that
re-check an activation *generation* counter under the same lock before
acting.  Cancel/resolve bump the generation and cancel the tasks inside
the lock once the store has recorded the close, so no follow-up can fire
after either returns; a close that fails to persist leaves the engine
active with its schedule intact.  :meth:`SOSEngine.shutdown` cancels and
awaits every background task, including an activation in flight.

The activation record is written (durably) before the first alert is
dispatched, and delivery failures never undo an activation.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Coroutine
from datetime import UTC, datetime
from typing import Any, Callable, NoReturn

import structlog

from safeguard.errors import ConfigurationError, InvariantViolation
from safeguard.models.enums import EngineStatus, RawInput, SOSStatus, TriggerType
from safeguard.models.event import SOSEvent
from safeguard.models.snapshot import DeviceSnapshot
from safeguard.models.state import (
    IDLE,
    ActiveState,
    CountdownState,
    EngineState,
    ResolvingState,
)
from safeguard.models.trigger import TriggerEvent
from safeguard.models.user_settings import UserSettings
from safeguard.services.alert_composer import compose_alert, compose_follow_up
from safeguard.services.contacts import ContactRegistry
from safeguard.services.dispatcher import Dispatcher, DispatchResult
from safeguard.services.event_store import EventStore
from safeguard.services.geo_probe import GeoProbe
from safeguard.services.trigger_detector import TriggerDetector, patterns_from_settings

logger = structlog.get_logger(__name__)

StateListener = Callable[[EngineState], None]

_MAX_WARNINGS = 50


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SOSEngine:
    """Owns the emergency lifecycle for one session.

    Parameters
    ----------
    geo_probe:
        Snapshot source for alerts and follow-ups.
    dispatcher:
        Message fan-out to contacts.
    event_store:
        Activation log.  The engine is its only writer.
    contacts:
        Configured emergency contacts.
    user_settings:
        Emergency preferences; replaced via :meth:`update_settings`.
    tick_seconds:
        Length of one countdown step.
    clock:
        Wall-clock source for timestamps.

    Usage::

        async with SOSEngine(geo_probe=probe, dispatcher=dispatcher,
                             event_store=store, contacts=registry) as engine:
            engine.submit_raw_input("volume_up", time.monotonic())
    """

    def __init__(
        self,
        *,
        geo_probe: GeoProbe,
        dispatcher: Dispatcher,
        event_store: EventStore,
        contacts: ContactRegistry,
        user_settings: UserSettings | None = None,
        tick_seconds: float = 1.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._probe = geo_probe
        self._dispatcher = dispatcher
        self._store = event_store
        self._contacts = contacts
        self._settings = user_settings or UserSettings()
        self._tick = tick_seconds
        self._clock = clock

        self._state: EngineState = IDLE
        self._lock = asyncio.Lock()
        self._generation = 0
        self._countdown_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._follow_up_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._consumer_task: asyncio.Task | None = None  # type: ignore[type-arg]
        # Every background task, including a countdown that detached itself.
        self._tasks: set[asyncio.Task] = set()  # type: ignore[type-arg]

        self._queue: asyncio.Queue[TriggerEvent] = asyncio.Queue()
        patterns, problems = patterns_from_settings(self._settings)
        self._detector = TriggerDetector(patterns, queue=self._queue)

        self._listeners: list[StateListener] = []
        self._warnings: deque[ConfigurationError] = deque(maxlen=_MAX_WARNINGS)
        self._last_dispatch: DispatchResult | None = None
        for problem in problems:
            self._warn(problem)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def status(self) -> EngineStatus:
        return EngineStatus(self._state.status)

    @property
    def current_event_id(self) -> int | None:
        if isinstance(self._state, (ActiveState, ResolvingState)):
            return self._state.event_id
        return None

    @property
    def last_dispatch(self) -> DispatchResult | None:
        """Outcome of the most recent alert or follow-up fan-out."""
        return self._last_dispatch

    @property
    def warnings(self) -> list[ConfigurationError]:
        return list(self._warnings)

    @property
    def settings(self) -> UserSettings:
        return self._settings

    @property
    def contacts(self) -> ContactRegistry:
        return self._contacts

    @property
    def event_store(self) -> EventStore:
        return self._store

    @property
    def detector(self) -> TriggerDetector:
        return self._detector

    @property
    def is_running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start consuming detector triggers."""
        if self.is_running:
            return
        self._consumer_task = self._spawn(self._consume_triggers())
        logger.info("engine.started", status=self.status)

    async def shutdown(self) -> None:
        """Stop the trigger consumer and every background task.

        Returns only after all of them have finished, so no alert is
        dispatched once shutdown completes.
        """
        async with self._lock:
            self._invalidate_timers()
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumer_task = None
        logger.info("engine.shutdown", status=self.status, tasks=len(tasks))

    async def __aenter__(self) -> SOSEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with every new state.  Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def update_settings(self, user_settings: UserSettings) -> list[ConfigurationError]:
        """Swap user settings and rebuild the trigger patterns.

        Returns the pattern problems found in the new settings; they are
        also kept in :attr:`warnings`.

        A countdown or follow-up schedule already running keeps the
        settings it started with.
        """
        self._settings = user_settings
        patterns, problems = patterns_from_settings(user_settings)
        self._detector.reconfigure(patterns)
        for problem in problems:
            self._warn(problem)
        logger.info("engine.settings_updated", patterns=len(patterns), problems=len(problems))
        return problems

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def submit_raw_input(
        self,
        token: RawInput | str,
        timestamp: float | None = None,
    ) -> TriggerEvent | None:
        """Feed a raw sensor/input token to the detector.

        A completed gesture is queued for the engine's consumer task; the
        caller never waits on the resulting activation.
        """
        return self._detector.submit(token, time.monotonic() if timestamp is None else timestamp)

    async def trigger(
        self,
        trigger_type: TriggerType,
        silent_override: bool = False,
    ) -> EngineState:
        """Start an emergency.

        Enters ``countdown`` unless the trigger is silent (explicitly or
        through ``silent_mode``) or the countdown is zero, in which case the
        engine activates immediately and dispatches the first alert before
        returning.

        Raises
        ------
        InvariantViolation
            If the engine is not idle.
        """
        async with self._lock:
            if self._state.status != EngineStatus.IDLE:
                self._reject("trigger")

            user_settings = self._settings
            silent = silent_override or user_settings.silent_mode
            if not silent and user_settings.countdown_seconds > 0:
                self._generation += 1
                self._set_state(
                    CountdownState(
                        remaining=user_settings.countdown_seconds,
                        started_at=self._clock(),
                        trigger_type=trigger_type,
                    )
                )
                self._countdown_task = self._spawn(
                    self._run_countdown(self._generation, trigger_type, user_settings)
                )
                logger.info(
                    "engine.countdown_started",
                    trigger_type=trigger_type,
                    seconds=user_settings.countdown_seconds,
                )
                return self._state

            event, snapshot, generation = await self._activate_locked(trigger_type, silent=silent)

        await self._send_initial_alert(event, snapshot, generation, user_settings)
        return self._state

    async def cancel(self) -> EngineState:
        """Abort a countdown, or cancel an active emergency.

        Raises
        ------
        InvariantViolation
            If there is nothing to cancel.
        """
        async with self._lock:
            if isinstance(self._state, CountdownState):
                self._invalidate_timers()
                self._set_state(IDLE)
                logger.info("engine.countdown_cancelled")
                return self._state
            if isinstance(self._state, ActiveState):
                await self._close_locked(SOSStatus.CANCELLED)
                return self._state
            self._reject("cancel")

    async def resolve(self) -> EngineState:
        """Close an active emergency after the user confirmed they are safe.

        Raises
        ------
        InvariantViolation
            If no emergency is active.
        """
        async with self._lock:
            if not isinstance(self._state, ActiveState):
                self._reject("resolve")
            await self._close_locked(SOSStatus.RESOLVED)
            return self._state

    # ------------------------------------------------------------------
    # Transitions (caller holds the lock)
    # ------------------------------------------------------------------

    async def _activate_locked(
        self,
        trigger_type: TriggerType,
        *,
        silent: bool = False,
    ) -> tuple[SOSEvent, DeviceSnapshot, int]:
        snapshot = await self._probe.acquire()
        event = await self._store.create(trigger_type, snapshot, created_at=self._clock())
        self._generation += 1
        self._set_state(ActiveState(event_id=event.id))
        logger.info(
            "engine.activated",
            event_id=event.id,
            trigger_type=trigger_type,
            silent=silent,
            has_location=snapshot.has_location,
        )
        return event, snapshot, self._generation

    async def _close_locked(self, status: SOSStatus) -> None:
        active = self._state
        assert isinstance(active, ActiveState)

        self._set_state(ResolvingState(event_id=active.event_id))
        try:
            await self._store.transition(active.event_id, status, self._clock())
        except Exception:
            # Still active: the follow-up schedule keeps running.
            logger.error("engine.close_failed", event_id=active.event_id, status=status, exc_info=True)
            self._set_state(active)
            raise

        self._invalidate_timers()
        self._set_state(IDLE)
        logger.info(
            "engine.closed",
            event_id=active.event_id,
            status=status,
            updates_sent=active.updates_sent,
        )

    def _invalidate_timers(self) -> None:
        self._generation += 1
        current = asyncio.current_task()
        for task in (self._countdown_task, self._follow_up_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._countdown_task = None
        self._follow_up_task = None

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:  # type: ignore[type-arg]
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _reject(self, action: str) -> NoReturn:
        logger.warning("engine.invariant_violation", action=action, status=self._state.status)
        raise InvariantViolation(action, str(self._state.status))

    def _set_state(self, state: EngineState) -> None:
        self._state = state
        logger.debug("engine.state", status=state.status)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.warning("engine.listener_failed", exc_info=True)

    def _warn(self, problem: ConfigurationError) -> None:
        self._warnings.append(problem)
        logger.warning("engine.configuration_warning", message=problem.message)

    # ------------------------------------------------------------------
    # Alerting
    # ------------------------------------------------------------------

    async def _send_initial_alert(
        self,
        event: SOSEvent,
        snapshot: DeviceSnapshot,
        generation: int,
        user_settings: UserSettings,
    ) -> None:
        contacts = self._contacts.dispatch_order()
        if not contacts:
            self._warn(ConfigurationError("no SMS-enabled emergency contacts configured"))

        message = compose_alert(user_settings.sms_template, snapshot, user_settings)
        result = await self._dispatcher.dispatch(contacts, message)
        self._last_dispatch = result
        await self._record_delivery(event.id, result)
        if result.failed:
            logger.warning(
                "engine.partial_delivery",
                event_id=event.id,
                sent=result.sent,
                failed=result.failed,
                failed_contact_ids=result.failed_contact_ids,
            )

        async with self._lock:
            if self._generation != generation or not isinstance(self._state, ActiveState):
                return
            if user_settings.enable_follow_up_updates:
                self._follow_up_task = self._spawn(
                    self._run_follow_ups(generation, event.id, user_settings)
                )

    async def _record_delivery(self, event_id: int, result: DispatchResult) -> None:
        try:
            await self._store.record_delivery(event_id, result.sent)
        except Exception:
            logger.error("engine.delivery_record_failed", event_id=event_id, sent=result.sent, exc_info=True)

    async def _record_location(self, event_id: int, number: int, snapshot: DeviceSnapshot) -> None:
        try:
            await self._store.add_location_update(event_id, number, snapshot, self._clock())
        except Exception:
            logger.error(
                "engine.location_record_failed", event_id=event_id, update_number=number, exc_info=True
            )

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _run_countdown(
        self,
        generation: int,
        trigger_type: TriggerType,
        user_settings: UserSettings,
    ) -> None:
        try:
            while True:
                await asyncio.sleep(self._tick)
                async with self._lock:
                    state = self._state
                    if self._generation != generation or not isinstance(state, CountdownState):
                        return
                    remaining = state.remaining - 1
                    if remaining > 0:
                        self._set_state(state.model_copy(update={"remaining": remaining}))
                        continue
                    # This task now carries the activation; detach it so a
                    # cancel arriving later cannot abort the first alert.
                    self._countdown_task = None
                    event, snapshot, active_generation = await self._activate_locked(trigger_type)
                break
            await self._send_initial_alert(event, snapshot, active_generation, user_settings)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("engine.countdown_failed", exc_info=True)
            async with self._lock:
                if isinstance(self._state, CountdownState):
                    self._set_state(IDLE)

    async def _run_follow_ups(self, generation: int, event_id: int, user_settings: UserSettings) -> None:
        interval = user_settings.follow_up_interval_seconds
        limit = user_settings.max_location_updates
        try:
            while True:
                await asyncio.sleep(interval)
                async with self._lock:
                    state = self._state
                    if self._generation != generation or not isinstance(state, ActiveState):
                        return
                    if state.updates_sent >= limit:
                        return
                    number = state.updates_sent + 1
                    self._set_state(
                        state.model_copy(update={"updates_sent": number, "last_update_at": self._clock()})
                    )

                snapshot = await self._probe.acquire()
                await self._record_location(event_id, number, snapshot)
                message = compose_follow_up(snapshot, number, user_settings)
                result = await self._dispatcher.dispatch(self._contacts.dispatch_order(), message)
                self._last_dispatch = result
                await self._record_delivery(event_id, result)
                logger.info(
                    "engine.follow_up_sent",
                    event_id=event_id,
                    update_number=number,
                    sent=result.sent,
                    failed=result.failed,
                )
                if number >= limit:
                    logger.info("engine.follow_ups_exhausted", event_id=event_id, limit=limit)
                    return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("engine.follow_up_failed", exc_info=True)

    async def _consume_triggers(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.trigger(event.trigger_type)
            except InvariantViolation:
                logger.info("engine.trigger_dropped", trigger_type=event.trigger_type, status=self.status)
            except Exception:
                logger.error("engine.trigger_failed", trigger_type=event.trigger_type, exc_info=True)
            finally:
                self._queue.task_done()
