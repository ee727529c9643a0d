"""Gesture recognition over raw sensor/input tokens.

Each configured pattern owns a small matcher:

* Button sequences keep a rolling buffer of ``(token, timestamp)`` pairs.
  On every press the buffer is pruned to the pattern's window and its
  suffix is compared with the configured sequence.
* Shake and power-press counts keep a counter plus the timestamp of the
  last counted pulse.  A pulse arriving more than ``window_seconds`` after
  the previous one restarts the count.

Expiry is evaluated lazily when the next token arrives; no timers run.
Matchers are cleared when they fire so one physical gesture can never
produce two triggers.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING, Iterable

import structlog
from pydantic import ValidationError

from safeguard.errors import ConfigurationError
from safeguard.models.enums import ButtonToken, PatternKind, RawInput
from safeguard.models.trigger import (
    ButtonSequencePattern,
    PowerPressCountPattern,
    ShakeCountPattern,
    TriggerEvent,
    TriggerPattern,
)

if TYPE_CHECKING:
    from safeguard.models.user_settings import UserSettings

logger = structlog.get_logger(__name__)

_BUTTON_TOKENS: dict[RawInput, ButtonToken] = {
    RawInput.VOLUME_UP: ButtonToken.UP,
    RawInput.VOLUME_DOWN: ButtonToken.DOWN,
}


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------


class _SequenceMatcher:
    __slots__ = ("_buffer", "pattern")

    def __init__(self, pattern: ButtonSequencePattern) -> None:
        self.pattern = pattern
        self._buffer: deque[tuple[ButtonToken, float]] = deque()

    def feed(self, token: ButtonToken, timestamp: float) -> bool:
        self._buffer.append((token, timestamp))
        horizon = timestamp - self.pattern.window_seconds
        while self._buffer and self._buffer[0][1] < horizon:
            self._buffer.popleft()

        size = len(self.pattern.sequence)
        if len(self._buffer) < size:
            return False
        suffix = tuple(tok for tok, _ in list(self._buffer)[-size:])
        if suffix != self.pattern.sequence:
            return False
        self._buffer.clear()
        return True

    def reset(self) -> None:
        self._buffer.clear()


class _CountMatcher:
    __slots__ = ("_count", "_debounce", "_last_seen", "pattern")

    def __init__(
        self,
        pattern: ShakeCountPattern | PowerPressCountPattern,
        debounce_seconds: float = 0.0,
    ) -> None:
        self.pattern = pattern
        self._debounce = debounce_seconds
        self._count = 0
        self._last_seen: float | None = None

    @property
    def count(self) -> int:
        return self._count

    def feed(self, timestamp: float) -> bool:
        if self._last_seen is not None:
            gap = timestamp - self._last_seen
            if gap > self.pattern.window_seconds:
                self._count = 0
            elif gap < self._debounce:
                return False

        self._count += 1
        self._last_seen = timestamp
        if self._count < self.pattern.required:
            return False
        self.reset()
        return True

    def reset(self) -> None:
        self._count = 0
        self._last_seen = None


# ---------------------------------------------------------------------------
# TriggerDetector
# ---------------------------------------------------------------------------


class TriggerDetector:
    """Turns raw input tokens into :class:`TriggerEvent` values.

    Parameters
    ----------
    patterns:
        The configured trigger patterns.  Disabled patterns are skipped.
    queue:
        Optional single-consumer queue.  Every fired event is put on it
        without blocking, so the producer never waits on dispatch I/O.
    """

    __slots__ = ("_count_matchers", "_patterns", "_queue", "_sequence_matchers")

    def __init__(
        self,
        patterns: Iterable[TriggerPattern] = (),
        *,
        queue: asyncio.Queue[TriggerEvent] | None = None,
    ) -> None:
        self._queue = queue
        self._patterns: list[TriggerPattern] = []
        self._sequence_matchers: list[_SequenceMatcher] = []
        self._count_matchers: dict[RawInput, list[_CountMatcher]] = {}
        self.reconfigure(patterns)

    @property
    def patterns(self) -> list[TriggerPattern]:
        return list(self._patterns)

    def reconfigure(self, patterns: Iterable[TriggerPattern]) -> None:
        """Replace the pattern set.  All partial gestures are discarded."""
        self._patterns = [p for p in patterns if p.enabled]
        self._sequence_matchers = []
        self._count_matchers = {RawInput.SHAKE: [], RawInput.POWER_PRESS: []}

        for pattern in self._patterns:
            if isinstance(pattern, ButtonSequencePattern):
                self._sequence_matchers.append(_SequenceMatcher(pattern))
            elif isinstance(pattern, ShakeCountPattern):
                self._count_matchers[RawInput.SHAKE].append(
                    _CountMatcher(pattern, debounce_seconds=pattern.debounce_seconds)
                )
            else:
                self._count_matchers[RawInput.POWER_PRESS].append(_CountMatcher(pattern))

        logger.info(
            "trigger_detector.configured",
            patterns=[p.kind for p in self._patterns],
        )

    def reset(self) -> None:
        for matcher in self._sequence_matchers:
            matcher.reset()
        for matchers in self._count_matchers.values():
            for matcher in matchers:
                matcher.reset()

    def submit(self, token: RawInput | str, timestamp: float) -> TriggerEvent | None:
        """Feed one raw token.  Returns the first trigger it completed, if any.

        Unknown tokens are logged and ignored.
        """
        try:
            raw = RawInput(token)
        except ValueError:
            logger.warning("trigger_detector.unknown_token", token=str(token))
            return None

        fired: list[TriggerEvent] = []
        if raw in _BUTTON_TOKENS:
            button = _BUTTON_TOKENS[raw]
            for matcher in self._sequence_matchers:
                if matcher.feed(button, timestamp):
                    fired.append(self._event(matcher.pattern, timestamp))
        else:
            for matcher in self._count_matchers.get(raw, []):
                if matcher.feed(timestamp):
                    fired.append(self._event(matcher.pattern, timestamp))

        for event in fired:
            logger.info(
                "trigger_detector.fired",
                trigger_type=event.trigger_type,
                kind=event.kind,
            )
            if self._queue is not None:
                self._queue.put_nowait(event)

        return fired[0] if fired else None

    @staticmethod
    def _event(pattern: TriggerPattern, timestamp: float) -> TriggerEvent:
        return TriggerEvent(
            trigger_type=pattern.trigger_type,
            kind=PatternKind(pattern.kind),
            fired_at=timestamp,
        )


# ---------------------------------------------------------------------------
# Settings adapter
# ---------------------------------------------------------------------------


def patterns_from_settings(
    user_settings: UserSettings,
) -> tuple[list[TriggerPattern], list[ConfigurationError]]:
    """Build trigger patterns from user settings.

    A malformed pattern is skipped and reported as a
    :class:`ConfigurationError` instead of failing the whole set.
    """
    candidates: list[tuple[str, type, dict]] = [
        (
            "volume_button",
            ButtonSequencePattern,
            {
                "sequence": user_settings.volume_button_sequence,
                "window_seconds": user_settings.volume_button_timeout_ms / 1000,
                "enabled": user_settings.enable_volume_button_trigger,
            },
        ),
        (
            "shake",
            ShakeCountPattern,
            {
                "required": user_settings.shake_count,
                "window_seconds": user_settings.shake_timeout_ms / 1000,
                "debounce_seconds": user_settings.shake_debounce_ms / 1000,
                "enabled": user_settings.enable_shake_trigger,
            },
        ),
        (
            "power_button",
            PowerPressCountPattern,
            {
                "required": user_settings.power_button_press_count,
                "window_seconds": user_settings.power_button_timeout_ms / 1000,
                "enabled": user_settings.enable_power_button_trigger,
            },
        ),
    ]

    patterns: list[TriggerPattern] = []
    problems: list[ConfigurationError] = []
    for name, model, fields in candidates:
        try:
            patterns.append(model(**fields))
        except ValidationError as exc:
            logger.warning("trigger_detector.bad_pattern", pattern=name, errors=exc.error_count())
            problems.append(
                ConfigurationError(
                    f"invalid {name} trigger pattern",
                    details={"pattern": name, "errors": exc.errors(include_url=False)},
                )
            )
    return patterns, problems
