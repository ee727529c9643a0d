"""Exception hierarchy for the alert engine.

Only :class:`InvariantViolation` ever reaches a caller of the engine's
transition API. :class:`TransientIOError` is caught at the capability
boundaries (dispatcher, geo probe) and degraded to absent data;
:class:`ConfigurationError` is collected as a warning for the host.
"""

from __future__ import annotations

from typing import Any


class SafeGuardError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientIOError(SafeGuardError):
    """A messaging or location capability failed or timed out."""


class ConfigurationError(SafeGuardError):
    """Settings are incomplete or malformed (bad pattern, no contacts)."""


class InvariantViolation(SafeGuardError):
    """A transition was requested from a state that does not allow it."""

    def __init__(self, action: str, status: str) -> None:
        super().__init__(
            f"cannot {action} while {status}",
            details={"action": action, "status": status},
        )
        self.action = action
        self.status = status
