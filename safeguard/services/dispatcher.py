"""Fan-out delivery of alert messages to emergency contacts.

Every contact is attempted concurrently and independently: one failing or
unreachable contact never prevents delivery to the others.  Each send is
bounded by a timeout and retried once after a fixed backoff; a second
failure is recorded and not retried further.

A blocking (sync) transport runs in a worker thread that cannot be
interrupted.  When such a send times out the message may still go out, so
it is recorded as failed without a retry rather than risking a duplicate
SMS.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from safeguard.errors import TransientIOError
from safeguard.models.contact import EmergencyContact
from safeguard.models.enums import DeliveryOutcome

logger = structlog.get_logger(__name__)


class _UnconfirmedSend(TransientIOError):
    """A blocking send timed out but its worker thread is still running."""


@runtime_checkable
class MessagingCapability(Protocol):
    """Host-supplied transport.  ``send`` may be sync or async."""

    def send(self, contact: EmergencyContact, message: str) -> bool | Awaitable[bool]: ...


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ContactDelivery(BaseModel):
    contact_id: int
    outcome: DeliveryOutcome
    attempts: int
    error: str | None = None


class DispatchResult(BaseModel):
    """Aggregate outcome of one message fan-out."""

    sent: int = 0
    failed: int = 0
    failed_contact_ids: list[int] = Field(default_factory=list)
    deliveries: list[ContactDelivery] = Field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.sent + self.failed

    @property
    def partial(self) -> bool:
        """Some, but not all, contacts were reached."""
        return self.sent > 0 and self.failed > 0


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class Dispatcher:
    """Sends one message to many contacts with bounded retry.

    Parameters
    ----------
    messenger:
        The external messaging capability.
    send_timeout_seconds:
        Upper bound for a single send attempt.
    retry_backoff_seconds:
        Fixed wait before the single retry.
    max_attempts:
        Total attempts per contact (first try plus retries).
    """

    __slots__ = ("_backoff", "_blocking", "_max_attempts", "_messenger", "_timeout")

    def __init__(
        self,
        messenger: MessagingCapability,
        *,
        send_timeout_seconds: float = 10.0,
        retry_backoff_seconds: float = 2.0,
        max_attempts: int = 2,
    ) -> None:
        self._messenger = messenger
        self._timeout = send_timeout_seconds
        self._backoff = retry_backoff_seconds
        self._max_attempts = max_attempts
        self._blocking = not inspect.iscoroutinefunction(messenger.send)

    async def dispatch(
        self,
        contacts: list[EmergencyContact],
        message: str,
    ) -> DispatchResult:
        """Deliver *message* to every contact in *contacts*.

        Contacts are expected in dispatch order (primary first); the
        per-contact deliveries in the result keep that order.
        """
        if not contacts:
            logger.warning("dispatcher.no_contacts")
            return DispatchResult()

        deliveries = await asyncio.gather(
            *(self._deliver(contact, message) for contact in contacts)
        )

        failed_ids = [d.contact_id for d in deliveries if d.outcome == DeliveryOutcome.FAILED]
        result = DispatchResult(
            sent=len(deliveries) - len(failed_ids),
            failed=len(failed_ids),
            failed_contact_ids=failed_ids,
            deliveries=list(deliveries),
        )
        logger.info(
            "dispatcher.complete",
            sent=result.sent,
            failed=result.failed,
            failed_contact_ids=failed_ids,
        )
        return result

    async def _deliver(self, contact: EmergencyContact, message: str) -> ContactDelivery:
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                retry=(
                    retry_if_exception_type(TransientIOError)
                    & retry_if_not_exception_type(_UnconfirmedSend)
                ),
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_fixed(self._backoff),
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    await self._send_once(contact, message)
        except TransientIOError as exc:
            logger.warning(
                "dispatcher.send_failed",
                contact_id=contact.id,
                attempts=attempts,
                error=exc.message,
            )
            return ContactDelivery(
                contact_id=contact.id,
                outcome=DeliveryOutcome.FAILED,
                attempts=attempts,
                error=exc.message,
            )

        if attempts > 1:
            logger.info("dispatcher.sent_after_retry", contact_id=contact.id, attempts=attempts)
        return ContactDelivery(
            contact_id=contact.id,
            outcome=DeliveryOutcome.SENT,
            attempts=attempts,
        )

    async def _send_once(self, contact: EmergencyContact, message: str) -> None:
        try:
            ok = await asyncio.wait_for(self._call(contact, message), timeout=self._timeout)
        except TimeoutError as exc:
            if self._blocking:
                raise _UnconfirmedSend(
                    f"send timed out after {self._timeout}s; blocking transport not retried"
                ) from exc
            raise TransientIOError(f"send timed out after {self._timeout}s") from exc
        except TransientIOError:
            raise
        except Exception as exc:
            raise TransientIOError(f"send raised {type(exc).__name__}: {exc}") from exc

        if not ok:
            raise TransientIOError("messaging capability reported failure")

    async def _call(self, contact: EmergencyContact, message: str) -> bool:
        send = self._messenger.send
        result: Any
        if not self._blocking:
            result = await send(contact, message)
        else:
            # Blocking transports run off the event loop.
            result = await asyncio.to_thread(send, contact, message)
            if inspect.isawaitable(result):
                result = await result
        return bool(result)
