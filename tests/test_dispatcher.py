"""Tests for the contact fan-out with bounded retry."""

from __future__ import annotations

import asyncio
import time
from collections import Counter

import pytest

from safeguard.models.contact import EmergencyContact
from safeguard.models.enums import DeliveryOutcome
from safeguard.services.contacts import ContactRegistry
from safeguard.services.dispatcher import Dispatcher


class RecordingMessenger:
    """Async messenger that fails for selected contact ids."""

    def __init__(self, fail_ids: set[int] | None = None, fail_first: bool = False) -> None:
        self.fail_ids = fail_ids or set()
        self.fail_first = fail_first
        self.calls: Counter[int] = Counter()
        self.delivered: list[tuple[int, str]] = []

    async def send(self, contact: EmergencyContact, message: str) -> bool:
        self.calls[contact.id] += 1
        if contact.id in self.fail_ids:
            return False
        if self.fail_first and self.calls[contact.id] == 1:
            raise ConnectionError("radio off")
        self.delivered.append((contact.id, message))
        return True


class SlowMessenger:
    def __init__(self) -> None:
        self.calls = 0

    async def send(self, contact: EmergencyContact, message: str) -> bool:
        self.calls += 1
        await asyncio.sleep(1.0)
        return True


class BlockingMessenger:
    """Synchronous transport; must be run off the event loop."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls = 0
        self.sent: list[int] = []

    def send(self, contact: EmergencyContact, message: str) -> bool:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        self.sent.append(contact.id)
        return True


@pytest.fixture
def contacts() -> list[EmergencyContact]:
    registry = ContactRegistry(
        [
            EmergencyContact(name="Asha", phone_number="+15550001"),
            EmergencyContact(name="Ben", phone_number="+15550002", is_primary=True),
            EmergencyContact(name="Chen", phone_number="+15550003"),
        ]
    )
    return registry.dispatch_order()


class TestDispatcher:
    async def test_one_failure_does_not_block_others(self, contacts: list[EmergencyContact]) -> None:
        messenger = RecordingMessenger(fail_ids={3})
        dispatcher = Dispatcher(messenger, retry_backoff_seconds=0)

        result = await dispatcher.dispatch(contacts, "help")

        assert result.sent == 2, "the two healthy contacts should be reached"
        assert result.failed == 1, "only the failing contact is counted as failed"
        assert result.failed_contact_ids == [3], f"unexpected failed ids {result.failed_contact_ids}"
        assert result.partial is True, "some but not all contacts were reached"
        assert result.attempted == 3, "every contact is attempted"

    async def test_failed_contact_is_retried_exactly_once(self, contacts: list[EmergencyContact]) -> None:
        messenger = RecordingMessenger(fail_ids={3})
        dispatcher = Dispatcher(messenger, retry_backoff_seconds=0)

        result = await dispatcher.dispatch(contacts, "help")

        assert messenger.calls[3] == 2, "one initial attempt plus one retry"
        assert messenger.calls[1] == 1, "a successful contact is sent once"
        failed = next(d for d in result.deliveries if d.contact_id == 3)
        assert failed.outcome == DeliveryOutcome.FAILED, "the second failure is final"
        assert failed.attempts == 2, f"expected 2 attempts, got {failed.attempts}"
        assert failed.error, "a failed delivery carries an error description"

    async def test_transient_error_recovers_on_retry(self, contacts: list[EmergencyContact]) -> None:
        messenger = RecordingMessenger(fail_first=True)
        dispatcher = Dispatcher(messenger, retry_backoff_seconds=0)

        result = await dispatcher.dispatch(contacts, "help")

        assert result.sent == 3, "every contact succeeds on the retry"
        assert result.failed == 0, "no contact fails after recovery"
        assert all(d.attempts == 2 for d in result.deliveries), "each delivery needed the retry"

    async def test_send_timeout_counts_as_failure(self, contacts: list[EmergencyContact]) -> None:
        messenger = SlowMessenger()
        dispatcher = Dispatcher(messenger, send_timeout_seconds=0.05, retry_backoff_seconds=0)

        result = await dispatcher.dispatch(contacts[:1], "help")

        assert result.sent == 0, "a timed-out send is not counted as sent"
        assert result.failed == 1, "a timed-out send is counted as failed"
        assert "timed out" in (result.deliveries[0].error or ""), "the error names the timeout"
        assert messenger.calls == 2, "an async send is cancelled on timeout, so it is retried"

    async def test_blocking_timeout_is_not_retried(self, contacts: list[EmergencyContact]) -> None:
        messenger = BlockingMessenger(delay=0.3)
        dispatcher = Dispatcher(messenger, send_timeout_seconds=0.05, retry_backoff_seconds=0)

        result = await dispatcher.dispatch(contacts[:1], "help")

        delivery = result.deliveries[0]
        assert delivery.outcome == DeliveryOutcome.FAILED, "the timeout is reported as a failure"
        assert delivery.attempts == 1, "a still-running blocking send must not be retried"
        assert messenger.calls == 1, f"duplicate SMS risk: transport called {messenger.calls} times"

    async def test_deliveries_keep_dispatch_order(self, contacts: list[EmergencyContact]) -> None:
        dispatcher = Dispatcher(RecordingMessenger(), retry_backoff_seconds=0)
        result = await dispatcher.dispatch(contacts, "help")
        assert [d.contact_id for d in result.deliveries] == [2, 1, 3], "primary contact comes first"

    async def test_sync_messenger_is_supported(self, contacts: list[EmergencyContact]) -> None:
        messenger = BlockingMessenger()
        result = await Dispatcher(messenger).dispatch(contacts, "help")
        assert result.sent == 3, "a sync transport delivers to every contact"
        assert sorted(messenger.sent) == [1, 2, 3], f"unexpected recipients {messenger.sent}"

    async def test_no_contacts(self) -> None:
        result = await Dispatcher(RecordingMessenger()).dispatch([], "help")
        assert result.attempted == 0, "nothing is attempted without contacts"
        assert result.partial is False, "an empty fan-out is not partial"
