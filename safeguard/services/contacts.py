"""In-process registry of emergency contacts.

Keeps contacts in insertion order and enforces a single primary contact:
flagging a contact as primary demotes whichever contact held the flag.
"""

from __future__ import annotations

import itertools

import structlog

from safeguard.models.contact import EmergencyContact

logger = structlog.get_logger(__name__)


def dispatch_order(contacts: list[EmergencyContact]) -> list[EmergencyContact]:
    """SMS-enabled contacts, primary first, otherwise in the given order."""
    enabled = [c for c in contacts if c.enable_sms]
    # sorted() is stable, so insertion order breaks ties.
    return sorted(enabled, key=lambda c: not c.is_primary)


class ContactRegistry:
    __slots__ = ("_contacts", "_ids")

    def __init__(self, contacts: list[EmergencyContact] | None = None) -> None:
        self._contacts: dict[int, EmergencyContact] = {}
        self._ids = itertools.count(1)
        for contact in contacts or []:
            self.add(contact)

    def __len__(self) -> int:
        return len(self._contacts)

    def add(self, contact: EmergencyContact) -> EmergencyContact:
        stored = contact.model_copy(update={"id": next(self._ids)})
        if stored.is_primary:
            self._demote_primary()
        self._contacts[stored.id] = stored
        logger.info("contacts.added", contact_id=stored.id, is_primary=stored.is_primary)
        return stored

    def update(self, contact: EmergencyContact) -> EmergencyContact:
        if contact.id not in self._contacts:
            raise KeyError(contact.id)
        if contact.is_primary:
            self._demote_primary(keep=contact.id)
        self._contacts[contact.id] = contact
        return contact

    def remove(self, contact_id: int) -> bool:
        removed = self._contacts.pop(contact_id, None)
        if removed is not None:
            logger.info("contacts.removed", contact_id=contact_id)
        return removed is not None

    def get(self, contact_id: int) -> EmergencyContact | None:
        return self._contacts.get(contact_id)

    def all(self) -> list[EmergencyContact]:
        return list(self._contacts.values())

    def primary(self) -> EmergencyContact | None:
        return next((c for c in self._contacts.values() if c.is_primary), None)

    def dispatch_order(self) -> list[EmergencyContact]:
        return dispatch_order(self.all())

    def _demote_primary(self, keep: int | None = None) -> None:
        for contact_id, existing in self._contacts.items():
            if existing.is_primary and contact_id != keep:
                self._contacts[contact_id] = existing.model_copy(update={"is_primary": False})
                logger.info("contacts.primary_demoted", contact_id=contact_id)
