"""Tests for the emergency contact registry."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from safeguard.models.contact import EmergencyContact
from safeguard.services.contacts import ContactRegistry, dispatch_order


def _contact(name: str, **kwargs) -> EmergencyContact:
    return EmergencyContact(name=name, phone_number=kwargs.pop("phone_number", "+15550100"), **kwargs)


class TestEmergencyContact:
    def test_phone_number_is_normalised(self) -> None:
        contact = _contact("Asha", phone_number="+1 (555) 010-0200")
        assert contact.phone_number == "+15550100200", "phone numbers are normalised to E.164"

    def test_invalid_phone_number_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _contact("Asha", phone_number="call me maybe")

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _contact("")


class TestContactRegistry:
    def test_add_assigns_sequential_ids(self) -> None:
        registry = ContactRegistry()
        first = registry.add(_contact("Asha"))
        second = registry.add(_contact("Ben"))
        assert (first.id, second.id) == (1, 2), "ids are assigned in insertion order"
        assert len(registry) == 2, "both contacts are stored"

    def test_new_primary_demotes_previous(self) -> None:
        registry = ContactRegistry()
        registry.add(_contact("Asha", is_primary=True))
        registry.add(_contact("Ben", is_primary=True))

        primaries = [c for c in registry.all() if c.is_primary]
        assert len(primaries) == 1, "at most one primary contact"
        assert registry.primary().name == "Ben", "the newest primary wins"

    def test_update_to_primary_demotes_others(self) -> None:
        registry = ContactRegistry([_contact("Asha", is_primary=True), _contact("Ben")])
        ben = registry.get(2)
        registry.update(ben.model_copy(update={"is_primary": True}))
        assert registry.primary().id == 2, "the updated contact becomes primary"
        assert registry.get(1).is_primary is False, "the previous primary is demoted"

    def test_update_missing_raises(self) -> None:
        with pytest.raises(KeyError):
            ContactRegistry().update(_contact("Ghost").model_copy(update={"id": 99}))

    def test_remove(self) -> None:
        registry = ContactRegistry([_contact("Asha")])
        assert registry.remove(1) is True, "removing an existing contact reports success"
        assert registry.remove(1) is False, "removing twice reports nothing removed"
        assert registry.all() == [], "the registry is empty afterwards"


class TestDispatchOrder:
    def test_primary_first_then_insertion_order(self) -> None:
        registry = ContactRegistry(
            [_contact("Asha"), _contact("Ben"), _contact("Chen", is_primary=True)]
        )
        assert [c.name for c in registry.dispatch_order()] == ["Chen", "Asha", "Ben"]

    def test_sms_disabled_contacts_are_skipped(self) -> None:
        contacts = [_contact("Asha", id=1), _contact("Ben", id=2, enable_sms=False)]
        assert [c.name for c in dispatch_order(contacts)] == ["Asha"], "only SMS-enabled contacts are dispatched to"
