from __future__ import annotations

import re
from typing import Final

from pydantic import BaseModel, Field, field_validator

_PHONE_RE: Final[re.Pattern[str]] = re.compile(r"^\+?\d{3,15}$")
_PHONE_STRIP_RE: Final[re.Pattern[str]] = re.compile(r"[\s\-().]")


class EmergencyContact(BaseModel):
    """A person who receives alerts when an emergency is activated."""

    id: int = 0  # assigned by ContactRegistry
    name: str = Field(..., min_length=1, max_length=120)
    phone_number: str
    relationship: str = ""
    is_primary: bool = False
    enable_sms: bool = True
    enable_call: bool = False
    enable_live_location: bool = False

    @field_validator("phone_number")
    @classmethod
    def _validate_phone(cls, value: str) -> str:
        normalised = _PHONE_STRIP_RE.sub("", value)
        if not _PHONE_RE.match(normalised):
            raise ValueError("phone number must be digits with an optional leading '+'")
        return normalised
