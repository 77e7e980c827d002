"""Contact normalization — phone, email and state canonical forms.

Every comparison between contacts (dedupe, bonus distinctness,
self-referral) happens on the normalized form produced here.
"""

from __future__ import annotations

import re

from giveaways.core.constants import ALL_US_STATES, CONTACT_TYPES
from giveaways.core.errors import INVALID_CONTACT, ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None) -> str:
    """Strip non-digits and keep the last 10 (drops a leading country code)."""
    if not raw:
        return ""
    return _NON_DIGITS.sub("", raw)[-10:]


def normalize_email(raw: str | None) -> str:
    if not raw:
        return ""
    return raw.strip().lower()


def is_valid_phone(normalized: str) -> bool:
    return len(normalized) == 10 and normalized.isdigit()


def is_valid_email(normalized: str) -> bool:
    return bool(EMAIL_RE.match(normalized))


def normalize_contact(raw: str | None, contact_type: str) -> str:
    """Normalize and validate a contact of the given type.

    Raises ``ValidationError(InvalidContact)`` on a malformed value or an
    unknown contact type.
    """
    if contact_type not in CONTACT_TYPES:
        raise ValidationError(f"Invalid contact type: {contact_type}", code=INVALID_CONTACT)
    if contact_type == "phone":
        value = normalize_phone(raw)
        if not is_valid_phone(value):
            raise ValidationError(
                "Invalid phone number. Please enter a 10-digit US phone number",
                code=INVALID_CONTACT,
            )
        return value
    value = normalize_email(raw)
    if not is_valid_email(value):
        raise ValidationError("Invalid email format", code=INVALID_CONTACT)
    return value


def normalize_state(raw: str | None) -> str:
    state = (raw or "").strip().upper()
    if state not in ALL_US_STATES:
        raise ValidationError("Invalid state. Please select a valid US state")
    return state


def parse_states(value: str | list[str] | None) -> list[str]:
    """Decode the stored comma-separated ``restricted_states`` column."""
    if not value:
        return []
    items = value if isinstance(value, list) else value.split(",")
    return [s.strip().upper() for s in items if s and s.strip()]
