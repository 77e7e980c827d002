"""Bonus accrual — one extra-entry credit for a secondary contact."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from giveaways.core.constants import DEFAULT_BONUS_ENTRY_COUNT
from giveaways.core.errors import (
    ALREADY_CLAIMED,
    INVALID_CONTACT,
    NOT_ELIGIBLE,
    ConflictError,
    GiveawayError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from giveaways.core.rows import as_utc, flag
from giveaways.services.contacts import normalize_contact

logger = logging.getLogger(__name__)


def bonus_amount(giveaway: dict[str, Any]) -> int:
    return int(giveaway.get("bonus_entry_count") or DEFAULT_BONUS_ENTRY_COUNT)


def secondary_type_for(entry_type: str) -> str | None:
    """The contact type that earns the bonus; ``None`` when both are primary."""
    return {"email": "phone", "phone": "email"}.get(entry_type)


def resolve_inline_bonus(
    giveaway: dict[str, Any], secondary_contact: str | None
) -> tuple[str, str] | None:
    """Normalize a secondary contact supplied with the entry form.

    Returns ``(contact, contact_type)`` or ``None`` when bonuses are off or
    the contact is unusable; an unusable value never fails the submission.
    """
    if not secondary_contact or not flag(giveaway, "bonus_entries_enabled"):
        return None
    contact_type = secondary_type_for(giveaway.get("entry_type") or "both")
    if contact_type is None:
        return None
    try:
        return normalize_contact(secondary_contact, contact_type), contact_type
    except GiveawayError:
        return None


class BonusAccrual:
    def __init__(self, giveaway_repo: Any, entry_repo: Any) -> None:
        self.giveaway_repo = giveaway_repo
        self.entry_repo = entry_repo

    def claim_bonus(
        self,
        entry_id: str,
        secondary_contact: str,
        contact_type: str,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Credit ``bonus_entry_count`` for a new, distinct contact.

        At most once per entry; a concurrent second claim loses the
        conditional update and gets ``AlreadyClaimed``.
        """
        now = now or datetime.now(tz=UTC)
        entry = self.entry_repo.find_by_id(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")

        giveaway = self.giveaway_repo.find_by_id(entry["giveaway_id"])
        if giveaway is None:
            raise NotFoundError("Giveaway not found")
        if not flag(giveaway, "bonus_entries_enabled"):
            raise PolicyError(
                "Bonus entries are not enabled for this giveaway", code=NOT_ELIGIBLE
            )
        end = as_utc(giveaway.get("end_date"))
        if giveaway.get("status") != "active" or (end is not None and now >= end):
            raise PolicyError(
                "This giveaway is no longer accepting entries", code=NOT_ELIGIBLE
            )
        if flag(entry, "bonus_claimed"):
            raise ConflictError("Bonus entry has already been claimed", code=ALREADY_CLAIMED)

        expected_type = secondary_type_for(giveaway.get("entry_type") or "both")
        if expected_type is not None and contact_type != expected_type:
            raise ValidationError(
                f"Bonus contact for this giveaway must be a {expected_type}",
                code=INVALID_CONTACT,
            )

        normalized = normalize_contact(secondary_contact, contact_type)
        if normalized == entry.get(contact_type):
            raise ValidationError(
                "Secondary contact must be different from primary contact",
                code=INVALID_CONTACT,
            )

        amount = bonus_amount(giveaway)
        updated = self.entry_repo.apply_bonus(
            entry_id,
            secondary_contact=normalized,
            contact_type=contact_type,
            increment=amount,
        )
        if updated == 0:
            raise ConflictError("Bonus entry has already been claimed", code=ALREADY_CLAIMED)

        logger.info(
            "Bonus claimed: entry %s +%d via %s (giveaway=%s) at %s",
            entry_id,
            amount,
            contact_type,
            entry["giveaway_id"],
            now.isoformat(),
        )
        refreshed: dict[str, Any] = self.entry_repo.find_by_id(entry_id) or entry
        return refreshed
