"""Entry aggregator — effective weight and its breakdown per entry."""

from __future__ import annotations

from typing import Any

from giveaways.core.rows import flag


class EntryAggregator:
    """Reports how each entry's ``entry_count`` is composed.

    ``entry_count`` on the row is the source of truth; the breakdown splits
    it into the base entry, the secondary-contact bonus and converted
    referrals.
    """

    def __init__(self, entry_repo: Any, referral_repo: Any) -> None:
        self.entry_repo = entry_repo
        self.referral_repo = referral_repo

    def breakdown(
        self,
        entry: dict[str, Any],
        referral_entries: int | None = None,
    ) -> dict[str, int]:
        if referral_entries is None:
            referral_entries = self.referral_repo.referral_entries(entry["entry_id"])
        entry_count = int(entry.get("entry_count") or 1)
        bonus = 0
        if flag(entry, "bonus_claimed"):
            bonus = max(entry_count - 1 - referral_entries, 0)
        return {
            "base_entries": 1,
            "bonus_entries": bonus,
            "referral_entries": referral_entries,
            "entry_count": entry_count,
        }

    def weights(self, giveaway_id: str, *, valid_only: bool = True) -> dict[str, int]:
        entries = self.entry_repo.find_by_giveaway(giveaway_id, valid_only=valid_only)
        return {e["entry_id"]: int(e.get("entry_count") or 1) for e in entries}

    def total_weight(self, giveaway_id: str, *, valid_only: bool = True) -> int:
        return sum(self.weights(giveaway_id, valid_only=valid_only).values())
