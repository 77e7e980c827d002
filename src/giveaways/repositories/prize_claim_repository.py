"""Prize claim repository — data access for the ``prize_claims`` table.

Claims are written by :meth:`WinnerRepository.mark_claimed`; this class
serves reads for the claim status view and admin listings.
"""

from __future__ import annotations

from typing import Any

from giveaways.repositories.base import BaseRepository


class PrizeClaimRepository(BaseRepository):
    def __init__(self, pool: Any) -> None:
        super().__init__(pool=pool, table_name="prize_claims", id_column="claim_id")

    def find_by_winner(self, winner_id: str) -> dict[str, Any] | None:
        return self.find_one_where({"winner_id": winner_id})
