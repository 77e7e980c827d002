"""Winner repository — data access for the ``giveaway_winners`` table.

Every state change is a compare-and-set on the row's current state so that
concurrent admin actions, claim submissions and the expiry worker cannot
apply the same transition twice.
"""

from __future__ import annotations

import logging
from typing import Any

from giveaways.core.database import transaction
from giveaways.repositories.base import BaseRepository, generate_id

logger = logging.getLogger(__name__)

_OPEN = "status IN ('pending', 'notified')"


class WinnerRepository(BaseRepository):
    def __init__(self, pool: Any) -> None:
        super().__init__(pool=pool, table_name="giveaway_winners", id_column="winner_id")

    # ── Queries ─────────────────────────────────────────────────────

    def find_by_giveaway(self, giveaway_id: str) -> list[dict[str, Any]]:
        """Primaries first, then alternates in draw order."""
        return self.find_where(
            {"giveaway_id": giveaway_id},
            order_by="alternate_order NULLS FIRST, created_at, winner_id",
        )

    def find_by_token(self, claim_token: str) -> dict[str, Any] | None:
        return self.find_one_where({"claim_token": claim_token})

    def find_pending_alternates(self, giveaway_id: str) -> list[dict[str, Any]]:
        return self.find_where(
            {"giveaway_id": giveaway_id, "winner_type": "alternate", "status": "pending"},
            order_by="alternate_order",
        )

    def find_overdue(self, now: Any) -> list[dict[str, Any]]:
        """Open primaries whose claim deadline has passed."""
        sql = (
            f"SELECT * FROM {self.table_name} "
            f"WHERE {_OPEN} AND winner_type = 'primary' AND claim_deadline < :now "
            f"ORDER BY claim_deadline"
        )
        return self._select(sql, {"now": now})

    # ── Selection ───────────────────────────────────────────────────

    def commit_selection(
        self,
        giveaway_id: str,
        winners: list[dict[str, Any]],
        now: Any,
    ) -> bool:
        """Flip ``winner_selected`` and insert the drawn winners as one unit.

        Returns ``False`` (and writes nothing) when the giveaway was already
        drawn by another selection or is no longer active.
        """
        with transaction(self.pool) as conn:
            flipped = self._execute(
                "UPDATE giveaways SET winner_selected = 1, status = 'ended', "
                "updated_at = :now "
                "WHERE giveaway_id = :gid AND winner_selected = 0 AND status = 'active'",
                {"gid": giveaway_id, "now": now},
                conn,
            )
            if flipped == 0:
                conn.rollback()
                return False
            for winner in winners:
                data = {k: v for k, v in winner.items() if k != self.id_column}
                self.create(data=data, new_id=winner.get(self.id_column), conn=conn)
        return True

    # ── Claim lifecycle ─────────────────────────────────────────────

    def mark_notified(self, winner_id: str, method: str | None, now: Any) -> int:
        sql = (
            f"UPDATE {self.table_name} SET status = 'notified', "
            f"notified_at = :now, notification_method = :method, updated_at = :now "
            f"WHERE winner_id = :id AND {_OPEN}"
        )
        return self._execute(sql, {"id": winner_id, "method": method, "now": now})

    def mark_claimed(
        self,
        winner_id: str,
        claim: dict[str, Any],
        now: Any,
    ) -> bool:
        """Mark the winner claimed and upsert its prize claim in one transaction.

        Guarded on ``claimed_at IS NULL`` and an open status; ``False`` means
        another submission or an admin action got there first.
        """
        with transaction(self.pool) as conn:
            updated = self._execute(
                f"UPDATE {self.table_name} SET status = 'claimed', claimed_at = :now, "
                f"updated_at = :now "
                f"WHERE winner_id = :id AND claimed_at IS NULL AND {_OPEN}",
                {"id": winner_id, "now": now},
                conn,
            )
            if updated == 0:
                conn.rollback()
                return False

            params = {
                "claim_id": generate_id(),
                "winner_id": winner_id,
                "now": now,
                **{k: claim.get(k) for k in _CLAIM_COLUMNS},
            }
            self._execute(_MERGE_PRIZE_CLAIM, params, conn)
        return True

    def close(
        self,
        winner_id: str,
        *,
        status: str,
        reason: str | None,
        expected_status: str,
        now: Any,
    ) -> int:
        """Move an open winner to a terminal status if unchanged since read."""
        return self.update_where(
            winner_id,
            {"status": status, "status_reason": reason, "updated_at": now},
            expected={"status": expected_status, "claimed_at": None},
        )

    def promote(self, winner_id: str, now: Any, claim_deadline: Any) -> int:
        """Turn an alternate into a primary; ``0`` if it already is one.

        The promoted winner gets a fresh claim window from *claim_deadline*.
        """
        return self.update_where(
            winner_id,
            {
                "winner_type": "primary",
                "alternate_order": None,
                "claim_deadline": claim_deadline,
                "updated_at": now,
            },
            expected={"winner_type": "alternate"},
        )


_CLAIM_COLUMNS = (
    "legal_name",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip_code",
    "w9_document",
    "id_document",
)

_MERGE_PRIZE_CLAIM = (
    "MERGE INTO prize_claims pc "
    "USING (SELECT :winner_id AS winner_id FROM dual) src "
    "ON (pc.winner_id = src.winner_id) "
    "WHEN MATCHED THEN UPDATE SET "
    + ", ".join(f"pc.{c} = :{c}" for c in _CLAIM_COLUMNS)
    + ", pc.updated_at = :now "
    "WHEN NOT MATCHED THEN INSERT (claim_id, winner_id, "
    + ", ".join(_CLAIM_COLUMNS)
    + ", fulfillment_status, verified, created_at, updated_at) VALUES (:claim_id, "
    ":winner_id, "
    + ", ".join(f":{c}" for c in _CLAIM_COLUMNS)
    + ", 'pending', 0, :now, :now)"
)
