"""Referral repository — data access for the ``giveaway_referrals`` table.

A referrer owns one invitation row (``referred_entry_id IS NULL``) holding
their code. Every conversion is its own row carrying the same code and the
referred entry, so caps are plain counts over converted rows.
"""

from __future__ import annotations

import logging
from typing import Any

import oracledb

from giveaways.core.database import is_unique_violation, transaction
from giveaways.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ReferralRepository(BaseRepository):
    def __init__(self, pool: Any) -> None:
        super().__init__(pool=pool, table_name="giveaway_referrals", id_column="referral_id")

    # ── Invitations ─────────────────────────────────────────────────

    def find_invitation(self, giveaway_id: str, code: str) -> dict[str, Any] | None:
        return self.find_one_where(
            {"giveaway_id": giveaway_id, "referral_code": code, "referred_entry_id": None}
        )

    def find_invitation_by_referrer(self, referrer_entry_id: str) -> dict[str, Any] | None:
        return self.find_one_where(
            {"referrer_entry_id": referrer_entry_id, "referred_entry_id": None}
        )

    def create_invitation(
        self,
        *,
        giveaway_id: str,
        referrer_entry_id: str,
        code: str,
        now: Any,
    ) -> bool:
        """Insert an invitation row; ``False`` when a unique index rejects it."""
        try:
            self.create(
                data={
                    "giveaway_id": giveaway_id,
                    "referrer_entry_id": referrer_entry_id,
                    "referral_code": code,
                    "bonus_entries_awarded": 0,
                    "created_at": now,
                }
            )
        except oracledb.IntegrityError as e:
            if is_unique_violation(e):
                return False
            raise
        return True

    # ── Conversions ─────────────────────────────────────────────────

    def record_conversion(
        self,
        *,
        invitation: dict[str, Any],
        referred_entry_id: str,
        referred_ip: str | None,
        bonus: int,
        max_total: int,
        max_per_ip: int,
        now: Any,
    ) -> int:
        """Record a conversion and credit the referrer atomically.

        Holds a row lock on the referrer's entry for the cap checks, the
        conversion insert and the ``entry_count`` increment. Returns the
        bonus awarded, or ``0`` when a cap or the one-conversion-per-entry
        rule refuses it.
        """
        referrer_id = invitation["referrer_entry_id"]
        try:
            with transaction(self.pool) as conn:
                locked = self._select(
                    "SELECT entry_id FROM giveaway_entries WHERE entry_id = :id FOR UPDATE",
                    {"id": referrer_id},
                    conn,
                )
                if not locked:
                    return 0

                already = self._scalar(
                    f"SELECT COUNT(*) FROM {self.table_name} WHERE referred_entry_id = :rid",
                    {"rid": referred_entry_id},
                    conn,
                )
                if already:
                    return 0

                converted = self._scalar(
                    f"SELECT COUNT(*) FROM {self.table_name} "
                    f"WHERE referrer_entry_id = :ref AND referred_entry_id IS NOT NULL",
                    {"ref": referrer_id},
                    conn,
                )
                if converted >= max_total:
                    return 0

                if referred_ip:
                    same_ip = self._scalar(
                        f"SELECT COUNT(*) FROM {self.table_name} "
                        f"WHERE referrer_entry_id = :ref AND referred_ip = :ip "
                        f"AND referred_entry_id IS NOT NULL",
                        {"ref": referrer_id, "ip": referred_ip},
                        conn,
                    )
                    if same_ip >= max_per_ip:
                        return 0

                self.create(
                    data={
                        "giveaway_id": invitation["giveaway_id"],
                        "referrer_entry_id": referrer_id,
                        "referral_code": invitation["referral_code"],
                        "referred_entry_id": referred_entry_id,
                        "referred_ip": referred_ip,
                        "converted_at": now,
                        "bonus_entries_awarded": bonus,
                        "created_at": now,
                    },
                    conn=conn,
                )
                self._execute(
                    "UPDATE giveaway_entries SET entry_count = entry_count + :inc "
                    "WHERE entry_id = :id",
                    {"inc": bonus, "id": referrer_id},
                    conn,
                )
        except oracledb.IntegrityError as e:
            # A concurrent conversion for the same referred entry won.
            if is_unique_violation(e):
                return 0
            raise
        return bonus

    def referral_entries(self, referrer_entry_id: str) -> int:
        """Sum of bonus entries awarded to a referrer over converted rows."""
        return self._scalar(
            f"SELECT COALESCE(SUM(bonus_entries_awarded), 0) FROM {self.table_name} "
            f"WHERE referrer_entry_id = :ref AND referred_entry_id IS NOT NULL",
            {"ref": referrer_entry_id},
        )

    def find_by_referrers(self, referrer_entry_ids: list[str]) -> list[dict[str, Any]]:
        """Invitation and conversion rows for *referrer_entry_ids*.

        Conversions carry the referred entrant's name as ``referred_first_name``
        and ``referred_last_name``.
        """
        if not referrer_entry_ids:
            return []
        binds = {f"r{i}": entry_id for i, entry_id in enumerate(referrer_entry_ids)}
        sql = (
            f"SELECT r.*, e.first_name AS referred_first_name, "
            f"e.last_name AS referred_last_name "
            f"FROM {self.table_name} r "
            f"LEFT JOIN giveaway_entries e ON e.entry_id = r.referred_entry_id "
            f"WHERE r.referrer_entry_id IN ({', '.join(':' + name for name in binds)}) "
            f"ORDER BY r.created_at, r.referral_id"
        )
        return self._select(sql, binds)
