"""Entry repository — data access for the ``giveaway_entries`` table."""

from __future__ import annotations

import logging
from typing import Any

import oracledb

from giveaways.core.database import is_unique_violation
from giveaways.core.errors import DUPLICATE_ENTRY, ConflictError
from giveaways.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def listing_filter(
    giveaway_id: str, *, valid_only: bool = False, search: str | None = None
) -> tuple[str, dict[str, Any]]:
    """WHERE clause for the admin listing; *search* is a case-insensitive substring."""
    terms = ["giveaway_id = :gid"]
    binds: dict[str, Any] = {"gid": giveaway_id}
    if valid_only:
        terms.append("is_valid = 1")
    if search and search.strip():
        terms.append(
            "(LOWER(email) LIKE :q ESCAPE '\\' OR phone LIKE :q ESCAPE '\\' "
            "OR LOWER(first_name) LIKE :q ESCAPE '\\' OR LOWER(last_name) LIKE :q ESCAPE '\\')"
        )
        binds["q"] = f"%{_escape_like(search.strip().lower())}%"
    return "WHERE " + " AND ".join(terms), binds


class EntryRepository(BaseRepository):
    """CRUD + domain queries for giveaway entries.

    ``dedupe_email`` and ``dedupe_phone`` carry function-based unique
    indexes scoped to the giveaway (see ``scripts/migrations.py``), so a
    concurrent duplicate insert fails in the database rather than in a
    read-then-write check.
    """

    def __init__(self, pool: Any) -> None:
        super().__init__(pool=pool, table_name="giveaway_entries", id_column="entry_id")

    def find_by_giveaway(
        self, giveaway_id: str, *, valid_only: bool = False
    ) -> list[dict[str, Any]]:
        """All entries for a giveaway, ordered by ``entry_id``."""
        filters: dict[str, Any] = {"giveaway_id": giveaway_id}
        if valid_only:
            filters["is_valid"] = 1
        return self.find_where(filters, order_by="entry_id")

    def find_page(
        self,
        giveaway_id: str,
        *,
        valid_only: bool,
        limit: int,
        offset: int,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        where, binds = listing_filter(giveaway_id, valid_only=valid_only, search=search)
        sql = (
            f"SELECT * FROM {self.table_name} {where} ORDER BY created_at, entry_id"
            " OFFSET :off ROWS FETCH NEXT :lim ROWS ONLY"
        )
        return self._select(sql, {**binds, "off": offset, "lim": limit})

    def count_for_giveaway(
        self, giveaway_id: str, *, valid_only: bool = False, search: str | None = None
    ) -> int:
        where, binds = listing_filter(giveaway_id, valid_only=valid_only, search=search)
        return self._scalar(f"SELECT COUNT(*) FROM {self.table_name} {where}", binds)

    def find_by_contact(
        self,
        giveaway_id: str,
        *,
        email: str | None = None,
        phone: str | None = None,
    ) -> list[dict[str, Any]]:
        """Entries in a giveaway whose normalized email OR phone matches."""
        clauses: list[str] = []
        params: dict[str, Any] = {"gid": giveaway_id}
        if email:
            clauses.append("email = :email")
            params["email"] = email
        if phone:
            clauses.append("phone = :phone")
            params["phone"] = phone
        if not clauses:
            return []
        sql = (
            f"SELECT * FROM {self.table_name} "
            f"WHERE giveaway_id = :gid AND ({' OR '.join(clauses)}) "
            f"ORDER BY created_at"
        )
        return self._select(sql, params)

    def insert(self, data: dict[str, Any]) -> str:
        """Insert an entry; a dedupe-key collision raises ``ConflictError``."""
        try:
            return self.create(data=data)
        except oracledb.IntegrityError as e:
            if is_unique_violation(e):
                logger.info(
                    "Duplicate entry rejected by store for giveaway %s",
                    data.get("giveaway_id"),
                )
                raise ConflictError(
                    "You have already entered this giveaway", code=DUPLICATE_ENTRY
                ) from e
            raise

    def apply_bonus(
        self,
        entry_id: str,
        *,
        secondary_contact: str,
        contact_type: str,
        increment: int,
    ) -> int:
        """Credit the secondary-contact bonus once.

        Fills the matching primary column only when it is empty and sets the
        matching opt-in. Guarded on ``bonus_claimed = 0``; returns rows
        affected (``0`` when already claimed).
        """
        column = "email" if contact_type == "email" else "phone"
        opt_in = "email_opt_in" if contact_type == "email" else "sms_opt_in"
        sql = (
            f"UPDATE {self.table_name} SET "
            f"bonus_claimed = 1, "
            f"secondary_contact = :sc, "
            f"{column} = COALESCE({column}, :sc), "
            f"{opt_in} = 1, "
            f"entry_count = entry_count + :inc "
            f"WHERE entry_id = :id AND bonus_claimed = 0"
        )
        return self._execute(sql, {"sc": secondary_contact, "inc": increment, "id": entry_id})

    def set_validity(
        self,
        entry_id: str,
        *,
        is_valid: bool,
        reason: str | None,
        actor: str,
        now: Any,
    ) -> int:
        return self.update(
            entry_id,
            data={
                "is_valid": 1 if is_valid else 0,
                "invalidation_reason": None if is_valid else reason,
                "validity_updated_at": now,
                "validity_updated_by": actor,
            },
        )
