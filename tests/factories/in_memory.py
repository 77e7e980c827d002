"""In-memory stand-ins for the Oracle repositories.

Every repo in one :class:`InMemoryDatabase` shares a single lock, so the
compare-and-set and transactional methods behave atomically the way the
SQL versions do. Reads return copies, like rows fetched from a cursor.
"""

from __future__ import annotations

import threading
import uuid
from typing import Any

from giveaways.core.errors import DUPLICATE_ENTRY, ConflictError
from giveaways.core.rows import as_utc


def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    for key, value in (filters or {}).items():
        if value is None:
            if row.get(key) is not None:
                return False
        elif row.get(key) != value:
            return False
    return True


class InMemoryRepo:
    id_column = "id"

    def __init__(self, lock: threading.RLock) -> None:
        self._lock = lock
        self._rows: dict[str, dict[str, Any]] = {}

    def find_by_id(self, entity_id: str, conn: Any = None, *, for_update: bool = False) -> Any:
        with self._lock:
            row = self._rows.get(entity_id)
            return dict(row) if row is not None else None

    def find_where(
        self, filters: dict[str, Any], order_by: str | None = None, conn: Any = None
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [dict(r) for r in self._rows.values() if _matches(r, filters)]
        return sorted(rows, key=lambda r: r[self.id_column])

    def find_one_where(self, filters: dict[str, Any]) -> dict[str, Any] | None:
        rows = self.find_where(filters)
        return rows[0] if rows else None

    def find_all(
        self,
        limit: int = 100,
        offset: int = 0,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        rows = self.find_where(filters or {})
        if order_by and order_by.startswith("created_at"):
            rows.sort(key=lambda r: str(r.get("created_at")), reverse="DESC" in order_by)
        return rows[offset : offset + limit]

    def count(self, filters: dict[str, Any] | None = None, conn: Any = None) -> int:
        return len(self.find_where(filters or {}))

    def create(self, data: dict[str, Any], new_id: str | None = None, conn: Any = None) -> str:
        new_id = new_id or uuid.uuid4().hex
        with self._lock:
            self._rows[new_id] = {self.id_column: new_id, **data}
        return new_id

    def update(self, entity_id: str, data: dict[str, Any], conn: Any = None) -> int:
        return self.update_where(entity_id, data)

    def update_where(
        self,
        entity_id: str,
        data: dict[str, Any],
        expected: dict[str, Any] | None = None,
        conn: Any = None,
    ) -> int:
        with self._lock:
            row = self._rows.get(entity_id)
            if row is None or not _matches(row, expected):
                return 0
            row.update(data)
            return 1

    # Test helpers
    def seed(self, *rows: dict[str, Any]) -> None:
        with self._lock:
            for row in rows:
                self._rows[row[self.id_column]] = dict(row)

    def all(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._rows.values()]


class InMemoryGiveawayRepo(InMemoryRepo):
    id_column = "giveaway_id"

    def find_by_slug(self, slug: str) -> dict[str, Any] | None:
        return self.find_one_where({"slug": slug})

    def transition(self, giveaway_id: str, from_status: str, to_status: str, now: Any) -> int:
        return self.update_where(
            giveaway_id, {"status": to_status, "updated_at": now}, expected={"status": from_status}
        )


class InMemoryEntryRepo(InMemoryRepo):
    id_column = "entry_id"

    def find_by_giveaway(self, giveaway_id: str, *, valid_only: bool = False) -> list[dict[str, Any]]:
        filters: dict[str, Any] = {"giveaway_id": giveaway_id}
        if valid_only:
            filters["is_valid"] = 1
        return self.find_where(filters)

    def _listing(
        self, giveaway_id: str, valid_only: bool, search: str | None
    ) -> list[dict[str, Any]]:
        rows = self.find_by_giveaway(giveaway_id, valid_only=valid_only)
        needle = (search or "").strip().lower()
        if not needle:
            return rows
        return [
            r
            for r in rows
            if any(
                needle in str(r.get(column) or "").lower()
                for column in ("email", "phone", "first_name", "last_name")
            )
        ]

    def find_page(
        self,
        giveaway_id: str,
        *,
        valid_only: bool,
        limit: int,
        offset: int,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        return self._listing(giveaway_id, valid_only, search)[offset : offset + limit]

    def count_for_giveaway(
        self, giveaway_id: str, *, valid_only: bool = False, search: str | None = None
    ) -> int:
        return len(self._listing(giveaway_id, valid_only, search))

    def find_by_contact(
        self, giveaway_id: str, *, email: str | None = None, phone: str | None = None
    ) -> list[dict[str, Any]]:
        if not email and not phone:
            return []
        return [
            e
            for e in self.find_by_giveaway(giveaway_id)
            if (email and e.get("email") == email) or (phone and e.get("phone") == phone)
        ]

    def insert(self, data: dict[str, Any]) -> str:
        """Enforce the per-giveaway dedupe-key unique indexes."""
        with self._lock:
            for row in self._rows.values():
                if row["giveaway_id"] != data["giveaway_id"]:
                    continue
                for key in ("dedupe_email", "dedupe_phone"):
                    if data.get(key) is not None and row.get(key) == data.get(key):
                        raise ConflictError(
                            "You have already entered this giveaway", code=DUPLICATE_ENTRY
                        )
            return self.create(data)

    def apply_bonus(
        self, entry_id: str, *, secondary_contact: str, contact_type: str, increment: int
    ) -> int:
        column = "email" if contact_type == "email" else "phone"
        opt_in = "email_opt_in" if contact_type == "email" else "sms_opt_in"
        with self._lock:
            row = self._rows.get(entry_id)
            if row is None or row.get("bonus_claimed"):
                return 0
            row["bonus_claimed"] = 1
            row["secondary_contact"] = secondary_contact
            row[column] = row.get(column) or secondary_contact
            row[opt_in] = 1
            row["entry_count"] = int(row.get("entry_count") or 1) + increment
            return 1

    def set_validity(
        self, entry_id: str, *, is_valid: bool, reason: str | None, actor: str, now: Any
    ) -> int:
        return self.update(
            entry_id,
            {
                "is_valid": 1 if is_valid else 0,
                "invalidation_reason": None if is_valid else reason,
                "validity_updated_at": now,
                "validity_updated_by": actor,
            },
        )


class InMemoryReferralRepo(InMemoryRepo):
    id_column = "referral_id"

    def __init__(self, lock: threading.RLock, entries: InMemoryEntryRepo) -> None:
        super().__init__(lock)
        self.entries = entries

    def find_invitation(self, giveaway_id: str, code: str) -> dict[str, Any] | None:
        return self.find_one_where(
            {"giveaway_id": giveaway_id, "referral_code": code, "referred_entry_id": None}
        )

    def find_invitation_by_referrer(self, referrer_entry_id: str) -> dict[str, Any] | None:
        return self.find_one_where(
            {"referrer_entry_id": referrer_entry_id, "referred_entry_id": None}
        )

    def create_invitation(
        self, *, giveaway_id: str, referrer_entry_id: str, code: str, now: Any
    ) -> bool:
        with self._lock:
            for row in self._rows.values():
                if row.get("referred_entry_id") is not None:
                    continue
                if row["referrer_entry_id"] == referrer_entry_id:
                    return False
                if row["giveaway_id"] == giveaway_id and row["referral_code"] == code:
                    return False
            self.create(
                {
                    "giveaway_id": giveaway_id,
                    "referrer_entry_id": referrer_entry_id,
                    "referral_code": code,
                    "referred_entry_id": None,
                    "referred_ip": None,
                    "bonus_entries_awarded": 0,
                    "created_at": now,
                }
            )
            return True

    def _conversions(self, referrer_entry_id: str) -> list[dict[str, Any]]:
        return [
            r
            for r in self._rows.values()
            if r["referrer_entry_id"] == referrer_entry_id and r.get("referred_entry_id")
        ]

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
        referrer_id = invitation["referrer_entry_id"]
        with self._lock:
            if referrer_id not in self.entries._rows:
                return 0
            if any(r.get("referred_entry_id") == referred_entry_id for r in self._rows.values()):
                return 0
            converted = self._conversions(referrer_id)
            if len(converted) >= max_total:
                return 0
            if referred_ip and (
                sum(1 for r in converted if r.get("referred_ip") == referred_ip) >= max_per_ip
            ):
                return 0
            self.create(
                {
                    "giveaway_id": invitation["giveaway_id"],
                    "referrer_entry_id": referrer_id,
                    "referral_code": invitation["referral_code"],
                    "referred_entry_id": referred_entry_id,
                    "referred_ip": referred_ip,
                    "converted_at": now,
                    "bonus_entries_awarded": bonus,
                    "created_at": now,
                }
            )
            referrer = self.entries._rows[referrer_id]
            referrer["entry_count"] = int(referrer.get("entry_count") or 1) + bonus
        return bonus

    def referral_entries(self, referrer_entry_id: str) -> int:
        with self._lock:
            return sum(int(r["bonus_entries_awarded"]) for r in self._conversions(referrer_entry_id))

    def find_by_referrers(self, referrer_entry_ids: list[str]) -> list[dict[str, Any]]:
        wanted = set(referrer_entry_ids)
        rows: list[dict[str, Any]] = []
        with self._lock:
            for r in self._rows.values():
                if r["referrer_entry_id"] not in wanted:
                    continue
                referred = self.entries._rows.get(r.get("referred_entry_id") or "", {})
                rows.append(
                    {
                        **r,
                        "referred_first_name": referred.get("first_name"),
                        "referred_last_name": referred.get("last_name"),
                    }
                )
        return rows


class InMemoryUnsubscribeRepo(InMemoryRepo):
    id_column = "unsubscribe_id"

    def is_unsubscribed(
        self, giveaway_id: str, *, email: str | None = None, phone: str | None = None
    ) -> bool:
        with self._lock:
            for r in self._rows.values():
                if r["unsubscribe_type"] != "all" and r.get("giveaway_id") != giveaway_id:
                    continue
                if email and r.get("email") == email and r["channel"] in ("email", "both"):
                    return True
                if phone and r.get("phone") == phone and r["channel"] in ("sms", "both"):
                    return True
        return False

    def record(
        self,
        *,
        email: str | None,
        phone: str | None,
        channel: str,
        giveaway_id: str | None,
        reason: str | None,
        now: Any,
    ) -> str:
        return self.create(
            {
                "email": email,
                "phone": phone,
                "channel": channel,
                "unsubscribe_type": "giveaway" if giveaway_id else "all",
                "giveaway_id": giveaway_id,
                "reason": reason,
                "created_at": now,
            }
        )


class InMemoryPrizeClaimRepo(InMemoryRepo):
    id_column = "claim_id"

    def find_by_winner(self, winner_id: str) -> dict[str, Any] | None:
        return self.find_one_where({"winner_id": winner_id})


_OPEN = ("pending", "notified")


class InMemoryWinnerRepo(InMemoryRepo):
    id_column = "winner_id"

    def __init__(
        self,
        lock: threading.RLock,
        giveaways: InMemoryGiveawayRepo,
        prize_claims: InMemoryPrizeClaimRepo,
    ) -> None:
        super().__init__(lock)
        self.giveaways = giveaways
        self.prize_claims = prize_claims
        self.commit_calls = 0

    def find_by_giveaway(self, giveaway_id: str) -> list[dict[str, Any]]:
        rows = self.find_where({"giveaway_id": giveaway_id})
        return sorted(rows, key=lambda w: (w.get("alternate_order") or 0, w["winner_id"]))

    def find_by_token(self, claim_token: str) -> dict[str, Any] | None:
        return self.find_one_where({"claim_token": claim_token})

    def find_pending_alternates(self, giveaway_id: str) -> list[dict[str, Any]]:
        rows = self.find_where(
            {"giveaway_id": giveaway_id, "winner_type": "alternate", "status": "pending"}
        )
        return sorted(rows, key=lambda w: w["alternate_order"])

    def find_overdue(self, now: Any) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                dict(w)
                for w in self._rows.values()
                if w["status"] in _OPEN
                and w["winner_type"] == "primary"
                and w.get("claim_deadline") is not None
                and as_utc(w["claim_deadline"]) < now
            ]
        return sorted(rows, key=lambda w: as_utc(w["claim_deadline"]))

    def commit_selection(self, giveaway_id: str, winners: list[dict[str, Any]], now: Any) -> bool:
        with self._lock:
            self.commit_calls += 1
            flipped = self.giveaways.update_where(
                giveaway_id,
                {"winner_selected": 1, "status": "ended", "updated_at": now},
                expected={"winner_selected": 0, "status": "active"},
            )
            if not flipped:
                return False
            for winner in winners:
                self._rows[winner["winner_id"]] = dict(winner)
        return True

    def mark_notified(self, winner_id: str, method: str | None, now: Any) -> int:
        with self._lock:
            row = self._rows.get(winner_id)
            if row is None or row["status"] not in _OPEN:
                return 0
            row.update(
                {"status": "notified", "notified_at": now, "notification_method": method}
            )
            return 1

    def mark_claimed(self, winner_id: str, claim: dict[str, Any], now: Any) -> bool:
        with self._lock:
            row = self._rows.get(winner_id)
            if row is None or row.get("claimed_at") is not None or row["status"] not in _OPEN:
                return False
            row.update({"status": "claimed", "claimed_at": now, "updated_at": now})
            existing = self.prize_claims.find_by_winner(winner_id)
            self.prize_claims.create(
                {
                    "winner_id": winner_id,
                    **claim,
                    "fulfillment_status": "pending",
                    "verified": 0,
                    "created_at": now,
                    "updated_at": now,
                },
                new_id=existing["claim_id"] if existing else None,
            )
        return True

    def close(
        self, winner_id: str, *, status: str, reason: str | None, expected_status: str, now: Any
    ) -> int:
        return self.update_where(
            winner_id,
            {"status": status, "status_reason": reason, "updated_at": now},
            expected={"status": expected_status, "claimed_at": None},
        )

    def promote(self, winner_id: str, now: Any, claim_deadline: Any) -> int:
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


class InMemoryAuditRepo(InMemoryRepo):
    id_column = "log_id"

    def record(
        self,
        *,
        giveaway_id: str | None,
        target_type: str,
        target_id: str,
        action: str,
        actor: str,
        details: dict[str, Any] | None,
        now: Any,
    ) -> str:
        return self.create(
            {
                "giveaway_id": giveaway_id,
                "target_type": target_type,
                "target_id": target_id,
                "action": action,
                "actor": actor,
                "details": details or {},
                "created_at": now,
            }
        )

    def find_by_target(self, target_id: str) -> list[dict[str, Any]]:
        """Insertion order stands in for ``ORDER BY created_at``."""
        with self._lock:
            return [dict(r) for r in self._rows.values() if r["target_id"] == target_id]

    def actions(self) -> list[str]:
        return [r["action"] for r in self.all()]


class InMemoryDatabase:
    """One lock, seven tables."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.giveaways = InMemoryGiveawayRepo(self.lock)
        self.entries = InMemoryEntryRepo(self.lock)
        self.referrals = InMemoryReferralRepo(self.lock, self.entries)
        self.prize_claims = InMemoryPrizeClaimRepo(self.lock)
        self.winners = InMemoryWinnerRepo(self.lock, self.giveaways, self.prize_claims)
        self.audit = InMemoryAuditRepo(self.lock)
        self.unsubscribes = InMemoryUnsubscribeRepo(self.lock)
