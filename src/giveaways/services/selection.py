"""Winner selection — CSPRNG draw of primaries and alternates, once per giveaway.

Uses Python's ``secrets`` module. Indices are drawn by rejection sampling
over the smallest covering bit width, so every candidate is equally likely
(no modulo bias). The candidate pool is ordered by ``entry_id`` and
fingerprinted so a draw can be audited against the pool it ran on.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from giveaways.core.constants import CLAIM_TOKEN_BYTES, DEFAULT_CLAIM_DEADLINE_DAYS
from giveaways.core.errors import (
    ALREADY_SELECTED,
    INSUFFICIENT_ENTRIES,
    NOT_ELIGIBLE,
    ConflictError,
    NotFoundError,
    PolicyError,
)
from giveaways.core.rows import flag
from giveaways.services.notifications import failure_warnings, notification_method

logger = logging.getLogger(__name__)

ALGORITHM = "secrets.randbits rejection sampling without replacement"


def secure_randbelow(n: int) -> int:
    """Uniform integer in ``[0, n)`` from the OS CSPRNG.

    Draws ``ceil(log2 n)`` random bits and rejects values ``>= n``; the
    expected number of draws is below 2. Spelled out rather than calling
    ``secrets.randbelow`` so the unbiased draw the audit record names is
    visible here and does not rest on a private ``random`` helper.
    """
    if n <= 0:
        raise ValueError("n must be positive")
    if n == 1:
        return 0
    bits = (n - 1).bit_length()
    while True:
        candidate = secrets.randbits(bits)
        if candidate < n:
            return candidate


def sample_without_replacement(population: list[Any], k: int) -> list[Any]:
    """Draw *k* distinct items in draw order (partial Fisher-Yates)."""
    if k < 0 or k > len(population):
        raise ValueError("sample size out of range")
    pool = list(population)
    picked: list[Any] = []
    for _ in range(k):
        idx = secure_randbelow(len(pool))
        pool[idx], pool[-1] = pool[-1], pool[idx]
        picked.append(pool.pop())
    return picked


def generate_claim_token() -> str:
    """Opaque 256-bit URL-safe token; encodes no identifiers."""
    return secrets.token_urlsafe(CLAIM_TOKEN_BYTES)


def pool_fingerprint(entry_ids: list[str]) -> str:
    return hashlib.sha256("\n".join(entry_ids).encode()).hexdigest()


def claim_url(site_url: str, token: str) -> str:
    return f"{site_url.rstrip('/')}/claim/{token}"


@dataclass
class SelectionResult:
    """Outcome of one draw, with audit data and notification warnings."""

    giveaway_id: str
    primaries: list[dict[str, Any]] = field(default_factory=list)
    alternates: list[dict[str, Any]] = field(default_factory=list)
    pool_size: int = 0
    pool_fingerprint: str = ""
    algorithm: str = ALGORITHM
    selected_at: datetime | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "giveaway_id": self.giveaway_id,
            "primaries": self.primaries,
            "alternates": self.alternates,
            "pool_size": self.pool_size,
            "pool_fingerprint": self.pool_fingerprint,
            "algorithm": self.algorithm,
            "selected_at": self.selected_at.isoformat() if self.selected_at else None,
            "warnings": self.warnings,
        }


class WinnerSelector:
    """Draws winners and hands primaries to notification."""

    def __init__(
        self,
        giveaway_repo: Any,
        entry_repo: Any,
        winner_repo: Any,
        notifier: Any | None = None,
        audit: Any | None = None,
        site_url: str = "http://localhost:3000",
        claim_deadline_days: int = DEFAULT_CLAIM_DEADLINE_DAYS,
    ) -> None:
        self.giveaway_repo = giveaway_repo
        self.entry_repo = entry_repo
        self.winner_repo = winner_repo
        self.notifier = notifier
        self.audit = audit
        self.site_url = site_url
        self.claim_deadline_days = claim_deadline_days

    def select_winners(
        self,
        giveaway_id: str,
        *,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> SelectionResult:
        """Draw ``num_winners`` primaries plus up to ``alternate_count`` alternates.

        Steps:
          1. Check the giveaway exists, is drawable and not yet drawn
          2. Load valid entries ordered by ``entry_id``
          3. Sample ``min(num_winners + alternate_count, valid)`` without replacement
          4. Commit flag + winners atomically (lost race → AlreadySelected)
          5. Notify primaries; failures become warnings
        """
        now = now or datetime.now(tz=UTC)
        giveaway = self.giveaway_repo.find_by_id(giveaway_id)
        if giveaway is None:
            raise NotFoundError("Giveaway not found")
        if flag(giveaway, "winner_selected"):
            raise ConflictError("Winners have already been selected", code=ALREADY_SELECTED)
        if giveaway.get("status") != "active":
            raise PolicyError(
                f"Cannot select winners for a {giveaway.get('status')} giveaway",
                code=NOT_ELIGIBLE,
            )

        num_winners = int(giveaway.get("num_winners") or 1)
        alternate_count = int(giveaway.get("alternate_count") or 0)

        entries = self.entry_repo.find_by_giveaway(giveaway_id, valid_only=True)
        entries.sort(key=lambda e: e["entry_id"])
        valid_count = len(entries)
        if valid_count < num_winners:
            raise PolicyError(
                f"Not enough valid entries ({valid_count}) for {num_winners} winner(s)",
                code=INSUFFICIENT_ENTRIES,
            )

        k = min(num_winners + alternate_count, valid_count)
        drawn = sample_without_replacement(entries, k)

        days = int(giveaway.get("claim_deadline_days") or self.claim_deadline_days)
        deadline = now + timedelta(days=days)
        winners: list[dict[str, Any]] = []
        for i, entry in enumerate(drawn):
            is_primary = i < num_winners
            winners.append(
                {
                    "winner_id": uuid.uuid4().hex,
                    "giveaway_id": giveaway_id,
                    "entry_id": entry["entry_id"],
                    "winner_type": "primary" if is_primary else "alternate",
                    "alternate_order": None if is_primary else i - num_winners + 1,
                    "status": "pending",
                    "claim_token": generate_claim_token(),
                    "claim_deadline": deadline,
                    "notified_at": None,
                    "notification_method": None,
                    "claimed_at": None,
                    "status_reason": None,
                    "created_at": now,
                    "updated_at": now,
                }
            )

        if not self.winner_repo.commit_selection(giveaway_id, winners, now):
            current = self.giveaway_repo.find_by_id(giveaway_id) or {}
            if flag(current, "winner_selected"):
                raise ConflictError(
                    "Winners have already been selected", code=ALREADY_SELECTED
                )
            raise PolicyError("Giveaway is no longer active", code=NOT_ELIGIBLE)

        ids = [e["entry_id"] for e in entries]
        result = SelectionResult(
            giveaway_id=giveaway_id,
            primaries=[w for w in winners if w["winner_type"] == "primary"],
            alternates=[w for w in winners if w["winner_type"] == "alternate"],
            pool_size=valid_count,
            pool_fingerprint=pool_fingerprint(ids),
            selected_at=now,
        )
        logger.info(
            "Giveaway %s drawn by %s: pool=%d, primaries=%d, alternates=%d, fingerprint=%s",
            giveaway_id,
            actor or "system",
            valid_count,
            len(result.primaries),
            len(result.alternates),
            result.pool_fingerprint,
        )
        if self.audit is not None:
            self.audit.record(
                "winners_selected",
                target_type="giveaway",
                target_id=giveaway_id,
                giveaway_id=giveaway_id,
                actor=actor,
                details={
                    "pool_size": valid_count,
                    "pool_fingerprint": result.pool_fingerprint,
                    "algorithm": ALGORITHM,
                    "winner_entry_ids": [w["entry_id"] for w in winners],
                },
                now=now,
            )

        if self.notifier is not None:
            by_id = {e["entry_id"]: e for e in entries}
            for winner in result.primaries:
                result.warnings.extend(
                    self._notify(winner, by_id[winner["entry_id"]], giveaway, now)
                )
        return result

    def _notify(
        self,
        winner: dict[str, Any],
        entry: dict[str, Any],
        giveaway: dict[str, Any],
        now: datetime,
    ) -> list[str]:
        outcome = self.notifier.notify_winner(
            entry,
            giveaway,
            claim_url(self.site_url, winner["claim_token"]),
            winner["claim_deadline"],
            channel="both",
            winner_id=winner["winner_id"],
        )
        warnings = failure_warnings(outcome, winner["winner_id"])
        method = notification_method(outcome)
        if method is None:
            warnings.append(f"NotificationFailure: no channel reached {winner['winner_id']}")
        if self.winner_repo.mark_notified(winner["winner_id"], method, now):
            winner.update({"status": "notified", "notified_at": now, "notification_method": method})
        return warnings
