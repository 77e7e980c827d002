"""Claim workflow — winner notification, prize claims, forfeiture and alternates.

Winner lifecycle: pending → notified → claimed | forfeited | disqualified.
pending may also go straight to forfeited/disqualified. Alternates become
primaries by promotion (manual, or automatic when a primary is closed in
``auto`` mode).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from giveaways.core.constants import (
    DEFAULT_CLAIM_DEADLINE_DAYS,
    NOTIFY_CHANNELS,
    OPEN_WINNER_STATUSES,
    WINNER_TRANSITIONS,
)
from giveaways.core.errors import (
    ALREADY_CLAIMED,
    DEADLINE_PASSED,
    INVALID_TRANSITION,
    NOT_ALTERNATE,
    NOT_ELIGIBLE,
    TOKEN_MISMATCH,
    W9_REQUIRED,
    ConflictError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from giveaways.core.rows import as_utc, flag
from giveaways.core.security import tokens_match
from giveaways.services.notifications import failure_warnings, notification_method
from giveaways.services.selection import claim_url

logger = logging.getLogger(__name__)

REQUIRED_CLAIM_FIELDS = ("legal_name", "address_line1", "city", "state", "zip_code")


@dataclass
class ClaimOutcome:
    """Result of a winner transition, with any promotion it triggered."""

    winner: dict[str, Any]
    promoted: dict[str, Any] | None = None
    notification: dict[str, bool | None] | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "winner": self.winner,
            "promoted": self.promoted,
            "notification": self.notification,
            "warnings": self.warnings,
        }


def requires_w9(giveaway: dict[str, Any]) -> bool:
    if not flag(giveaway, "require_w9") or giveaway.get("prize_value") is None:
        return False
    threshold = Decimal(str(giveaway.get("w9_threshold") or 0))
    return Decimal(str(giveaway["prize_value"])) >= threshold


class ClaimWorkflow:
    """Post-selection lifecycle for giveaway winners."""

    def __init__(
        self,
        giveaway_repo: Any,
        entry_repo: Any,
        winner_repo: Any,
        prize_claim_repo: Any,
        notifier: Any | None = None,
        audit: Any | None = None,
        site_url: str = "http://localhost:3000",
        claim_deadline_days: int = DEFAULT_CLAIM_DEADLINE_DAYS,
    ) -> None:
        self.giveaway_repo = giveaway_repo
        self.entry_repo = entry_repo
        self.winner_repo = winner_repo
        self.prize_claim_repo = prize_claim_repo
        self.notifier = notifier
        self.audit = audit
        self.site_url = site_url
        self.claim_deadline_days = claim_deadline_days

    # ── helpers ─────────────────────────────────────────────────────

    def _get_winner(self, winner_id: str) -> dict[str, Any]:
        winner = self.winner_repo.find_by_id(winner_id)
        if winner is None:
            raise NotFoundError("Winner not found")
        return winner

    def _get_giveaway(self, giveaway_id: str) -> dict[str, Any]:
        giveaway = self.giveaway_repo.find_by_id(giveaway_id)
        if giveaway is None:
            raise NotFoundError("Giveaway not found")
        return giveaway

    @staticmethod
    def _ensure_transition(winner: dict[str, Any], new_status: str) -> None:
        current = winner.get("status", "pending")
        allowed = WINNER_TRANSITIONS.get(current, [])
        if new_status not in allowed:
            raise ConflictError(
                f"Cannot transition winner from '{current}' to '{new_status}'",
                code=INVALID_TRANSITION,
            )

    def _audit(
        self,
        action: str,
        winner: dict[str, Any],
        actor: str | None,
        now: datetime,
        **details: Any,
    ) -> None:
        if self.audit is not None:
            self.audit.record(
                action,
                target_type="winner",
                target_id=winner["winner_id"],
                giveaway_id=winner["giveaway_id"],
                actor=actor,
                details=details,
                now=now,
            )

    def _deadline_from(self, giveaway: dict[str, Any], now: datetime) -> datetime:
        days = int(giveaway.get("claim_deadline_days") or self.claim_deadline_days)
        return now + timedelta(days=days)

    # ── Notify ──────────────────────────────────────────────────────

    def notify(
        self,
        winner_id: str,
        channel: str = "both",
        *,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> ClaimOutcome:
        """(Re-)send the claim link. The token is never regenerated."""
        now = now or datetime.now(tz=UTC)
        if channel not in NOTIFY_CHANNELS:
            raise ValidationError(f"Invalid channel: {channel}. Valid: {NOTIFY_CHANNELS}")
        winner = self._get_winner(winner_id)
        self._ensure_transition(winner, "notified")

        if self.notifier is None:
            raise PolicyError("No notification gateway configured", code=NOT_ELIGIBLE)

        giveaway = self._get_giveaway(winner["giveaway_id"])
        entry = self.entry_repo.find_by_id(winner["entry_id"]) or {}
        result = self.notifier.notify_winner(
            entry,
            giveaway,
            claim_url(self.site_url, winner["claim_token"]),
            winner.get("claim_deadline"),
            channel=channel,
            winner_id=winner_id,
        )
        outcome = ClaimOutcome(
            winner=winner, notification=result, warnings=failure_warnings(result, winner_id)
        )

        method = notification_method(result)
        if method is None:
            outcome.warnings.append(f"NotificationFailure: no channel reached {winner_id}")
            logger.warning("Winner %s notification reached no channel", winner_id)

        if not self.winner_repo.mark_notified(winner_id, method, now):
            raise ConflictError("Winner is no longer open", code=INVALID_TRANSITION)
        winner.update({"status": "notified", "notified_at": now, "notification_method": method})
        self._audit("winner_notified", winner, actor, now, channel=channel, results=result)
        logger.info(
            "Winner %s notified via %s (giveaway=%s) at %s",
            winner_id,
            method,
            winner["giveaway_id"],
            now.isoformat(),
        )
        return outcome

    # ── Claim ───────────────────────────────────────────────────────

    def submit_claim(
        self,
        token: str,
        winner_id: str,
        form_fields: dict[str, Any],
        documents: dict[str, str | None] | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Accept the winner's claim form.

        Document values are opaque references (storage keys), never content.
        """
        now = now or datetime.now(tz=UTC)
        documents = documents or {}

        missing = [f for f in REQUIRED_CLAIM_FIELDS if not (form_fields.get(f) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        holder = self.winner_repo.find_by_token(token) if token else None
        if holder is None:
            raise NotFoundError("Invalid claim token")
        winner = holder if holder["winner_id"] == winner_id else self.winner_repo.find_by_id(
            winner_id
        )
        if winner is None or not tokens_match(winner.get("claim_token"), token):
            raise ValidationError(
                "Token does not match winner", code=TOKEN_MISMATCH, status_code=403
            )

        if winner.get("claimed_at") is not None or winner.get("status") == "claimed":
            raise ConflictError("Prize has already been claimed", code=ALREADY_CLAIMED)
        self._ensure_transition(winner, "claimed")

        deadline = as_utc(winner.get("claim_deadline"))
        if deadline is not None and now > deadline:
            raise PolicyError("Claim deadline has passed", code=DEADLINE_PASSED)
        if winner.get("winner_type") != "primary":
            raise PolicyError(
                "Alternates may claim only after promotion", code=NOT_ELIGIBLE
            )

        giveaway = self._get_giveaway(winner["giveaway_id"])
        if requires_w9(giveaway) and not documents.get("w9_document"):
            raise PolicyError("W-9 form is required for this prize", code=W9_REQUIRED)

        claim = {
            "legal_name": form_fields["legal_name"].strip(),
            "address_line1": form_fields["address_line1"].strip(),
            "address_line2": (form_fields.get("address_line2") or "").strip() or None,
            "city": form_fields["city"].strip(),
            "state": form_fields["state"].strip().upper(),
            "zip_code": form_fields["zip_code"].strip(),
            "w9_document": documents.get("w9_document"),
            "id_document": documents.get("id_document"),
        }
        if not self.winner_repo.mark_claimed(winner_id, claim, now):
            current = self._get_winner(winner_id)
            if current.get("claimed_at") is not None:
                raise ConflictError("Prize has already been claimed", code=ALREADY_CLAIMED)
            raise ConflictError(
                f"Cannot claim a {current.get('status')} prize", code=INVALID_TRANSITION
            )

        logger.info(
            "Prize claimed: winner %s (giveaway=%s) at %s",
            winner_id,
            winner["giveaway_id"],
            now.isoformat(),
        )

        warnings: list[str] = []
        if self.notifier is not None:
            entry = self.entry_repo.find_by_id(winner["entry_id"]) or {}
            warnings = failure_warnings(
                self.notifier.send_claim_confirmation(entry, giveaway, winner_id), winner_id
            )

        stored = self.prize_claim_repo.find_by_winner(winner_id)
        return {
            "winner_id": winner_id,
            "claim_id": stored.get("claim_id") if stored else None,
            "status": "claimed",
            "claimed_at": now,
            "warnings": warnings,
        }

    def get_claim_status(self, token: str) -> dict[str, Any]:
        """Public view of a claim, looked up by its token."""
        winner = self.winner_repo.find_by_token(token) if token else None
        if winner is None:
            raise NotFoundError("Invalid claim token")
        giveaway = self._get_giveaway(winner["giveaway_id"])
        claim = self.prize_claim_repo.find_by_winner(winner["winner_id"])
        return {
            "winner_id": winner["winner_id"],
            "status": winner.get("status"),
            "winner_type": winner.get("winner_type"),
            "claimed": winner.get("claimed_at") is not None,
            "claimed_at": winner.get("claimed_at"),
            "claim_deadline": winner.get("claim_deadline"),
            "giveaway": giveaway.get("title"),
            "prize": giveaway.get("prize_title"),
            "requires_w9": requires_w9(giveaway),
            "verified": flag(claim, "verified") if claim else False,
            "fulfillment_status": claim.get("fulfillment_status") if claim else None,
        }

    # ── Forfeit / disqualify ────────────────────────────────────────

    def forfeit(
        self,
        winner_id: str,
        reason: str | None = None,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> ClaimOutcome:
        return self._close(winner_id, "forfeited", reason, actor, now)

    def disqualify(
        self,
        winner_id: str,
        reason: str | None = None,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> ClaimOutcome:
        return self._close(winner_id, "disqualified", reason, actor, now)

    def _close(
        self,
        winner_id: str,
        new_status: str,
        reason: str | None,
        actor: str | None,
        now: datetime | None,
    ) -> ClaimOutcome:
        now = now or datetime.now(tz=UTC)
        winner = self._get_winner(winner_id)
        current = winner.get("status")
        if current not in OPEN_WINNER_STATUSES:
            raise ConflictError(
                f"Cannot transition winner from '{current}' to '{new_status}'",
                code=INVALID_TRANSITION,
            )
        self._ensure_transition(winner, new_status)

        if not self.winner_repo.close(
            winner_id, status=new_status, reason=reason, expected_status=current, now=now
        ):
            raise ConflictError(
                "Winner changed concurrently; reload and retry", code=INVALID_TRANSITION
            )
        winner.update({"status": new_status, "status_reason": reason, "updated_at": now})
        self._audit(
            f"winner_{new_status}", winner, actor, now, previous=current, reason=reason
        )
        logger.info(
            "Winner %s %s (giveaway=%s, reason=%s) at %s",
            winner_id,
            new_status,
            winner["giveaway_id"],
            reason,
            now.isoformat(),
        )

        outcome = ClaimOutcome(winner=winner)
        giveaway = self._get_giveaway(winner["giveaway_id"])
        if giveaway.get("alternate_selection") == "auto" and winner.get("winner_type") == "primary":
            outcome.promoted = self._promote_next(giveaway, actor, now)
            if outcome.promoted is None:
                outcome.warnings.append("No pending alternate left to promote")
        return outcome

    # ── Promotion ───────────────────────────────────────────────────

    def promote(
        self,
        winner_id: str,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> ClaimOutcome:
        """Make an alternate a primary (manual mode, or admin override)."""
        now = now or datetime.now(tz=UTC)
        winner = self._get_winner(winner_id)
        if winner.get("winner_type") != "alternate":
            raise ConflictError("Only alternates can be promoted", code=NOT_ALTERNATE)
        if winner.get("status") not in OPEN_WINNER_STATUSES:
            raise ConflictError(
                f"Cannot promote a {winner.get('status')} alternate", code=INVALID_TRANSITION
            )
        giveaway = self._get_giveaway(winner["giveaway_id"])
        deadline = self._deadline_from(giveaway, now)
        if not self.winner_repo.promote(winner_id, now, deadline):
            raise ConflictError("Only alternates can be promoted", code=NOT_ALTERNATE)
        winner.update(
            {"winner_type": "primary", "alternate_order": None, "claim_deadline": deadline}
        )
        self._audit("winner_promoted", winner, actor, now, mode="manual")
        logger.info("Alternate %s promoted (giveaway=%s)", winner_id, winner["giveaway_id"])
        return ClaimOutcome(winner=winner)

    def _promote_next(
        self, giveaway: dict[str, Any], actor: str | None, now: datetime
    ) -> dict[str, Any] | None:
        """Promote the lowest-ordered pending alternate still available.

        A candidate taken by a concurrent promotion fails its guard and the
        next one is tried.
        """
        deadline = self._deadline_from(giveaway, now)
        for candidate in self.winner_repo.find_pending_alternates(giveaway["giveaway_id"]):
            if self.winner_repo.promote(candidate["winner_id"], now, deadline):
                candidate.update(
                    {"winner_type": "primary", "alternate_order": None, "claim_deadline": deadline}
                )
                self._audit("winner_promoted", candidate, actor, now, mode="auto")
                logger.info(
                    "Alternate %s auto-promoted (giveaway=%s)",
                    candidate["winner_id"],
                    giveaway["giveaway_id"],
                )
                return candidate
        return None

    # ── Expiry ──────────────────────────────────────────────────────

    def expire_overdue(self, now: datetime | None = None) -> list[ClaimOutcome]:
        """Forfeit every open primary whose claim deadline has passed."""
        now = now or datetime.now(tz=UTC)
        outcomes: list[ClaimOutcome] = []
        for winner in self.winner_repo.find_overdue(now):
            try:
                outcomes.append(
                    self.forfeit(
                        winner["winner_id"], reason="Claim deadline passed", actor="system", now=now
                    )
                )
            except ConflictError as e:
                # Claimed or closed between the scan and the update.
                logger.info("Skipping expiry of winner %s: %s", winner["winner_id"], e.detail)
        return outcomes
