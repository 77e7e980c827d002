"""Admin actions — the operator surface over selection, claims and entries.

Every action returns an :class:`ActionResult`; nothing silently no-ops.
The acting admin comes from the request context unless passed explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from giveaways.core.constants import WINNER_ACTIONS
from giveaways.core.context import get_actor
from giveaways.core.errors import INVALID_ACTION, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    action: str
    target_id: str
    data: Any = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "target_id": self.target_id,
            "data": self.data,
            "warnings": self.warnings,
        }


class AdminActions:
    def __init__(
        self,
        giveaway_repo: Any,
        entry_repo: Any,
        winner_repo: Any,
        prize_claim_repo: Any,
        selector: Any,
        claims: Any,
        entries: Any,
    ) -> None:
        self.giveaway_repo = giveaway_repo
        self.entry_repo = entry_repo
        self.winner_repo = winner_repo
        self.prize_claim_repo = prize_claim_repo
        self.selector = selector
        self.claims = claims
        self.entries = entries

    def select_winners(self, giveaway_id: str, actor: str | None = None) -> ActionResult:
        actor = actor or get_actor()
        result = self.selector.select_winners(giveaway_id, actor=actor)
        return ActionResult(
            action="select_winners",
            target_id=giveaway_id,
            data=result.to_dict(),
            warnings=list(result.warnings),
        )

    def list_winners(self, giveaway_id: str) -> ActionResult:
        """Winners with entrant contact and claim details, primaries first."""
        if self.giveaway_repo.find_by_id(giveaway_id) is None:
            raise NotFoundError("Giveaway not found")
        winners = self.winner_repo.find_by_giveaway(giveaway_id)
        winners.sort(
            key=lambda w: (
                w.get("winner_type") != "primary",
                w.get("alternate_order") or 0,
                w.get("winner_id"),
            )
        )
        items = []
        for winner in winners:
            entry = self.entry_repo.find_by_id(winner["entry_id"]) or {}
            claim = self.prize_claim_repo.find_by_winner(winner["winner_id"])
            items.append(
                {
                    **winner,
                    "entry": {
                        "first_name": entry.get("first_name"),
                        "last_name": entry.get("last_name"),
                        "email": entry.get("email"),
                        "phone": entry.get("phone"),
                        "state": entry.get("state"),
                    },
                    "prize_claim": claim,
                }
            )
        return ActionResult(action="list_winners", target_id=giveaway_id, data=items)

    def update_winner(
        self,
        winner_id: str,
        action: str,
        reason: str | None = None,
        channel: str | None = None,
        actor: str | None = None,
    ) -> ActionResult:
        """Apply one of ``notify``, ``forfeit``, ``disqualify``, ``promote``."""
        if action not in WINNER_ACTIONS:
            raise ValidationError(
                f"Invalid action. Must be one of: {', '.join(WINNER_ACTIONS)}",
                code=INVALID_ACTION,
            )
        actor = actor or get_actor()
        if action == "notify":
            outcome = self.claims.notify(winner_id, channel or "both", actor=actor)
        elif action == "forfeit":
            outcome = self.claims.forfeit(winner_id, reason=reason, actor=actor)
        elif action == "disqualify":
            outcome = self.claims.disqualify(winner_id, reason=reason, actor=actor)
        else:
            outcome = self.claims.promote(winner_id, actor=actor)

        logger.info("Admin %s applied %s to winner %s", actor, action, winner_id)
        return ActionResult(
            action=action,
            target_id=winner_id,
            data=outcome.to_dict(),
            warnings=list(outcome.warnings),
        )

    def set_entry_validity(
        self,
        entry_id: str,
        is_valid: bool,
        reason: str | None = None,
        actor: str | None = None,
    ) -> ActionResult:
        actor = actor or get_actor()
        entry = self.entries.set_validity(entry_id, is_valid, reason, actor=actor)
        warnings: list[str] = []
        giveaway = self.giveaway_repo.find_by_id(entry["giveaway_id"]) or {}
        if giveaway.get("winner_selected"):
            warnings.append("Winners already selected; validity change does not redraw")
        return ActionResult(
            action="set_entry_validity", target_id=entry_id, data=entry, warnings=warnings
        )
