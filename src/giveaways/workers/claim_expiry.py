"""Claim expiry worker — forfeits primaries whose claim window has closed.

Run periodically (e.g. every 15 minutes). Each forfeit goes through
``ClaimWorkflow`` so auto-mode giveaways promote their next alternate.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


class ClaimExpiryResult:
    """Result of a claim expiry run."""

    def __init__(self) -> None:
        self.forfeited: list[str] = []
        self.promoted: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "forfeited": self.forfeited,
            "promoted": self.promoted,
            "warnings": self.warnings,
            "errors": self.errors,
            "success": self.success,
        }


class ClaimExpiryWorker:
    def __init__(self, claim_workflow: Any) -> None:
        self.claim_workflow = claim_workflow

    def run(self, now: datetime | None = None) -> ClaimExpiryResult:
        """Execute one expiry cycle."""
        if now is None:
            now = datetime.now(tz=UTC)

        result = ClaimExpiryResult()
        try:
            outcomes = self.claim_workflow.expire_overdue(now=now)
        except Exception as e:
            logger.exception("Claim expiry run failed")
            result.errors.append(f"Failed to expire overdue claims: {e}")
            return result

        for outcome in outcomes:
            result.forfeited.append(outcome.winner["winner_id"])
            if outcome.promoted is not None:
                result.promoted.append(outcome.promoted["winner_id"])
            result.warnings.extend(outcome.warnings)

        logger.info(
            "Claim expiry: forfeited=%d promoted=%d",
            len(result.forfeited),
            len(result.promoted),
        )
        return result
