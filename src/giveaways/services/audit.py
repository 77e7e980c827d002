"""Audit trail — records admin-initiated mutations to ``audit_log``."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from giveaways.core.context import get_actor

logger = logging.getLogger(__name__)


class AuditTrail:
    def __init__(self, audit_repo: Any) -> None:
        self.audit_repo = audit_repo

    def record(
        self,
        action: str,
        *,
        target_type: str,
        target_id: str,
        giveaway_id: str | None = None,
        actor: str | None = None,
        details: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> str:
        """Write one audit row; *actor* defaults to the request's actor."""
        actor = actor or get_actor()
        now = now or datetime.now(tz=UTC)
        log_id: str = self.audit_repo.record(
            giveaway_id=giveaway_id,
            target_type=target_type,
            target_id=target_id,
            action=action,
            actor=actor,
            details=details,
            now=now,
        )
        logger.info(
            "Audit %s on %s %s (giveaway=%s, actor=%s)",
            action,
            target_type,
            target_id,
            giveaway_id,
            actor,
        )
        return log_id

    def history(self, target_id: str) -> list[dict[str, Any]]:
        return list(self.audit_repo.find_by_target(target_id))
