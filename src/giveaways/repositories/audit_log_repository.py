"""Audit log repository — data access for the ``audit_log`` table."""

from __future__ import annotations

import json
from typing import Any

from giveaways.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository):
    def __init__(self, pool: Any) -> None:
        super().__init__(pool=pool, table_name="audit_log", id_column="log_id")

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
            data={
                "giveaway_id": giveaway_id,
                "target_type": target_type,
                "target_id": target_id,
                "action": action,
                "actor": actor,
                "details": json.dumps(details or {}, default=str),
                "created_at": now,
            }
        )

    def find_by_target(self, target_id: str) -> list[dict[str, Any]]:
        return self.find_where({"target_id": target_id}, order_by="created_at")

    def find_by_giveaway(self, giveaway_id: str) -> list[dict[str, Any]]:
        return self.find_where({"giveaway_id": giveaway_id}, order_by="created_at")
