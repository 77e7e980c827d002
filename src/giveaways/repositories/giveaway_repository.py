"""Giveaway repository — data access for the ``giveaways`` table."""

from __future__ import annotations

from typing import Any

from giveaways.repositories.base import BaseRepository


class GiveawayRepository(BaseRepository):
    """CRUD + domain queries for giveaways."""

    def __init__(self, pool: Any) -> None:
        super().__init__(pool=pool, table_name="giveaways", id_column="giveaway_id")

    def find_by_slug(self, slug: str) -> dict[str, Any] | None:
        """Find a giveaway by its public slug."""
        return self.find_one_where({"slug": slug})

    def transition(
        self,
        giveaway_id: str,
        from_status: str,
        to_status: str,
        now: Any,
    ) -> int:
        """Move a giveaway between lifecycle states if it is still in *from_status*."""
        return self.update_where(
            giveaway_id,
            {"status": to_status, "updated_at": now},
            expected={"status": from_status},
        )
