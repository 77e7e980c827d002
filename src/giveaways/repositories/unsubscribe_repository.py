"""Unsubscribe repository — data access for the ``giveaway_unsubscribes`` table."""

from __future__ import annotations

from typing import Any

from giveaways.repositories.base import BaseRepository


class UnsubscribeRepository(BaseRepository):
    """Opt-outs by normalized email or phone, global (``all``) or per giveaway.

    ``channel`` is ``email``, ``sms`` or ``both``; an email opt-out matches
    ``email``/``both`` rows and a phone opt-out ``sms``/``both`` rows.
    """

    def __init__(self, pool: Any) -> None:
        super().__init__(
            pool=pool, table_name="giveaway_unsubscribes", id_column="unsubscribe_id"
        )

    def is_unsubscribed(
        self,
        giveaway_id: str,
        *,
        email: str | None = None,
        phone: str | None = None,
    ) -> bool:
        contacts: list[str] = []
        params: dict[str, Any] = {"gid": giveaway_id}
        if email:
            contacts.append("(email = :email AND channel IN ('email', 'both'))")
            params["email"] = email
        if phone:
            contacts.append("(phone = :phone AND channel IN ('sms', 'both'))")
            params["phone"] = phone
        if not contacts:
            return False
        sql = (
            f"SELECT COUNT(*) FROM {self.table_name} "
            f"WHERE ({' OR '.join(contacts)}) "
            f"AND (unsubscribe_type = 'all' OR giveaway_id = :gid)"
        )
        return self._scalar(sql, params) > 0

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
            data={
                "email": email,
                "phone": phone,
                "channel": channel,
                "unsubscribe_type": "giveaway" if giveaway_id else "all",
                "giveaway_id": giveaway_id,
                "reason": reason,
                "created_at": now,
            }
        )
