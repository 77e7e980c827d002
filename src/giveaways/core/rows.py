"""Helpers for reading Oracle dict rows."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def flag(row: dict[str, Any], key: str) -> bool:
    """Read a ``NUMBER(1)`` boolean column."""
    return bool(row.get(key) or 0)


def as_utc(value: Any) -> datetime | None:
    """Coerce a TIMESTAMP value (naive = UTC) or ISO string to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
