"""Winner administration schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class WinnerUpdate(BaseModel):
    """Admin action on a winner.

    ``action`` is validated by the service so that unknown actions come back
    as ``InvalidAction`` rather than a generic schema error.
    """

    action: str = Field(min_length=1, max_length=32)
    reason: str | None = Field(default=None, max_length=500)
    channel: str | None = Field(default=None, pattern=r"^(email|sms|both)$")
