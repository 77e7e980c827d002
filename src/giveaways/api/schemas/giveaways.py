"""Giveaway entity schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class GiveawayCreate(BaseModel):
    """Schema for creating a giveaway (always starts in draft)."""

    title: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=120)
    prize_title: str = Field(min_length=1, max_length=255)
    prize_value: float | None = Field(default=None, ge=0)
    start_date: datetime
    end_date: datetime
    entry_type: str = Field(default="both", pattern=r"^(email|phone|both)$")
    dedupe_policy: str = Field(default="hard", pattern=r"^(hard|cross_channel)$")
    num_winners: int = Field(default=1, ge=1, le=1000)
    alternate_count: int = Field(default=0, ge=0, le=1000)
    alternate_selection: str = Field(default="auto", pattern=r"^(auto|manual)$")
    require_w9: bool = False
    w9_threshold: float = Field(default=600, ge=0)
    restricted_states: list[str] = Field(default_factory=list)
    bonus_entries_enabled: bool = False
    bonus_entry_count: int = Field(default=1, ge=1)
    referral_enabled: bool = False
    referral_bonus_entries: int = Field(default=1, ge=1)
    max_referral_bonus: int = Field(default=10, ge=1)
    max_referrals_per_ip: int = Field(default=3, ge=1)
    claim_deadline_days: int = Field(default=7, ge=1, le=365)

    @model_validator(mode="after")
    def _check_dates(self) -> GiveawayCreate:
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class GiveawayResponse(BaseModel):
    giveaway_id: str
    title: str
    slug: str
    prize_title: str
    prize_value: float | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    entry_type: str
    dedupe_policy: str
    num_winners: int
    alternate_count: int
    alternate_selection: str
    status: str
    winner_selected: bool = False
    restricted_states: list[str] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None
