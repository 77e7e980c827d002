"""Entry, lookup and bonus schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class EntrySubmit(BaseModel):
    """Public entry form."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    state: str = Field(min_length=2, max_length=2)
    zip_code: str | None = Field(default=None, max_length=10)
    agreed_to_rules: bool = False
    sms_opt_in: bool = False
    entry_channel: str | None = Field(default=None, pattern=r"^(email|phone)$")
    entry_source: str | None = Field(default=None, max_length=50)
    secondary_contact: str | None = Field(default=None, max_length=255)
    referral_code: str | None = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def _require_contact(self) -> EntrySubmit:
        if not self.email and not self.phone:
            raise ValueError("Email or phone is required")
        return self


class EntryLookup(BaseModel):
    email: str | None = None
    phone: str | None = None


class BonusClaim(BaseModel):
    secondary_contact: str = Field(min_length=1, max_length=255)
    contact_type: str = Field(pattern=r"^(email|phone)$")


class EntryValidity(BaseModel):
    """Admin validity toggle; invalidation requires a reason."""

    is_valid: bool
    reason: str | None = Field(default=None, max_length=500)


class UnsubscribeRequest(BaseModel):
    """Opt-out; omit ``giveaway_id`` to leave every giveaway."""

    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    channel: str = Field(default="both", pattern=r"^(email|sms|both)$")
    giveaway_id: str | None = Field(default=None, max_length=32)
    reason: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _require_contact(self) -> UnsubscribeRequest:
        if not self.email and not self.phone:
            raise ValueError("Email or phone is required")
        return self
