"""Claim form schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ClaimSubmit(BaseModel):
    """Winner's claim form. Documents are storage references, not file content."""

    winner_id: str = Field(min_length=1)
    legal_name: str = Field(min_length=1, max_length=200)
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: str | None = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=2, max_length=2)
    zip_code: str = Field(min_length=5, max_length=10)
    w9_document: str | None = Field(default=None, max_length=500)
    id_document: str | None = Field(default=None, max_length=500)
