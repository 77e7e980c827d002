"""Response envelopes shared by the route modules."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total_items: int
    total_pages: int


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    pagination: PaginationMeta


class ErrorResponse(BaseModel):
    """RFC 7807 Problem Details error response, plus the engine's error code."""

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    code: str | None = None


class HealthResponse(BaseModel):
    status: str
    environment: str
    database: str | None = None


class ActionResponse(BaseModel):
    """Outcome of an admin action; warnings are never empty-by-omission."""

    action: str
    target_id: str
    data: Any = None
    warnings: list[str] = []
