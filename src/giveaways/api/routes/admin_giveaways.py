"""Admin giveaway routes — /api/v1/admin/giveaways and entry moderation."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from giveaways.api.deps import PaginationParams, get_pagination, require_admin
from giveaways.api.schemas.common import ActionResponse, PaginatedResponse
from giveaways.api.schemas.entries import EntryValidity
from giveaways.api.schemas.giveaways import GiveawayCreate, GiveawayResponse

router = APIRouter(prefix="/api/v1/admin", tags=["admin-giveaways"])


def _get_services():  # type: ignore[no-untyped-def]
    from giveaways.core.database import get_pool
    from giveaways.services.container import build_services

    return build_services(get_pool())


@router.post("/giveaways", status_code=201, response_model=GiveawayResponse)
def create_giveaway(
    body: GiveawayCreate,
    admin: dict[str, Any] = Depends(require_admin),
) -> Any:
    services = _get_services()
    created = services.giveaways.create_giveaway(**body.model_dump(), actor=admin["sub"])
    return services.giveaways.get_giveaway(created["giveaway_id"])


@router.get("/giveaways", response_model=PaginatedResponse[GiveawayResponse])
def list_giveaways(
    status: str | None = Query(default=None),
    pagination: PaginationParams = Depends(get_pagination),
    _admin: dict[str, Any] = Depends(require_admin),
) -> dict[str, Any]:
    return _get_services().giveaways.list_giveaways(
        status=status, page=pagination.page, limit=pagination.limit
    )


@router.get("/giveaways/{giveaway_id}", response_model=GiveawayResponse)
def get_giveaway(
    giveaway_id: str,
    _admin: dict[str, Any] = Depends(require_admin),
) -> Any:
    return _get_services().giveaways.get_giveaway(giveaway_id)


@router.post("/giveaways/{giveaway_id}/activate", response_model=GiveawayResponse)
def activate_giveaway(
    giveaway_id: str,
    admin: dict[str, Any] = Depends(require_admin),
) -> Any:
    return _get_services().giveaways.activate(giveaway_id, actor=admin["sub"])


@router.post("/giveaways/{giveaway_id}/cancel", response_model=GiveawayResponse)
def cancel_giveaway(
    giveaway_id: str,
    admin: dict[str, Any] = Depends(require_admin),
) -> Any:
    return _get_services().giveaways.cancel(giveaway_id, actor=admin["sub"])


@router.get("/giveaways/{giveaway_id}/entries")
def list_entries(
    giveaway_id: str,
    valid_only: bool = Query(default=False),
    search: str | None = Query(default=None, max_length=100),
    pagination: PaginationParams = Depends(get_pagination),
    _admin: dict[str, Any] = Depends(require_admin),
) -> dict[str, Any]:
    """Entries with weight breakdown, winner status and converted referrals."""
    return _get_services().entries.list_entries(
        giveaway_id,
        valid_only=valid_only,
        search=search,
        page=pagination.page,
        limit=pagination.limit,
    )


@router.put("/entries/{entry_id}/validity", response_model=ActionResponse)
def set_entry_validity(
    entry_id: str,
    body: EntryValidity,
    admin: dict[str, Any] = Depends(require_admin),
) -> dict[str, Any]:
    result = _get_services().admin.set_entry_validity(
        entry_id, body.is_valid, body.reason, actor=admin["sub"]
    )
    return result.to_dict()


@router.get("/audit/{target_id}")
def audit_history(
    target_id: str,
    _admin: dict[str, Any] = Depends(require_admin),
) -> dict[str, Any]:
    """Audit trail for a giveaway, entry or winner."""
    return {"items": _get_services().audit.history(target_id)}
