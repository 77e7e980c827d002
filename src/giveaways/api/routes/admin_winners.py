"""Admin winner routes — selection and the winner action surface."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from giveaways.api.deps import require_admin
from giveaways.api.schemas.common import ActionResponse, ErrorResponse
from giveaways.api.schemas.winners import WinnerUpdate

router = APIRouter(prefix="/api/v1/admin", tags=["admin-winners"])


def _get_admin_actions():  # type: ignore[no-untyped-def]
    from giveaways.core.database import get_pool
    from giveaways.services.container import build_services

    return build_services(get_pool()).admin


@router.post(
    "/giveaways/{giveaway_id}/winners",
    status_code=201,
    response_model=ActionResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def select_winners(
    giveaway_id: str,
    admin: dict[str, Any] = Depends(require_admin),
) -> dict[str, Any]:
    """Draw winners (exactly once per giveaway)."""
    return _get_admin_actions().select_winners(giveaway_id, actor=admin["sub"]).to_dict()


@router.get("/giveaways/{giveaway_id}/winners", response_model=ActionResponse)
def list_winners(
    giveaway_id: str,
    _admin: dict[str, Any] = Depends(require_admin),
) -> dict[str, Any]:
    return _get_admin_actions().list_winners(giveaway_id).to_dict()


@router.put(
    "/winners/{winner_id}",
    response_model=ActionResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def update_winner(
    winner_id: str,
    body: WinnerUpdate,
    admin: dict[str, Any] = Depends(require_admin),
) -> dict[str, Any]:
    """Apply notify, forfeit, disqualify or promote to a winner."""
    return (
        _get_admin_actions()
        .update_winner(
            winner_id,
            body.action,
            reason=body.reason,
            channel=body.channel,
            actor=admin["sub"],
        )
        .to_dict()
    )
