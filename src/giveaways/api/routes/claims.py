"""Public claim routes — /api/v1/claims/{token}.

The token in the path is the only credential; it is redacted from logs.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from giveaways.api.schemas.claims import ClaimSubmit

router = APIRouter(prefix="/api/v1/claims", tags=["claims"])

_DOCUMENT_FIELDS = ("w9_document", "id_document")


def _get_claim_workflow():  # type: ignore[no-untyped-def]
    from giveaways.core.database import get_pool
    from giveaways.services.container import build_services

    return build_services(get_pool()).claims


@router.get("/{token}")
def get_claim(token: str) -> dict[str, Any]:
    """Claim status for the winner holding *token*."""
    return _get_claim_workflow().get_claim_status(token)


@router.post("/{token}")
def submit_claim(token: str, body: ClaimSubmit) -> dict[str, Any]:
    """Submit the claim form for a primary winner."""
    data = body.model_dump()
    documents = {k: data.pop(k) for k in _DOCUMENT_FIELDS}
    winner_id = data.pop("winner_id")
    return _get_claim_workflow().submit_claim(token, winner_id, data, documents)
