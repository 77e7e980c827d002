"""Public entry routes — submission, lookup, bonus and unsubscribe.

No authentication: entrants identify themselves by contact details.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from giveaways.api.deps import get_client_ip
from giveaways.api.schemas.entries import (
    BonusClaim,
    EntryLookup,
    EntrySubmit,
    UnsubscribeRequest,
)

router = APIRouter(prefix="/api/v1", tags=["entries"])


def _get_services():  # type: ignore[no-untyped-def]
    from giveaways.core.database import get_pool
    from giveaways.services.container import build_services

    return build_services(get_pool())


@router.post("/giveaways/{giveaway_id}/entries", status_code=201)
def submit_entry(
    giveaway_id: str,
    body: EntrySubmit,
    request: Request,
    ip_address: str = Depends(get_client_ip),
) -> dict[str, Any]:
    """Submit an entry; credits an inline bonus and a referral when present."""
    services = _get_services()
    result = services.entries.submit(
        giveaway_id,
        body.model_dump(),
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )
    result.pop("entry", None)
    return result


@router.post("/giveaways/{giveaway_id}/lookup")
def lookup_entry(giveaway_id: str, body: EntryLookup) -> dict[str, Any]:
    """Find an entry by phone or email and report its entry count."""
    services = _get_services()
    return services.entries.lookup(giveaway_id, phone=body.phone, email=body.email)


@router.post("/entries/{entry_id}/bonus")
def claim_bonus(entry_id: str, body: BonusClaim) -> dict[str, Any]:
    """Add a secondary contact for bonus entries (once per entry)."""
    services = _get_services()
    entry = services.bonus.claim_bonus(entry_id, body.secondary_contact, body.contact_type)
    return {
        "entry_id": entry_id,
        "bonus_claimed": True,
        **services.aggregator.breakdown(entry),
    }


@router.post("/unsubscribe", status_code=201)
def unsubscribe(body: UnsubscribeRequest) -> dict[str, Any]:
    """Opt a contact out; later entries from it are refused."""
    services = _get_services()
    return services.entries.unsubscribe(**body.model_dump())
