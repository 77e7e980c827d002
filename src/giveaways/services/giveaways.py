"""Giveaway service — lifecycle management for giveaways.

Manages the lifecycle: draft → active → ended, with cancellation from any
non-terminal state. ``ended`` is only reached through winner selection,
which sets it atomically with ``winner_selected``.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import UTC, datetime
from typing import Any

from giveaways.core.constants import (
    ALTERNATE_SELECTION_MODES,
    DEDUPE_POLICIES,
    DEFAULT_BONUS_ENTRY_COUNT,
    DEFAULT_CLAIM_DEADLINE_DAYS,
    DEFAULT_MAX_REFERRAL_BONUS,
    DEFAULT_MAX_REFERRALS_PER_IP,
    DEFAULT_REFERRAL_BONUS_ENTRIES,
    ENTRY_TYPES,
    GIVEAWAY_STATUSES,
    GIVEAWAY_TRANSITIONS,
)
from giveaways.core.errors import (
    INVALID_TRANSITION,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from giveaways.core.rows import as_utc
from giveaways.services.contacts import normalize_state, parse_states

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    return _SLUG_STRIP.sub("-", title.lower()).strip("-")


class GiveawayService:
    """Creates giveaways and drives their lifecycle transitions."""

    def __init__(self, giveaway_repo: Any, audit: Any | None = None) -> None:
        self.giveaway_repo = giveaway_repo
        self.audit = audit

    # ── Create ──────────────────────────────────────────────────────

    def create_giveaway(
        self,
        *,
        title: str,
        prize_title: str,
        start_date: datetime,
        end_date: datetime,
        slug: str | None = None,
        prize_value: float | None = None,
        entry_type: str = "both",
        dedupe_policy: str = "hard",
        num_winners: int = 1,
        alternate_count: int = 0,
        alternate_selection: str = "auto",
        require_w9: bool = False,
        w9_threshold: float = 600,
        restricted_states: list[str] | None = None,
        bonus_entries_enabled: bool = False,
        bonus_entry_count: int = DEFAULT_BONUS_ENTRY_COUNT,
        referral_enabled: bool = False,
        referral_bonus_entries: int = DEFAULT_REFERRAL_BONUS_ENTRIES,
        max_referral_bonus: int = DEFAULT_MAX_REFERRAL_BONUS,
        max_referrals_per_ip: int = DEFAULT_MAX_REFERRALS_PER_IP,
        claim_deadline_days: int = DEFAULT_CLAIM_DEADLINE_DAYS,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Create a new giveaway in draft status."""
        now = now or datetime.now(tz=UTC)
        if not title.strip() or not prize_title.strip():
            raise ValidationError("Title and prize title are required")
        if entry_type not in ENTRY_TYPES:
            raise ValidationError(f"Invalid entry type: {entry_type}")
        if dedupe_policy not in DEDUPE_POLICIES:
            raise ValidationError(f"Invalid dedupe policy: {dedupe_policy}")
        if alternate_selection not in ALTERNATE_SELECTION_MODES:
            raise ValidationError(f"Invalid alternate selection: {alternate_selection}")
        start, end = as_utc(start_date), as_utc(end_date)
        if start is None or end is None or end <= start:
            raise ValidationError("end_date must be after start_date")
        if num_winners < 1:
            raise ValidationError("num_winners must be at least 1")
        if alternate_count < 0:
            raise ValidationError("alternate_count cannot be negative")
        if claim_deadline_days < 1:
            raise ValidationError("claim_deadline_days must be at least 1")
        for name, value in (
            ("bonus_entry_count", bonus_entry_count),
            ("referral_bonus_entries", referral_bonus_entries),
            ("max_referral_bonus", max_referral_bonus),
            ("max_referrals_per_ip", max_referrals_per_ip),
        ):
            if value < 1:
                raise ValidationError(f"{name} must be at least 1")

        states = [normalize_state(s) for s in restricted_states or []]
        slug = slugify(slug or title)
        if not slug:
            raise ValidationError("A slug could not be derived from the title")
        if self.giveaway_repo.find_by_slug(slug) is not None:
            raise ConflictError(f"Slug already in use: {slug}")

        giveaway_id = uuid.uuid4().hex
        data = {
            "title": title.strip(),
            "slug": slug,
            "prize_title": prize_title.strip(),
            "prize_value": prize_value,
            "start_date": start,
            "end_date": end,
            "entry_type": entry_type,
            "dedupe_policy": dedupe_policy,
            "num_winners": num_winners,
            "alternate_count": alternate_count,
            "alternate_selection": alternate_selection,
            "winner_selected": 0,
            "require_w9": 1 if require_w9 else 0,
            "w9_threshold": w9_threshold,
            "restricted_states": ",".join(states) or None,
            "bonus_entries_enabled": 1 if bonus_entries_enabled else 0,
            "bonus_entry_count": bonus_entry_count,
            "referral_enabled": 1 if referral_enabled else 0,
            "referral_bonus_entries": referral_bonus_entries,
            "max_referral_bonus": max_referral_bonus,
            "max_referrals_per_ip": max_referrals_per_ip,
            "claim_deadline_days": claim_deadline_days,
            "status": "draft",
            "created_at": now,
            "updated_at": now,
        }
        self.giveaway_repo.create(data=data, new_id=giveaway_id)
        if self.audit is not None:
            self.audit.record(
                "giveaway_created",
                target_type="giveaway",
                target_id=giveaway_id,
                giveaway_id=giveaway_id,
                actor=actor,
                details={"title": data["title"], "slug": slug},
                now=now,
            )
        logger.info("Giveaway %s created (%s)", giveaway_id, slug)
        return {"giveaway_id": giveaway_id, **data}

    # ── Lifecycle transitions ───────────────────────────────────────

    def transition_status(
        self,
        giveaway_id: str,
        new_status: str,
        *,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Transition a giveaway to a new status."""
        now = now or datetime.now(tz=UTC)
        if new_status not in GIVEAWAY_STATUSES:
            raise ValidationError(f"Invalid status: {new_status}")
        if new_status == "ended":
            raise ConflictError(
                "Giveaways end through winner selection", code=INVALID_TRANSITION
            )

        giveaway = self.get_giveaway(giveaway_id)
        current = giveaway.get("status", "draft")
        allowed = GIVEAWAY_TRANSITIONS.get(current, [])
        if new_status not in allowed:
            raise ConflictError(
                f"Cannot transition from '{current}' to '{new_status}'. Allowed: {allowed}",
                code=INVALID_TRANSITION,
            )

        if not self.giveaway_repo.transition(giveaway_id, current, new_status, now):
            raise ConflictError(
                "Giveaway changed concurrently; reload and retry", code=INVALID_TRANSITION
            )
        if self.audit is not None:
            self.audit.record(
                f"giveaway_{new_status}",
                target_type="giveaway",
                target_id=giveaway_id,
                giveaway_id=giveaway_id,
                actor=actor,
                details={"previous": current},
                now=now,
            )
        logger.info("Giveaway %s: %s -> %s", giveaway_id, current, new_status)
        giveaway.update({"status": new_status, "updated_at": now})
        return giveaway

    def activate(self, giveaway_id: str, **kwargs: Any) -> dict[str, Any]:
        """Open a draft giveaway for entries."""
        return self.transition_status(giveaway_id, "active", **kwargs)

    def cancel(self, giveaway_id: str, **kwargs: Any) -> dict[str, Any]:
        """Cancel a giveaway (from any non-terminal status)."""
        return self.transition_status(giveaway_id, "cancelled", **kwargs)

    # ── Queries ─────────────────────────────────────────────────────

    def get_giveaway(self, giveaway_id: str) -> dict[str, Any]:
        giveaway = self.giveaway_repo.find_by_id(giveaway_id)
        if giveaway is None:
            raise NotFoundError("Giveaway not found")
        giveaway = dict(giveaway)
        giveaway["restricted_states"] = parse_states(giveaway.get("restricted_states"))
        return giveaway

    def list_giveaways(
        self,
        *,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """List giveaways with optional status filter and pagination."""
        filters: dict[str, Any] = {}
        if status:
            if status not in GIVEAWAY_STATUSES:
                raise ValidationError(f"Invalid status filter: {status}")
            filters["status"] = status

        total = self.giveaway_repo.count(filters=filters)
        offset = (page - 1) * limit
        items = self.giveaway_repo.find_all(
            limit=limit, offset=offset, filters=filters, order_by="created_at DESC"
        )
        for item in items:
            item["restricted_states"] = parse_states(item.get("restricted_states"))
        total_pages = max(1, (total + limit - 1) // limit)
        return {
            "items": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total_items": total,
                "total_pages": total_pages,
            },
        }
