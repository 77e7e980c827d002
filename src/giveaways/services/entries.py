"""Entry store — validated, deduplicated giveaway entries.

Submission order: field validation → giveaway window → state restriction →
unsubscribe check → rate limit → dedupe → insert → referral credit → own
referral code → confirmation. Anything after the insert is best-effort and
never fails the entry.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from giveaways.core.constants import (
    DEDUPE_POLICIES,
    DEFAULT_REFERRAL_BONUS_ENTRIES,
    ENTRY_SOURCES,
    NOTIFY_CHANNELS,
)
from giveaways.core.context import get_actor
from giveaways.core.errors import (
    DUPLICATE_ENTRY,
    NOT_ELIGIBLE,
    ConflictError,
    GiveawayError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from giveaways.core.rows import as_utc, flag
from giveaways.services.bonus import bonus_amount, resolve_inline_bonus
from giveaways.services.contacts import (
    normalize_contact,
    normalize_email,
    normalize_phone,
    normalize_state,
    parse_states,
)

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = (
    "You have already entered this giveaway! "
    'Use "Already entered? Check your entries" to view your current entries.'
)


def primary_channel(entry_type: str, requested: str | None) -> str:
    """Channel an entry is deduplicated on under ``cross_channel``."""
    if entry_type in ("email", "phone"):
        return entry_type
    return requested if requested in ("email", "phone") else "email"


def dedupe_keys(
    policy: str, channel: str, email: str | None, phone: str | None
) -> dict[str, str | None]:
    """Storage-side uniqueness keys for the entry under *policy*."""
    if policy == "hard":
        return {"dedupe_email": email or None, "dedupe_phone": phone or None}
    return {
        "dedupe_email": email if channel == "email" else None,
        "dedupe_phone": phone if channel == "phone" else None,
    }


class EntryStore:
    """Accepts and manages entries for a giveaway."""

    def __init__(
        self,
        giveaway_repo: Any,
        entry_repo: Any,
        aggregator: Any,
        referrals: Any | None = None,
        rate_limiter: Any | None = None,
        notifier: Any | None = None,
        audit: Any | None = None,
        winner_repo: Any | None = None,
        unsubscribe_repo: Any | None = None,
    ) -> None:
        self.giveaway_repo = giveaway_repo
        self.entry_repo = entry_repo
        self.aggregator = aggregator
        self.referrals = referrals
        self.rate_limiter = rate_limiter
        self.notifier = notifier
        self.audit = audit
        self.winner_repo = winner_repo
        self.unsubscribe_repo = unsubscribe_repo

    # ── Submit ──────────────────────────────────────────────────────

    def submit(
        self,
        giveaway_id: str,
        fields: dict[str, Any],
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Validate and store one entry.

        Raises ``ValidationError`` for bad input, ``PolicyError`` when the
        giveaway is closed / state-restricted / unsubscribed / rate-limited, and
        ``ConflictError(DuplicateEntry)`` when the dedupe policy refuses it.
        """
        now = now or datetime.now(tz=UTC)
        giveaway = self.giveaway_repo.find_by_id(giveaway_id)
        if giveaway is None:
            raise NotFoundError("Giveaway not found")

        entry_type = giveaway.get("entry_type") or "both"
        first_name = (fields.get("first_name") or "").strip()
        last_name = (fields.get("last_name") or "").strip()
        if not first_name or not last_name or not fields.get("state"):
            raise ValidationError("First name, last name, and state are required")

        raw_email = fields.get("email")
        raw_phone = fields.get("phone")
        if entry_type in ("phone", "both") and not raw_phone:
            raise ValidationError("Phone number is required")
        if entry_type in ("email", "both") and not raw_email:
            raise ValidationError("Email is required")

        phone = normalize_contact(raw_phone, "phone") if raw_phone else None
        email = normalize_contact(raw_email, "email") if raw_email else None
        state = normalize_state(fields.get("state"))

        if not fields.get("agreed_to_rules"):
            raise ValidationError("You must agree to the official rules to enter")

        entry_source = fields.get("entry_source") or "website"
        if entry_source not in ENTRY_SOURCES:
            raise ValidationError(f"Invalid entry source: {entry_source}")

        self._ensure_accepting(giveaway, now)
        if state in parse_states(giveaway.get("restricted_states")):
            raise PolicyError(
                "Sorry, this giveaway is not available in your state", code=NOT_ELIGIBLE
            )
        if self.unsubscribe_repo is not None and self.unsubscribe_repo.is_unsubscribed(
            giveaway_id, email=email, phone=phone
        ):
            raise PolicyError(
                "This email or phone has been unsubscribed from giveaways", code=NOT_ELIGIBLE
            )

        if self.rate_limiter is not None:
            self.rate_limiter.check(ip_address)

        policy = giveaway.get("dedupe_policy") or "hard"
        if policy not in DEDUPE_POLICIES:
            policy = "hard"
        channel = primary_channel(entry_type, fields.get("entry_channel"))
        self._ensure_unique(giveaway_id, policy, channel, email, phone)

        keys = dedupe_keys(policy, channel, email, phone)
        entry_count = 1
        inline = resolve_inline_bonus(giveaway, fields.get("secondary_contact"))
        if inline is not None:
            entry_count += bonus_amount(giveaway)
            secondary, secondary_type = inline
            if secondary_type == "email" and not email:
                email = secondary
            elif secondary_type == "phone" and not phone:
                phone = secondary

        referral_code = (fields.get("referral_code") or "").strip().upper() or None
        data: dict[str, Any] = {
            "giveaway_id": giveaway_id,
            "email": email,
            "phone": phone,
            "first_name": first_name,
            "last_name": last_name,
            "state": state,
            "zip_code": fields.get("zip_code") or None,
            "sms_opt_in": 1 if fields.get("sms_opt_in") or (inline and inline[1] == "phone") else 0,
            "email_opt_in": 1 if email else 0,
            "agreed_to_rules": 1,
            "entry_channel": channel,
            **keys,
            "is_valid": 1,
            "invalidation_reason": None,
            "entry_count": entry_count,
            "bonus_claimed": 1 if inline else 0,
            "secondary_contact": inline[0] if inline else None,
            "referral_code": referral_code,
            "entry_source": entry_source,
            "ip_address": ip_address,
            "user_agent": (user_agent or "")[:500] or None,
            "created_at": now,
        }
        entry_id = self.entry_repo.insert(data)
        entry = {"entry_id": entry_id, **data}
        logger.info(
            "Entry %s accepted for giveaway %s (count=%d, source=%s) at %s",
            entry_id,
            giveaway_id,
            entry_count,
            entry_source,
            now.isoformat(),
        )

        referral_credited = 0
        own_code: str | None = None
        if self.referrals is not None and flag(giveaway, "referral_enabled"):
            if referral_code:
                try:
                    referral_credited = self.referrals.redeem_referral(
                        referral_code, entry_id, ip_address=ip_address, now=now
                    )
                except Exception:
                    logger.exception("Referral redemption failed for entry %s", entry_id)
            try:
                own_code = self.referrals.get_or_create_referral_code(entry_id, now=now)
            except Exception:
                logger.exception("Referral code creation failed for entry %s", entry_id)

        if self.notifier is not None:
            self.notifier.send_entry_confirmation(entry, giveaway)

        return {
            "entry": entry,
            "entry_id": entry_id,
            "entry_count": entry_count,
            "bonus_claimed": bool(inline),
            "can_claim_bonus": flag(giveaway, "bonus_entries_enabled") and not inline,
            "referral_code": own_code,
            "referral_enabled": flag(giveaway, "referral_enabled"),
            "referral_bonus_entries": int(
                giveaway.get("referral_bonus_entries") or DEFAULT_REFERRAL_BONUS_ENTRIES
            ),
            "referral_credited": referral_credited,
        }

    @staticmethod
    def _ensure_accepting(giveaway: dict[str, Any], now: datetime) -> None:
        if giveaway.get("status") != "active":
            raise PolicyError(
                "This giveaway is not currently accepting entries", code=NOT_ELIGIBLE
            )
        start = as_utc(giveaway.get("start_date"))
        end = as_utc(giveaway.get("end_date"))
        if start is not None and now < start:
            raise PolicyError("This giveaway has not started yet", code=NOT_ELIGIBLE)
        if end is not None and now >= end:
            raise PolicyError("This giveaway has ended", code=NOT_ELIGIBLE)

    def _ensure_unique(
        self,
        giveaway_id: str,
        policy: str,
        channel: str,
        email: str | None,
        phone: str | None,
    ) -> None:
        if policy == "hard":
            matches = self.entry_repo.find_by_contact(giveaway_id, email=email, phone=phone)
        else:
            key = "dedupe_email" if channel == "email" else "dedupe_phone"
            value = email if channel == "email" else phone
            matches = self.entry_repo.find_where({"giveaway_id": giveaway_id, key: value})
        if matches:
            raise ConflictError(DUPLICATE_MESSAGE, code=DUPLICATE_ENTRY)

    # ── Validity ────────────────────────────────────────────────────

    def set_validity(
        self,
        entry_id: str,
        is_valid: bool,
        reason: str | None = None,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Flip an entry's validity (reversible, audited, never deletes)."""
        now = now or datetime.now(tz=UTC)
        entry = self.entry_repo.find_by_id(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        if not is_valid and not (reason or "").strip():
            raise ValidationError("A reason is required to invalidate an entry")

        actor = actor or get_actor()
        previous = flag(entry, "is_valid")
        self.entry_repo.set_validity(
            entry_id, is_valid=is_valid, reason=reason, actor=actor, now=now
        )
        if self.audit is not None:
            self.audit.record(
                "entry_validated" if is_valid else "entry_invalidated",
                target_type="entry",
                target_id=entry_id,
                giveaway_id=entry["giveaway_id"],
                actor=actor,
                details={"previous": previous, "is_valid": is_valid, "reason": reason},
                now=now,
            )
        logger.info(
            "Entry %s validity %s -> %s by %s (giveaway=%s, reason=%s)",
            entry_id,
            previous,
            is_valid,
            actor,
            entry["giveaway_id"],
            reason,
        )
        entry.update(
            {
                "is_valid": 1 if is_valid else 0,
                "invalidation_reason": None if is_valid else reason,
                "validity_updated_at": now,
                "validity_updated_by": actor,
            }
        )
        return entry

    # ── Unsubscribe ─────────────────────────────────────────────────

    def unsubscribe(
        self,
        *,
        email: str | None = None,
        phone: str | None = None,
        channel: str = "both",
        giveaway_id: str | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Opt a contact out of one giveaway, or of all when *giveaway_id* is omitted."""
        now = now or datetime.now(tz=UTC)
        if self.unsubscribe_repo is None:
            raise PolicyError("Unsubscribes are not available", code=NOT_ELIGIBLE)
        if not email and not phone:
            raise ValidationError("Phone or email is required")
        if channel not in NOTIFY_CHANNELS:
            raise ValidationError(f"Invalid channel: {channel}. Valid: {NOTIFY_CHANNELS}")
        if giveaway_id is not None and self.giveaway_repo.find_by_id(giveaway_id) is None:
            raise NotFoundError("Giveaway not found")

        normalized_email = normalize_contact(email, "email") if email else None
        normalized_phone = normalize_contact(phone, "phone") if phone else None
        unsubscribe_id = self.unsubscribe_repo.record(
            email=normalized_email,
            phone=normalized_phone,
            channel=channel,
            giveaway_id=giveaway_id,
            reason=(reason or "").strip() or None,
            now=now,
        )
        logger.info(
            "Unsubscribe %s recorded (channel=%s, giveaway=%s) at %s",
            unsubscribe_id,
            channel,
            giveaway_id or "all",
            now.isoformat(),
        )
        return {
            "unsubscribe_id": unsubscribe_id,
            "channel": channel,
            "scope": "giveaway" if giveaway_id else "all",
            "giveaway_id": giveaway_id,
        }

    # ── Queries ─────────────────────────────────────────────────────

    def lookup(
        self,
        giveaway_id: str,
        *,
        phone: str | None = None,
        email: str | None = None,
    ) -> dict[str, Any]:
        """Find an entrant's entry by contact and report its weight."""
        if not phone and not email:
            raise ValidationError("Phone or email is required")
        giveaway = self.giveaway_repo.find_by_id(giveaway_id)
        if giveaway is None:
            raise NotFoundError("Giveaway not found")

        matches = self.entry_repo.find_by_contact(
            giveaway_id,
            email=normalize_email(email) if email else None,
            phone=normalize_phone(phone) if phone else None,
        )
        if not matches:
            return {"found": False, "message": "No entry found with this contact information"}

        entry = matches[0]
        referral_code = None
        if self.referrals is not None and flag(giveaway, "referral_enabled"):
            try:
                referral_code = self.referrals.get_or_create_referral_code(entry["entry_id"])
            except GiveawayError as e:
                logger.warning("No referral code for entry %s: %s", entry["entry_id"], e.detail)

        return {
            "found": True,
            "entry_id": entry["entry_id"],
            "first_name": entry.get("first_name"),
            **self.aggregator.breakdown(entry),
            "bonus_claimed": flag(entry, "bonus_claimed"),
            "has_secondary_contact": bool(entry.get("secondary_contact")),
            "created_at": entry.get("created_at"),
            "referral_code": referral_code,
            "giveaway": {
                "bonus_entries_enabled": flag(giveaway, "bonus_entries_enabled"),
                "bonus_entry_count": bonus_amount(giveaway),
                "entry_type": giveaway.get("entry_type"),
                "referral_enabled": flag(giveaway, "referral_enabled"),
                "referral_bonus_entries": int(
                    giveaway.get("referral_bonus_entries") or DEFAULT_REFERRAL_BONUS_ENTRIES
                ),
            },
        }

    def list_entries(
        self,
        giveaway_id: str,
        *,
        valid_only: bool = False,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
    ) -> dict[str, Any]:
        """Paginated admin listing.

        Each item carries its weight breakdown, its winner record (if drawn),
        the entrant's own referral code and the referrals it converted.
        *search* matches a substring of email, phone, first or last name.
        """
        if self.giveaway_repo.find_by_id(giveaway_id) is None:
            raise NotFoundError("Giveaway not found")

        search = (search or "").strip() or None
        total = self.entry_repo.count_for_giveaway(
            giveaway_id, valid_only=valid_only, search=search
        )
        offset = (page - 1) * limit
        rows = self.entry_repo.find_page(
            giveaway_id, valid_only=valid_only, limit=limit, offset=offset, search=search
        )

        winners: dict[str, dict[str, Any]] = {}
        if self.winner_repo is not None:
            winners = {w["entry_id"]: w for w in self.winner_repo.find_by_giveaway(giveaway_id)}

        codes: dict[str, str] = {}
        converted: dict[str, list[dict[str, Any]]] = {}
        referral_repo = self.aggregator.referral_repo
        for ref in referral_repo.find_by_referrers([row["entry_id"] for row in rows]):
            referrer = ref["referrer_entry_id"]
            if ref.get("referred_entry_id") is None:
                codes[referrer] = ref["referral_code"]
                continue
            converted.setdefault(referrer, []).append(
                {
                    "entry_id": ref["referred_entry_id"],
                    "first_name": ref.get("referred_first_name"),
                    "last_name": ref.get("referred_last_name"),
                    "converted_at": ref.get("converted_at"),
                    "bonus_entries_awarded": int(ref.get("bonus_entries_awarded") or 0),
                }
            )

        items = []
        for row in rows:
            entry_id = row["entry_id"]
            referrals = converted.get(entry_id, [])
            winner = winners.get(entry_id)
            items.append(
                {
                    **row,
                    **self.aggregator.breakdown(
                        row, sum(r["bonus_entries_awarded"] for r in referrals)
                    ),
                    "is_winner": winner is not None,
                    "winner_info": (
                        {
                            "winner_id": winner["winner_id"],
                            "winner_type": winner.get("winner_type"),
                            "status": winner.get("status"),
                        }
                        if winner is not None
                        else None
                    ),
                    "my_referral_code": codes.get(entry_id),
                    "referrals": referrals,
                }
            )
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
