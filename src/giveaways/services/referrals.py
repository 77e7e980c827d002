"""Referral ledger — referral codes and conversion credit.

Redemption never fails the entry that carried the code: every refusal
(unknown code, self-referral, caps) returns ``0`` and is logged.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime
from typing import Any

from giveaways.core.constants import (
    DEFAULT_MAX_REFERRAL_BONUS,
    DEFAULT_MAX_REFERRALS_PER_IP,
    DEFAULT_REFERRAL_BONUS_ENTRIES,
    REFERRAL_CODE_ATTEMPTS,
    REFERRAL_CODE_BYTES,
)
from giveaways.core.errors import (
    NOT_ELIGIBLE,
    REFERRAL_CODE_EXHAUSTED,
    ConflictError,
    NotFoundError,
    PolicyError,
)
from giveaways.core.rows import flag

logger = logging.getLogger(__name__)


def generate_referral_code() -> str:
    """8 uppercase hex characters from a CSPRNG."""
    return secrets.token_bytes(REFERRAL_CODE_BYTES).hex().upper()


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


class ReferralLedger:
    """Issues referral codes and credits referrers on conversion."""

    def __init__(
        self,
        giveaway_repo: Any,
        entry_repo: Any,
        referral_repo: Any,
        code_factory: Any = generate_referral_code,
    ) -> None:
        self.giveaway_repo = giveaway_repo
        self.entry_repo = entry_repo
        self.referral_repo = referral_repo
        self.code_factory = code_factory

    # ── Codes ───────────────────────────────────────────────────────

    def get_or_create_referral_code(
        self, entry_id: str, now: datetime | None = None
    ) -> str:
        """Return the entrant's code, minting one on first use.

        Raises ``ConflictError(ReferralCodeExhausted)`` after
        ``REFERRAL_CODE_ATTEMPTS`` colliding codes.
        """
        now = now or datetime.now(tz=UTC)
        entry = self.entry_repo.find_by_id(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        giveaway = self.giveaway_repo.find_by_id(entry["giveaway_id"])
        if giveaway is None:
            raise NotFoundError("Giveaway not found")
        if not flag(giveaway, "referral_enabled"):
            raise PolicyError("Referrals are not enabled for this giveaway", code=NOT_ELIGIBLE)

        for attempt in range(1, REFERRAL_CODE_ATTEMPTS + 1):
            existing = self.referral_repo.find_invitation_by_referrer(entry_id)
            if existing is not None:
                return str(existing["referral_code"])

            code = self.code_factory()
            if self.referral_repo.create_invitation(
                giveaway_id=entry["giveaway_id"],
                referrer_entry_id=entry_id,
                code=code,
                now=now,
            ):
                logger.info("Referral code issued for entry %s", entry_id)
                return code
            logger.info("Referral code collision for entry %s (attempt %d)", entry_id, attempt)

        raise ConflictError(
            "Could not allocate a unique referral code", code=REFERRAL_CODE_EXHAUSTED
        )

    # ── Conversions ─────────────────────────────────────────────────

    def redeem_referral(
        self,
        code: str | None,
        new_entry_id: str,
        *,
        ip_address: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Credit the code's referrer for *new_entry_id*. Returns bonus awarded."""
        now = now or datetime.now(tz=UTC)
        code = normalize_code(code)
        if not code:
            return 0

        new_entry = self.entry_repo.find_by_id(new_entry_id)
        if new_entry is None:
            return 0
        giveaway_id = new_entry["giveaway_id"]
        giveaway = self.giveaway_repo.find_by_id(giveaway_id)
        if giveaway is None or not flag(giveaway, "referral_enabled"):
            return 0

        invitation = self.referral_repo.find_invitation(giveaway_id, code)
        if invitation is None:
            logger.info("Unknown referral code %s in giveaway %s", code, giveaway_id)
            return 0

        referrer_id = invitation["referrer_entry_id"]
        referrer = self.entry_repo.find_by_id(referrer_id)
        if referrer is None or self._is_self_referral(referrer, new_entry):
            logger.info("Self-referral rejected for entry %s", new_entry_id)
            return 0

        awarded: int = self.referral_repo.record_conversion(
            invitation=invitation,
            referred_entry_id=new_entry_id,
            referred_ip=ip_address,
            bonus=giveaway.get("referral_bonus_entries") or DEFAULT_REFERRAL_BONUS_ENTRIES,
            max_total=giveaway.get("max_referral_bonus") or DEFAULT_MAX_REFERRAL_BONUS,
            max_per_ip=giveaway.get("max_referrals_per_ip") or DEFAULT_MAX_REFERRALS_PER_IP,
            now=now,
        )
        if awarded:
            logger.info(
                "Referral converted: %d entries to %s for %s (giveaway=%s)",
                awarded,
                referrer_id,
                new_entry_id,
                giveaway_id,
            )
        else:
            logger.info("Referral for %s refused by caps or prior conversion", new_entry_id)
        return awarded

    @staticmethod
    def _is_self_referral(referrer: dict[str, Any], new_entry: dict[str, Any]) -> bool:
        if referrer["entry_id"] == new_entry["entry_id"]:
            return True
        for column in ("email", "phone"):
            mine, theirs = referrer.get(column), new_entry.get(column)
            if mine and theirs and mine == theirs:
                return True
        return False
