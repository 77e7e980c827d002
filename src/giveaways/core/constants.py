"""Domain constants for the giveaway engine."""

from __future__ import annotations

# ── Giveaway lifecycle ──────────────────────────────────────────────
GIVEAWAY_STATUSES: list[str] = ["draft", "active", "ended", "cancelled"]

GIVEAWAY_TRANSITIONS: dict[str, list[str]] = {
    "draft": ["active", "cancelled"],
    "active": ["ended", "cancelled"],
    "ended": [],  # Terminal
    "cancelled": [],  # Terminal
}

ENTRY_TYPES: list[str] = ["email", "phone", "both"]
CONTACT_TYPES: list[str] = ["email", "phone"]

# hard: any shared email OR phone is a duplicate
# cross_channel: only the primary channel's contact is deduplicated
DEDUPE_POLICIES: list[str] = ["hard", "cross_channel"]

ALTERNATE_SELECTION_MODES: list[str] = ["auto", "manual"]

# ── Winners & claims ────────────────────────────────────────────────
WINNER_TYPES: list[str] = ["primary", "alternate"]
WINNER_STATUSES: list[str] = ["pending", "notified", "claimed", "forfeited", "disqualified"]

WINNER_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["notified", "claimed", "forfeited", "disqualified"],
    "notified": ["notified", "claimed", "forfeited", "disqualified"],
    "claimed": [],  # Terminal
    "forfeited": [],  # Terminal
    "disqualified": [],  # Terminal
}

# Statuses from which an admin may still forfeit/disqualify
OPEN_WINNER_STATUSES: list[str] = ["pending", "notified"]

WINNER_ACTIONS: list[str] = ["notify", "forfeit", "disqualify", "promote"]
NOTIFY_CHANNELS: list[str] = ["email", "sms", "both"]

FULFILLMENT_STATUSES: list[str] = ["pending", "processing", "shipped", "delivered"]

DEFAULT_CLAIM_DEADLINE_DAYS = 7
CLAIM_TOKEN_BYTES = 32  # 256 bits

# ── Bonus & referral defaults ───────────────────────────────────────
DEFAULT_BONUS_ENTRY_COUNT = 1
DEFAULT_REFERRAL_BONUS_ENTRIES = 1
DEFAULT_MAX_REFERRAL_BONUS = 10
DEFAULT_MAX_REFERRALS_PER_IP = 3

REFERRAL_CODE_BYTES = 4  # 8 hex characters
REFERRAL_CODE_ATTEMPTS = 5

# ── Entry rate limit ────────────────────────────────────────────────
ENTRY_RATE_LIMIT = 5
ENTRY_RATE_WINDOW_MINUTES = 60

ENTRY_SOURCES: list[str] = ["website", "landing", "social", "referral", "admin"]

# ── US states (DC included) ─────────────────────────────────────────
ALL_US_STATES: set[str] = {
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    "DC",
}
