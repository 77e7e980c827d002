"""Error taxonomy for the giveaway engine.

Every failure path in the services raises one of these, carrying an HTTP
status hint and a stable machine-readable ``code`` that routes surface in
RFC 7807 problem bodies.
"""

from __future__ import annotations


class GiveawayError(Exception):
    """Base engine error with HTTP status hint and error code."""

    default_status = 400
    default_code = "GiveawayError"

    def __init__(
        self,
        detail: str,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.detail = detail
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        super().__init__(detail)

    def to_problem(self) -> dict[str, object]:
        return {
            "type": "about:blank",
            "title": self.code,
            "status": self.status_code,
            "detail": self.detail,
            "code": self.code,
        }


class ValidationError(GiveawayError):
    """Malformed or missing input; never retried automatically."""

    default_code = "ValidationError"


class ConflictError(GiveawayError):
    """State conflict (AlreadySelected, AlreadyClaimed, NotAlternate, ...)."""

    default_status = 409
    default_code = "Conflict"


class NotFoundError(GiveawayError):
    default_status = 404
    default_code = "NotFound"


class PolicyError(GiveawayError):
    """Business rule refusal (InsufficientEntries, DeadlinePassed, NotEligible, ...)."""

    default_status = 422
    default_code = "PolicyViolation"


# Error codes
INVALID_CONTACT = "InvalidContact"
INVALID_ACTION = "InvalidAction"
TOKEN_MISMATCH = "TokenMismatch"
DUPLICATE_ENTRY = "DuplicateEntry"
ALREADY_SELECTED = "AlreadySelected"
ALREADY_CLAIMED = "AlreadyClaimed"
NOT_ALTERNATE = "NotAlternate"
INVALID_TRANSITION = "InvalidTransition"
REFERRAL_CODE_EXHAUSTED = "ReferralCodeExhausted"
INSUFFICIENT_ENTRIES = "InsufficientEntries"
DEADLINE_PASSED = "DeadlinePassed"
NOT_ELIGIBLE = "NotEligible"
W9_REQUIRED = "W9Required"
RATE_LIMITED = "RateLimited"
