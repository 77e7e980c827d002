"""Notifications — entrant and winner messages over email and SMS.

The engine talks to the outside world only through a
:class:`NotificationGateway`. Gateway failures never propagate: each
channel's outcome is reported as a boolean and callers turn failures into
warnings on their results.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from giveaways.core.constants import NOTIFY_CHANNELS
from giveaways.core.errors import ValidationError
from giveaways.core.rows import as_utc, flag

logger = logging.getLogger(__name__)


class NotificationGateway(ABC):
    """Outbound email/SMS transport.

    Implementations raise on delivery failure; the notifier catches and
    reports per channel.
    """

    @abstractmethod
    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    @abstractmethod
    def send_sms(
        self,
        to: str,
        body: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class LoggingGateway(NotificationGateway):
    """Development gateway: logs messages, never sends. Swap for a vendor in prod."""

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        logger.info("[DEV EMAIL] To: %s | Subject: %s | Body: %s", to, subject, body[:200])

    def send_sms(
        self,
        to: str,
        body: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        logger.info("[DEV SMS] To: %s | Body: %s", to, body[:160])


# Email/SMS template definitions
TEMPLATES: dict[str, dict[str, str]] = {
    "entry_confirmation": {
        "subject": "You're entered: {giveaway_title}",
        "body": (
            "Hi {first_name},\n\n"
            "You're entered to win {prize_title}!\n"
            "Winners will be drawn after {end_date}.\n\n"
            "Good luck!"
        ),
        "sms": "{first_name}, you're entered to win {prize_title}! Reply STOP to opt out.",
    },
    "winner_notification": {
        "subject": "You won: {prize_title}!",
        "body": (
            "Congratulations {first_name}!\n\n"
            "You were selected as a winner of {giveaway_title}.\n"
            "Claim your prize here:\n"
            "{claim_url}\n\n"
            "You must claim by {claim_deadline} or the prize will be forfeited."
        ),
        "sms": "Congrats {first_name}! You won {prize_title}. Claim by {claim_deadline}: {claim_url}",
    },
    "claim_confirmation": {
        "subject": "We received your claim for {prize_title}",
        "body": (
            "Hi {first_name},\n\n"
            "Thanks for submitting your claim for {prize_title}. "
            "We'll verify your details and let you know when it ships."
        ),
        "sms": "{first_name}, we received your claim for {prize_title}.",
    },
}


def render_template(template_key: str, **kwargs: Any) -> dict[str, str]:
    """Render an email/SMS template with the given variables."""
    if template_key not in TEMPLATES:
        raise ValidationError(f"Unknown template: {template_key}")
    template = TEMPLATES[template_key]
    try:
        return {k: v.format(**kwargs) for k, v in template.items()}
    except KeyError as e:
        raise ValidationError(f"Missing template variable: {e}") from e


def failure_warnings(result: dict[str, bool | None], subject_id: str) -> list[str]:
    """Turn failed channels into ``NotificationFailure`` warning strings."""
    return [
        f"NotificationFailure: {channel} to {subject_id}"
        for channel, ok in result.items()
        if ok is False
    ]


def notification_method(result: dict[str, bool | None]) -> str | None:
    """``email``, ``sms`` or ``both`` for the channels that got through; ``None`` if none did."""
    sent = [channel for channel, ok in result.items() if ok]
    if not sent:
        return None
    return "both" if len(sent) == 2 else sent[0]


def _format_date(value: Any) -> str:
    dt = as_utc(value) if isinstance(value, (str, datetime)) else None
    return dt.strftime("%B %d, %Y") if dt else ""


class WinnerNotifier:
    """Composes gateway calls into entrant/winner notifications."""

    def __init__(self, gateway: NotificationGateway) -> None:
        self.gateway = gateway

    def notify_winner(
        self,
        entry: dict[str, Any],
        giveaway: dict[str, Any],
        claim_url: str,
        deadline: Any,
        channel: str = "both",
        winner_id: str | None = None,
    ) -> dict[str, bool | None]:
        """Send the claim link; email always (when present), SMS only if opted in."""
        message = render_template(
            "winner_notification",
            first_name=entry.get("first_name") or "there",
            giveaway_title=giveaway.get("title", ""),
            prize_title=giveaway.get("prize_title", ""),
            claim_url=claim_url,
            claim_deadline=_format_date(deadline),
        )
        metadata = {
            "type": "winner_notification",
            "giveaway_id": giveaway.get("giveaway_id"),
            "entry_id": entry.get("entry_id"),
            "winner_id": winner_id,
        }
        return self._dispatch(entry, message, metadata, channel)

    def send_entry_confirmation(
        self, entry: dict[str, Any], giveaway: dict[str, Any]
    ) -> dict[str, bool | None]:
        message = render_template(
            "entry_confirmation",
            first_name=entry.get("first_name") or "there",
            giveaway_title=giveaway.get("title", ""),
            prize_title=giveaway.get("prize_title", ""),
            end_date=_format_date(giveaway.get("end_date")),
        )
        metadata = {
            "type": "entry_confirmation",
            "giveaway_id": giveaway.get("giveaway_id"),
            "entry_id": entry.get("entry_id"),
        }
        return self._dispatch(entry, message, metadata, "both")

    def send_claim_confirmation(
        self, entry: dict[str, Any], giveaway: dict[str, Any], winner_id: str
    ) -> dict[str, bool | None]:
        message = render_template(
            "claim_confirmation",
            first_name=entry.get("first_name") or "there",
            prize_title=giveaway.get("prize_title", ""),
        )
        metadata = {
            "type": "claim_confirmation",
            "giveaway_id": giveaway.get("giveaway_id"),
            "winner_id": winner_id,
        }
        return self._dispatch(entry, message, metadata, "email")

    # ── internals ───────────────────────────────────────────────────

    def _dispatch(
        self,
        entry: dict[str, Any],
        message: dict[str, str],
        metadata: dict[str, Any],
        channel: str,
    ) -> dict[str, bool | None]:
        if channel not in NOTIFY_CHANNELS:
            raise ValidationError(f"Invalid channel: {channel}. Valid: {NOTIFY_CHANNELS}")

        result: dict[str, bool | None] = {"email": None, "sms": None}
        email = entry.get("email")
        phone = entry.get("phone")

        if channel in ("email", "both") and email:
            result["email"] = self._attempt(
                "email",
                self.gateway.send_email,
                email,
                message["subject"],
                message["body"],
                metadata,
            )

        if channel in ("sms", "both") and phone and flag(entry, "sms_opt_in"):
            result["sms"] = self._attempt("sms", self.gateway.send_sms, phone, message["sms"], metadata)

        return result

    @staticmethod
    def _attempt(channel: str, send: Any, *args: Any) -> bool:
        try:
            send(*args)
        except Exception:
            logger.warning("Notification via %s failed (%s)", channel, args[-1], exc_info=True)
            return False
        return True
