"""Log setup for the API and workers.

Claim tokens are bearer credentials for a prize, so every formatter passes
its output through :func:`redact_string` and every structured ``extra=``
payload through :func:`redact_dict`.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any

REDACTED = "***REDACTED***"

_SENSITIVE_KEY_RE = re.compile(
    r"password|secret|token|authorization|api[_-]?key|w9[_-]?document|id[_-]?document",
    re.IGNORECASE,
)

# (pattern, replacement) pairs applied in order to free text
_TEXT_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(Authorization:\s*Bearer\s+)\S+", re.IGNORECASE), r"\1" + REDACTED),
    (re.compile(r"((?:password|token|claim_token)[\s=:]+)\S+", re.IGNORECASE), r"\1" + REDACTED),
    # /claim/<token> links and /api/v1/claims/<token> paths
    (re.compile(r"(/claims?/)[A-Za-z0-9_\-]+"), r"\1" + REDACTED),
)

_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "correlation_id",
}


def is_sensitive_key(key: str) -> bool:
    return _SENSITIVE_KEY_RE.search(key) is not None


def redact_string(text: str) -> str:
    """Mask bearer headers, ``key=value`` secrets and claim-link tokens."""
    for pattern, replacement in _TEXT_RULES:
        text = pattern.sub(replacement, text)
    return text


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [_redact_value(item) for item in value]
    if isinstance(value, str):
        return redact_string(value)
    return value


def redact_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive keys masked, recursing into containers."""
    return {
        key: REDACTED if is_sensitive_key(key) else _redact_value(value)
        for key, value in data.items()
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields land under ``"extra"``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_string(record.getMessage()),
            "source": f"{record.pathname}:{record.lineno} ({record.funcName})",
        }
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            entry["correlation_id"] = correlation_id

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            entry["exception"] = {"type": type(exc).__name__, "message": redact_string(str(exc))}

        extras = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extras:
            entry["extra"] = redact_dict(extras)
        return json.dumps(entry, default=str)


class RedactingFormatter(logging.Formatter):
    """Plain-text formatter for local runs."""

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(
            fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt or "%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        return redact_string(super().format(record))


class CorrelationFilter(logging.Filter):
    """Stamp each record with the request's correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        from giveaways.core.context import get_correlation_id

        record.correlation_id = get_correlation_id()
        return True


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Install a single redacting stream handler on the root logger.

    Args:
        level: Root log level name.
        log_format: ``"json"`` in deployed environments, ``"text"`` locally.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else RedactingFormatter())
    handler.addFilter(CorrelationFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "watchfiles"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
