"""Per-request context carried via contextvars.

Two values travel with a request: the correlation ID stamped on every log
line, and the acting principal recorded in the audit log for admin actions.
"""

from __future__ import annotations

from contextvars import ContextVar

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_actor: ContextVar[str | None] = ContextVar("actor", default=None)

SYSTEM_ACTOR = "system"


def set_correlation_id(value: str) -> None:
    _correlation_id.set(value)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_actor(value: str | None) -> None:
    """Record who is acting for the rest of this request."""
    _actor.set(value)


def get_actor() -> str:
    """Return the acting principal, or ``"system"`` outside a request."""
    return _actor.get() or SYSTEM_ACTOR
