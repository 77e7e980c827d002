"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Header, HTTPException, Query, Request

from giveaways.core.context import set_actor
from giveaways.core.security import decode_token_safe

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


@dataclass(frozen=True)
class PaginationParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def get_pagination(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> PaginationParams:
    return PaginationParams(page=page, limit=limit)


def get_client_ip(request: Request) -> str:
    """Entrant IP: first ``X-Forwarded-For`` hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else "unknown"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers=_BEARER_CHALLENGE)


def get_current_principal(authorization: str | None = Header(default=None)) -> dict[str, Any]:
    """Decoded claims of the bearer access token on the request."""
    if not authorization:
        raise _unauthorized("Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("Invalid Authorization header format. Expected: Bearer <token>")

    claims = decode_token_safe(token)
    if claims is None or claims.get("type") != "access":
        raise _unauthorized("Invalid or expired token")
    return claims


def require_admin(principal: dict[str, Any] = Depends(get_current_principal)) -> dict[str, Any]:
    """Admin-only guard; also tags the request's log context with the admin."""
    if principal.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    set_actor(str(principal.get("sub") or "admin"))
    return principal
