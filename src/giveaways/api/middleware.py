"""HTTP middleware: CORS, response headers, coarse throttling and access logs.

The throttle here caps requests per minute on every route by caller class.
The stricter per-IP limit on entry submissions lives in
``services.rate_limit`` and is enforced by the entry workflow itself.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import defaultdict, deque
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from giveaways.api.deps import get_client_ip
from giveaways.core.context import set_actor, set_correlation_id
from giveaways.core.logging import redact_string
from giveaways.core.security import decode_token_safe

logger = logging.getLogger(__name__)

THROTTLE_WINDOW_SECONDS = 60
UNTHROTTLED_PATHS = frozenset({"/health", "/health/live", "/health/ready"})

RESPONSE_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


class RequestThrottle:
    """Sliding one-minute request counter per key, held in process memory."""

    def __init__(self, window_seconds: int = THROTTLE_WINDOW_SECONDS) -> None:
        self.window_seconds = window_seconds
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, key: str, limit: int, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= now - self.window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return False
            hits.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def throttle_key(request: Request, settings: Any) -> tuple[str, int]:
    """Bucket key and per-minute limit for the caller behind *request*."""
    ip = get_client_ip(request)
    auth = request.headers.get("authorization", "")
    if not auth.lower().startswith("bearer "):
        return f"anon:{ip}", settings.rate_limit_anonymous

    claims = decode_token_safe(auth.split(" ", 1)[1]) or {}
    if claims.get("role") == "admin":
        return f"admin:{claims.get('sub') or ip}", settings.rate_limit_admin
    return f"user:{ip}", settings.rate_limit_user


def setup_middleware(app: FastAPI) -> None:
    """Attach middleware using ``app.state.settings``."""
    settings = app.state.settings
    throttle = RequestThrottle()
    app.state.throttle = throttle

    app.add_middleware(GZipMiddleware, minimum_size=500)
    origins = settings.cors_origin_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_pipeline(request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = request.headers.get("x-correlation-id") or uuid.uuid4().hex[:12]
        set_correlation_id(correlation_id)
        set_actor("system")

        if not settings.is_testing and request.url.path not in UNTHROTTLED_PATHS:
            key, limit = throttle_key(request, settings)
            if not throttle.allow(key, limit):
                return problem_response(
                    429,
                    "Too Many Requests",
                    f"Rate limit exceeded. Max {limit} requests per minute.",
                    extra={"code": "RateLimited"},
                    headers={
                        "Retry-After": str(throttle.window_seconds),
                        "X-RateLimit-Limit": str(limit),
                    },
                )

        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers.update(RESPONSE_HEADERS)
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        if request.url.path.startswith("/api/v1/claims/"):
            # Claim pages carry the winner's token
            response.headers["Cache-Control"] = "no-store"

        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            redact_string(request.url.path),
            response.status_code,
            elapsed_ms,
        )
        return response


def problem_response(
    status: int,
    title: str,
    detail: str,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """RFC 7807 problem-details body."""
    body: dict[str, Any] = {"type": "about:blank", "title": title, "status": status, "detail": detail}
    body.update(extra or {})
    return JSONResponse(status_code=status, content=body, headers=headers)
