"""Liveness and readiness checks."""

from __future__ import annotations

import time
from typing import Any

import oracledb
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from giveaways.api.schemas.common import HealthResponse

router = APIRouter()


def _check_database(pool: Any) -> dict[str, Any]:
    started = time.perf_counter()
    try:
        with pool.acquire() as conn, conn.cursor() as cur:
            cur.execute("SELECT 1 FROM DUAL")
            cur.fetchone()
    except oracledb.Error as exc:
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "response_time_ms": round((time.perf_counter() - started) * 1000, 1)}


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request) -> dict[str, Any]:
    settings = request.app.state.settings
    pool = getattr(request.app.state, "db_pool", None)
    return {
        "status": "ok",
        "environment": settings.app_env,
        "database": "connected" if pool is not None else "disconnected",
    }


@router.get("/health/live")
def liveness_check() -> dict[str, Any]:
    return {"status": "alive"}


@router.get("/health/ready")
def readiness_check(request: Request) -> Any:
    """Ready when Oracle answers; a missing pool only counts against production."""
    pool = getattr(request.app.state, "db_pool", None)
    if pool is None:
        database = {"status": "not_configured"}
        ready = not request.app.state.settings.is_production
    else:
        database = _check_database(pool)
        ready = database["status"] == "ok"

    body = {"status": "ready" if ready else "not_ready", "checks": {"database": database}}
    return body if ready else JSONResponse(content=body, status_code=503)
