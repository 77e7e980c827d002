"""FastAPI application factory and ``giveaways-api`` entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import oracledb
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from giveaways.api.middleware import problem_response, setup_middleware
from giveaways.core.config import Settings, get_settings
from giveaways.core.database import close_pool, init_pool
from giveaways.core.errors import GiveawayError
from giveaways.core.logging import setup_logging

logger = logging.getLogger(__name__)


def _lifespan(settings: Settings):  # type: ignore[no-untyped-def]
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Giveaways API starting (env=%s)", settings.app_env)
        app.state.db_pool = None
        if not settings.is_testing:
            try:
                app.state.db_pool = await init_pool(settings)
            except oracledb.Error as exc:
                # Health stays reachable; /health/ready reports the outage
                logger.warning("Oracle unavailable at startup: %s", exc)
        yield
        if app.state.db_pool is not None:
            await close_pool()
        logger.info("Giveaways API stopped")

    return lifespan


def _include_routers(app: FastAPI) -> None:
    from giveaways.api.routes import (
        admin_giveaways,
        admin_winners,
        claims,
        entries,
        health,
    )

    app.include_router(health.router, tags=["health"])
    for module in (entries, claims, admin_giveaways, admin_winners):
        app.include_router(module.router)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    if not settings.is_testing:
        setup_logging(level=settings.log_level, log_format=settings.log_format)

    app = FastAPI(
        title="Giveaways API",
        description="Giveaway entries, referrals, bonus entries and winner selection",
        version="0.1.0",
        lifespan=_lifespan(settings),
    )
    app.state.settings = settings
    setup_middleware(app)

    @app.exception_handler(GiveawayError)
    async def giveaway_error(request: Request, exc: GiveawayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s failed: %s", request.url.path, exc.detail)
        return problem_response(exc.status_code, exc.code, exc.detail, extra={"code": exc.code})

    _include_routers(app)
    return app


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "giveaways.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_development,
        log_config=None,
    )


app = create_app()


if __name__ == "__main__":
    run()
