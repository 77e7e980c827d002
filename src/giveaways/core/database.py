"""Oracle connection pool and transaction scope."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import oracledb

from giveaways.core.config import Settings

logger = logging.getLogger(__name__)

_pool: oracledb.ConnectionPool | None = None


def create_pool(settings: Settings) -> oracledb.ConnectionPool:
    """A new pool sized from *settings*; the caller owns closing it."""
    pool = oracledb.create_pool(
        user=settings.oracle_user,
        password=settings.oracle_password,
        dsn=settings.oracle_dsn,
        min=settings.oracle_pool_min,
        max=settings.oracle_pool_max,
        increment=settings.oracle_pool_increment,
    )
    logger.info(
        "Oracle pool open on %s (min=%d, max=%d)",
        settings.oracle_dsn,
        settings.oracle_pool_min,
        settings.oracle_pool_max,
    )
    return pool


async def init_pool(settings: Settings) -> oracledb.ConnectionPool:
    """Open the API's shared pool once per process."""
    global _pool
    if _pool is None:
        _pool = create_pool(settings)
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        _pool.close(force=True)
        _pool = None
        logger.info("Oracle pool closed")


def get_pool() -> oracledb.ConnectionPool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return _pool


@contextmanager
def transaction(pool: Any) -> Iterator[Any]:
    """Yield a connection whose work commits on exit and rolls back on error.

    Everything executed on the yielded connection forms one atomic unit;
    callers that need a compare-and-set abort by raising (or by calling
    ``conn.rollback()`` before returning).
    """
    conn = pool.acquire()
    try:
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


def is_unique_violation(exc: BaseException) -> bool:
    """True when *exc* is an ORA-00001 unique constraint violation."""
    if not isinstance(exc, oracledb.IntegrityError):
        return False
    error = exc.args[0] if exc.args else None
    return getattr(error, "code", None) == 1
