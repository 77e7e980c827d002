"""Command-line runner for background workers.

Usage:
    python -m giveaways.workers.run claims
    python -m giveaways.workers.run claims --every 900
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Callable

import oracledb

from giveaways.core.config import get_settings
from giveaways.core.database import create_pool
from giveaways.core.logging import setup_logging

logger = logging.getLogger(__name__)


def run_claims(pool: oracledb.ConnectionPool) -> bool:
    """One claim-expiry cycle; True when it finished without errors."""
    from giveaways.services.container import build_services
    from giveaways.workers.claim_expiry import ClaimExpiryWorker

    result = ClaimExpiryWorker(claim_workflow=build_services(pool).claims).run()
    for warning in result.warnings:
        logger.warning("claim expiry: %s", warning)
    return result.success


WORKERS: dict[str, Callable[[oracledb.ConnectionPool], bool]] = {
    "claims": run_claims,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m giveaways.workers.run", description="Run a giveaway worker"
    )
    parser.add_argument("worker", choices=sorted(WORKERS))
    parser.add_argument(
        "--every",
        type=int,
        default=0,
        metavar="SECONDS",
        help="repeat on this interval instead of running once",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(level=args.log_level, log_format=settings.log_format)

    try:
        pool = create_pool(settings)
    except oracledb.Error as exc:
        logger.error("Cannot reach Oracle, %s worker not run: %s", args.worker, exc)
        return 1

    worker = WORKERS[args.worker]
    ok = True
    try:
        ok = worker(pool)
        while args.every > 0:
            time.sleep(args.every)
            ok = worker(pool)
    except KeyboardInterrupt:
        logger.info("%s worker interrupted", args.worker)
    finally:
        pool.close()
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
