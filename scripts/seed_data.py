"""Seed the database with synthetic giveaway data.

Usage:
    python -m scripts.seed_data
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import timedelta
from typing import Any

# Add src to path so giveaways imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import oracledb

from giveaways.core.config import get_settings

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# Re-use factories
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from tests.factories.data_factories import (  # noqa: E402
    NOW,
    build_entry_batch,
    build_giveaway,
    build_winner,
)


def _connect() -> oracledb.Connection:
    settings = get_settings()
    return oracledb.connect(
        user=settings.oracle_user, password=settings.oracle_password, dsn=settings.oracle_dsn
    )


def _insert_row(cur: oracledb.Cursor, table: str, data: dict[str, Any]) -> None:
    """Insert a single row into a table."""
    clean = {k: json.dumps(v) if isinstance(v, (dict, list)) else v for k, v in data.items()}
    columns = ", ".join(clean.keys())
    placeholders = ", ".join(f":{k}" for k in clean)
    sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
    try:
        cur.execute(sql, clean)
    except oracledb.Error as e:
        logger.warning("Insert into %s failed: %s", table, e)


def seed_database() -> None:
    """Generate and insert synthetic data."""
    conn = _connect()
    cur = conn.cursor()
    logger.info("Connected to database, starting seed...")

    # ── 1. Giveaways ──
    open_giveaway = build_giveaway(
        title="Summer Grill Giveaway",
        slug="summer-grill",
        bonus_entries_enabled=1,
        bonus_entry_count=2,
        referral_enabled=1,
        restricted_states="NY,FL",
    )
    drawn_giveaway = build_giveaway(
        title="Spring Bike Giveaway",
        slug="spring-bike",
        prize_value=1200.0,
        require_w9=1,
        num_winners=1,
        alternate_count=2,
        winner_selected=1,
        status="ended",
        start_date=NOW - timedelta(days=40),
        end_date=NOW - timedelta(days=10),
    )
    draft_giveaway = build_giveaway(title="Holiday Bundle", slug="holiday-bundle", status="draft")
    giveaways = [open_giveaway, drawn_giveaway, draft_giveaway]
    for g in giveaways:
        _insert_row(cur, "giveaways", g)
    logger.info("Seeded %d giveaways", len(giveaways))

    # ── 2. Entries ──
    open_entries = build_entry_batch(open_giveaway["giveaway_id"], 25)
    drawn_entries = build_entry_batch(drawn_giveaway["giveaway_id"], 15)
    for e in open_entries + drawn_entries:
        _insert_row(cur, "giveaway_entries", e)
    logger.info("Seeded %d entries", len(open_entries) + len(drawn_entries))

    # ── 3. Referral invitations (first five entrants of the open giveaway) ──
    for i, e in enumerate(open_entries[:5]):
        _insert_row(
            cur,
            "giveaway_referrals",
            {
                "referral_id": f"seedref{i:025d}",
                "giveaway_id": open_giveaway["giveaway_id"],
                "referrer_entry_id": e["entry_id"],
                "referral_code": f"SEED{i:04d}",
                "bonus_entries_awarded": 0,
                "created_at": NOW,
            },
        )
    logger.info("Seeded 5 referral invitations")

    # ── 4. Winners for the drawn giveaway ──
    winners = [
        build_winner(
            drawn_giveaway["giveaway_id"],
            drawn_entries[0]["entry_id"],
            claim_deadline=NOW + timedelta(days=7),
        )
    ]
    for order, e in enumerate(drawn_entries[1:3], start=1):
        winners.append(
            build_winner(
                drawn_giveaway["giveaway_id"],
                e["entry_id"],
                winner_type="alternate",
                alternate_order=order,
                claim_deadline=NOW + timedelta(days=7),
            )
        )
    for w in winners:
        _insert_row(cur, "giveaway_winners", w)
    logger.info("Seeded %d winners", len(winners))

    conn.commit()
    cur.close()
    conn.close()
    logger.info("Seed complete!")


if __name__ == "__main__":
    seed_database()
