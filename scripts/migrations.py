"""Database migration scripts for the giveaway engine.

Run all migrations in order to set up the schema.

Usage:
    python -m scripts.migrations [--drop]
"""

from __future__ import annotations

import argparse
import logging

import oracledb

logger = logging.getLogger(__name__)


MIGRATION_001_GIVEAWAYS = """
CREATE TABLE giveaways (
    giveaway_id             VARCHAR2(32) PRIMARY KEY,
    title                   VARCHAR2(255) NOT NULL,
    slug                    VARCHAR2(120) NOT NULL,
    prize_title             VARCHAR2(255) NOT NULL,
    prize_value             NUMBER(12,2),
    start_date              TIMESTAMP WITH TIME ZONE NOT NULL,
    end_date                TIMESTAMP WITH TIME ZONE NOT NULL,
    entry_type              VARCHAR2(10) DEFAULT 'both'
                            CHECK (entry_type IN ('email','phone','both')),
    dedupe_policy           VARCHAR2(20) DEFAULT 'hard'
                            CHECK (dedupe_policy IN ('hard','cross_channel')),
    num_winners             NUMBER(5) DEFAULT 1 NOT NULL,
    alternate_count         NUMBER(5) DEFAULT 0 NOT NULL,
    alternate_selection     VARCHAR2(10) DEFAULT 'auto'
                            CHECK (alternate_selection IN ('auto','manual')),
    winner_selected         NUMBER(1) DEFAULT 0 NOT NULL,
    require_w9              NUMBER(1) DEFAULT 0,
    w9_threshold            NUMBER(12,2) DEFAULT 600,
    restricted_states       VARCHAR2(200),
    bonus_entries_enabled   NUMBER(1) DEFAULT 0,
    bonus_entry_count       NUMBER(5) DEFAULT 1,
    referral_enabled        NUMBER(1) DEFAULT 0,
    referral_bonus_entries  NUMBER(5) DEFAULT 1,
    max_referral_bonus      NUMBER(5) DEFAULT 10,
    max_referrals_per_ip    NUMBER(5) DEFAULT 3,
    claim_deadline_days     NUMBER(5) DEFAULT 7,
    status                  VARCHAR2(20) DEFAULT 'draft'
                            CHECK (status IN ('draft','active','ended','cancelled')),
    created_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP,
    updated_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP,
    CONSTRAINT uk_giveaways_slug UNIQUE (slug),
    CONSTRAINT chk_giveaway_dates CHECK (end_date > start_date)
)
"""

MIGRATION_001_ENTRIES = """
CREATE TABLE giveaway_entries (
    entry_id                VARCHAR2(32) PRIMARY KEY,
    giveaway_id             VARCHAR2(32) NOT NULL REFERENCES giveaways(giveaway_id),
    email                   VARCHAR2(255),
    phone                   VARCHAR2(20),
    first_name              VARCHAR2(100) NOT NULL,
    last_name               VARCHAR2(100) NOT NULL,
    state                   VARCHAR2(2) NOT NULL,
    zip_code                VARCHAR2(10),
    sms_opt_in              NUMBER(1) DEFAULT 0,
    email_opt_in            NUMBER(1) DEFAULT 0,
    agreed_to_rules         NUMBER(1) DEFAULT 0 NOT NULL,
    entry_channel           VARCHAR2(10),
    dedupe_email            VARCHAR2(255),
    dedupe_phone            VARCHAR2(20),
    is_valid                NUMBER(1) DEFAULT 1 NOT NULL,
    invalidation_reason     VARCHAR2(500),
    validity_updated_at     TIMESTAMP WITH TIME ZONE,
    validity_updated_by     VARCHAR2(100),
    entry_count             NUMBER(10) DEFAULT 1 NOT NULL,
    bonus_claimed           NUMBER(1) DEFAULT 0 NOT NULL,
    secondary_contact       VARCHAR2(255),
    referral_code           VARCHAR2(32),
    entry_source            VARCHAR2(50),
    ip_address              VARCHAR2(64),
    user_agent              VARCHAR2(500),
    created_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP,
    CONSTRAINT chk_entry_contact CHECK (email IS NOT NULL OR phone IS NOT NULL),
    CONSTRAINT chk_entry_count CHECK (entry_count >= 1)
)
"""

MIGRATION_001_REFERRALS = """
CREATE TABLE giveaway_referrals (
    referral_id             VARCHAR2(32) PRIMARY KEY,
    giveaway_id             VARCHAR2(32) NOT NULL REFERENCES giveaways(giveaway_id),
    referrer_entry_id       VARCHAR2(32) NOT NULL REFERENCES giveaway_entries(entry_id),
    referral_code           VARCHAR2(32) NOT NULL,
    referred_entry_id       VARCHAR2(32) REFERENCES giveaway_entries(entry_id),
    referred_ip             VARCHAR2(64),
    converted_at            TIMESTAMP WITH TIME ZONE,
    bonus_entries_awarded   NUMBER(5) DEFAULT 0,
    created_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP
)
"""

MIGRATION_001_WINNERS = """
CREATE TABLE giveaway_winners (
    winner_id               VARCHAR2(32) PRIMARY KEY,
    giveaway_id             VARCHAR2(32) NOT NULL REFERENCES giveaways(giveaway_id),
    entry_id                VARCHAR2(32) NOT NULL REFERENCES giveaway_entries(entry_id),
    winner_type             VARCHAR2(10) NOT NULL
                            CHECK (winner_type IN ('primary','alternate')),
    alternate_order         NUMBER(5),
    status                  VARCHAR2(20) DEFAULT 'pending'
                            CHECK (status IN ('pending','notified','claimed','forfeited','disqualified')),
    claim_token             VARCHAR2(64) NOT NULL,
    claim_deadline          TIMESTAMP WITH TIME ZONE,
    notified_at             TIMESTAMP WITH TIME ZONE,
    notification_method     VARCHAR2(10),
    claimed_at              TIMESTAMP WITH TIME ZONE,
    status_reason           VARCHAR2(500),
    created_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP,
    updated_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP,
    CONSTRAINT uk_winner_token UNIQUE (claim_token),
    CONSTRAINT uk_winner_entry UNIQUE (giveaway_id, entry_id)
)
"""

MIGRATION_001_PRIZE_CLAIMS = """
CREATE TABLE prize_claims (
    claim_id                VARCHAR2(32) PRIMARY KEY,
    winner_id               VARCHAR2(32) NOT NULL REFERENCES giveaway_winners(winner_id),
    legal_name              VARCHAR2(200) NOT NULL,
    address_line1           VARCHAR2(255) NOT NULL,
    address_line2           VARCHAR2(255),
    city                    VARCHAR2(100) NOT NULL,
    state                   VARCHAR2(2) NOT NULL,
    zip_code                VARCHAR2(10) NOT NULL,
    w9_document             VARCHAR2(500),
    id_document             VARCHAR2(500),
    fulfillment_status      VARCHAR2(20) DEFAULT 'pending'
                            CHECK (fulfillment_status IN ('pending','processing','shipped','delivered')),
    verified                NUMBER(1) DEFAULT 0,
    created_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP,
    updated_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP,
    CONSTRAINT uk_prize_claim_winner UNIQUE (winner_id)
)
"""

MIGRATION_001_AUDIT_LOG = """
CREATE TABLE audit_log (
    log_id                  VARCHAR2(32) PRIMARY KEY,
    giveaway_id             VARCHAR2(32),
    target_type             VARCHAR2(20) NOT NULL,
    target_id               VARCHAR2(32) NOT NULL,
    action                  VARCHAR2(50) NOT NULL,
    actor                   VARCHAR2(100) NOT NULL,
    details                 CLOB CHECK (details IS JSON),
    created_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP
)
"""

MIGRATION_003_UNSUBSCRIBES = """
CREATE TABLE giveaway_unsubscribes (
    unsubscribe_id          VARCHAR2(32) PRIMARY KEY,
    email                   VARCHAR2(255),
    phone                   VARCHAR2(20),
    channel                 VARCHAR2(10) NOT NULL
                            CHECK (channel IN ('email','sms','both')),
    unsubscribe_type        VARCHAR2(10) DEFAULT 'all' NOT NULL
                            CHECK (unsubscribe_type IN ('all','giveaway')),
    giveaway_id             VARCHAR2(32) REFERENCES giveaways(giveaway_id),
    reason                  VARCHAR2(500),
    created_at              TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP,
    CONSTRAINT chk_unsub_contact CHECK (email IS NOT NULL OR phone IS NOT NULL),
    CONSTRAINT chk_unsub_scope CHECK (unsubscribe_type = 'all' OR giveaway_id IS NOT NULL)
)
"""

ALL_TABLE_DDLS = [
    ("giveaways", MIGRATION_001_GIVEAWAYS),
    ("giveaway_entries", MIGRATION_001_ENTRIES),
    ("giveaway_referrals", MIGRATION_001_REFERRALS),
    ("giveaway_winners", MIGRATION_001_WINNERS),
    ("prize_claims", MIGRATION_001_PRIZE_CLAIMS),
    ("audit_log", MIGRATION_001_AUDIT_LOG),
    ("giveaway_unsubscribes", MIGRATION_003_UNSUBSCRIBES),
]

# Dedupe keys are only unique within a giveaway and only when set; the CASE
# expressions keep NULL keys out of the index entirely.
MIGRATION_002_INDEXES = [
    "CREATE UNIQUE INDEX uq_entries_dedupe_email ON giveaway_entries ("
    "CASE WHEN dedupe_email IS NOT NULL THEN giveaway_id END, dedupe_email)",
    "CREATE UNIQUE INDEX uq_entries_dedupe_phone ON giveaway_entries ("
    "CASE WHEN dedupe_phone IS NOT NULL THEN giveaway_id END, dedupe_phone)",
    "CREATE INDEX idx_entries_giveaway ON giveaway_entries (giveaway_id, is_valid)",
    "CREATE INDEX idx_entries_email ON giveaway_entries (giveaway_id, email)",
    "CREATE INDEX idx_entries_phone ON giveaway_entries (giveaway_id, phone)",
    # One invitation code per referrer, unique per giveaway
    "CREATE UNIQUE INDEX uq_referral_invite_code ON giveaway_referrals ("
    "CASE WHEN referred_entry_id IS NULL THEN giveaway_id END, "
    "CASE WHEN referred_entry_id IS NULL THEN referral_code END)",
    "CREATE UNIQUE INDEX uq_referral_invite_referrer ON giveaway_referrals ("
    "CASE WHEN referred_entry_id IS NULL THEN referrer_entry_id END)",
    # An entry converts at most once
    "CREATE UNIQUE INDEX uq_referral_referred ON giveaway_referrals (referred_entry_id)",
    "CREATE INDEX idx_referrals_referrer ON giveaway_referrals (referrer_entry_id, referred_ip)",
    "CREATE INDEX idx_winners_deadline ON giveaway_winners (status, claim_deadline)",
    "CREATE INDEX idx_audit_target ON audit_log (target_id, created_at)",
    "CREATE INDEX idx_audit_giveaway ON audit_log (giveaway_id, created_at)",
    "CREATE INDEX idx_unsub_email ON giveaway_unsubscribes (email)",
    "CREATE INDEX idx_unsub_phone ON giveaway_unsubscribes (phone)",
]

# Tables in reverse order for dropping (children first)
DROP_ORDER = [
    "giveaway_unsubscribes",
    "audit_log",
    "prize_claims",
    "giveaway_winners",
    "giveaway_referrals",
    "giveaway_entries",
    "giveaways",
]


def table_exists(conn: oracledb.Connection, table_name: str) -> bool:
    """Check if a table exists in the current schema."""
    with conn.cursor() as cur:
        cur.execute(
            "SELECT COUNT(*) FROM user_tables WHERE table_name = :name",
            {"name": table_name.upper()},
        )
        row = cur.fetchone()
        return bool(row and row[0] > 0)


def run_migrations(conn: oracledb.Connection) -> list[str]:
    """Run all pending migrations. Returns list of actions taken."""
    actions: list[str] = []

    for table_name, ddl in ALL_TABLE_DDLS:
        if not table_exists(conn, table_name):
            with conn.cursor() as cur:
                cur.execute(ddl)
            actions.append(f"Created table: {table_name}")
            logger.info("Created table: %s", table_name)

    # Create indexes (ignore if already exists)
    for idx_sql in MIGRATION_002_INDEXES:
        try:
            with conn.cursor() as cur:
                cur.execute(idx_sql)
            idx_name = idx_sql.split("INDEX ")[1].split(" ON")[0]
            actions.append(f"Created index: {idx_name}")
        except oracledb.DatabaseError as e:
            error_obj = e.args[0]
            # ORA-00955: name already used; ORA-01408: column list already indexed
            if hasattr(error_obj, "code") and error_obj.code in (955, 1408):
                pass
            else:
                raise

    conn.commit()
    return actions


def drop_all_tables(conn: oracledb.Connection) -> list[str]:
    """Drop all tables (for reset). Returns list of actions taken."""
    actions: list[str] = []
    for table_name in DROP_ORDER:
        if table_exists(conn, table_name):
            with conn.cursor() as cur:
                cur.execute(f"DROP TABLE {table_name} CASCADE CONSTRAINTS PURGE")
            actions.append(f"Dropped table: {table_name}")
            logger.info("Dropped table: %s", table_name)
    conn.commit()
    return actions


def main() -> None:
    from giveaways.core.config import get_settings

    parser = argparse.ArgumentParser(description="Apply giveaway schema migrations")
    parser.add_argument("--drop", action="store_true", help="Drop all tables first")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    settings = get_settings()
    conn = oracledb.connect(
        user=settings.oracle_user, password=settings.oracle_password, dsn=settings.oracle_dsn
    )
    try:
        if args.drop:
            drop_all_tables(conn)
        for action in run_migrations(conn) or ["No pending migrations"]:
            logger.info(action)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
