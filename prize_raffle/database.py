"""
Database Schema Setup for Prize Raffles
Creates all tables and indices needed by the raffle core
"""

import logging

from sqlalchemy import create_engine, inspect, text

from .config import DATABASE_URL, LOG_FILE, LOG_LEVEL

logger = logging.getLogger(__name__)

# Plain types only, so the same schema runs on SQLite and PostgreSQL.
# Ids are assigned by the application, never by SERIAL/AUTOINCREMENT.
RAFFLE_SCHEMA_SQL = """
-- ============================================
-- PRIZE RAFFLE DATABASE SCHEMA
-- ============================================

-- One row per raffle, never deleted
CREATE TABLE IF NOT EXISTS raffles (
    id INTEGER PRIMARY KEY,
    owner TEXT NOT NULL,
    cutoff_time BIGINT NOT NULL,
    is_minimum_entries_fixed BOOLEAN NOT NULL,
    minimum_entries INTEGER NOT NULL,
    maximum_entries_per_participant INTEGER NOT NULL,
    discounts TEXT,
    status VARCHAR(20) NOT NULL,  -- open, drawing, drawn, complete, cancelled
    entries_sold INTEGER NOT NULL DEFAULT 0,
    request_id BIGINT,
    random_value TEXT,  -- decimal text, may exceed 64 bits
    prizes_deposited BOOLEAN NOT NULL DEFAULT FALSE,
    prizes_withdrawn BOOLEAN NOT NULL DEFAULT FALSE,
    proceeds_claimed BOOLEAN NOT NULL DEFAULT FALSE,
    created_at BIGINT NOT NULL,
    drawn_at BIGINT
);

-- Ordered pricing tiers
CREATE TABLE IF NOT EXISTS raffle_pricing_options (
    raffle_id INTEGER NOT NULL REFERENCES raffles(id),
    option_index INTEGER NOT NULL,
    price BIGINT NOT NULL,
    entry_count INTEGER NOT NULL,
    PRIMARY KEY (raffle_id, option_index)
);

-- Prizes, grouped into tiers (one tier = one winner)
CREATE TABLE IF NOT EXISTS raffle_prizes (
    raffle_id INTEGER NOT NULL REFERENCES raffles(id),
    tier_index INTEGER NOT NULL,
    position INTEGER NOT NULL,
    kind VARCHAR(20) NOT NULL,  -- single_unit, multi_unit, native
    asset_address TEXT NOT NULL,
    asset_id BIGINT NOT NULL,
    amount BIGINT NOT NULL,
    PRIMARY KEY (raffle_id, tier_index, position)
);

-- Append-only entry ranges [entry_start, entry_end)
CREATE TABLE IF NOT EXISTS raffle_entries (
    raffle_id INTEGER NOT NULL REFERENCES raffles(id),
    entry_start INTEGER NOT NULL,
    entry_end INTEGER NOT NULL,
    participant TEXT NOT NULL,
    pricing_option_index INTEGER NOT NULL,
    unit_count INTEGER NOT NULL,
    amount_paid BIGINT NOT NULL,
    created_at BIGINT NOT NULL,
    PRIMARY KEY (raffle_id, entry_start)
);

-- Running per-participant totals
CREATE TABLE IF NOT EXISTS raffle_participants (
    raffle_id INTEGER NOT NULL REFERENCES raffles(id),
    participant TEXT NOT NULL,
    entries_count INTEGER NOT NULL DEFAULT 0,
    amount_paid BIGINT NOT NULL DEFAULT 0,
    refunded BOOLEAN NOT NULL DEFAULT FALSE,
    PRIMARY KEY (raffle_id, participant)
);

-- One winner per prize tier
CREATE TABLE IF NOT EXISTS raffle_winners (
    raffle_id INTEGER NOT NULL REFERENCES raffles(id),
    tier_index INTEGER NOT NULL,
    participant TEXT NOT NULL,
    entry_index INTEGER NOT NULL,
    claimed BOOLEAN NOT NULL DEFAULT FALSE,
    PRIMARY KEY (raffle_id, tier_index)
);

-- Outstanding randomness requests, removed once consumed
CREATE TABLE IF NOT EXISTS raffle_randomness_requests (
    request_id BIGINT PRIMARY KEY,
    raffle_id INTEGER NOT NULL UNIQUE REFERENCES raffles(id),
    random_value TEXT,
    requested_at BIGINT NOT NULL,
    fulfilled_at BIGINT
);

-- ============================================
-- INDICES FOR PERFORMANCE
-- ============================================

CREATE INDEX IF NOT EXISTS idx_raffle_entries_participant ON raffle_entries(raffle_id, participant);
CREATE INDEX IF NOT EXISTS idx_raffles_status ON raffles(status);
"""

REQUIRED_TABLES = [
    'raffles',
    'raffle_pricing_options',
    'raffle_prizes',
    'raffle_entries',
    'raffle_participants',
    'raffle_winners',
    'raffle_randomness_requests',
]


def get_engine(database_url=None):
    """
    Create a SQLAlchemy engine for the raffle database

    Args:
        database_url: Connection string (None = DATABASE_URL from config)
    """
    url = database_url or DATABASE_URL
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return create_engine(url)


def split_statements(schema_sql):
    """Split a schema script into single statements (SQLite runs one at a time)"""
    statements = []
    current_statement = []

    for line in schema_sql.split('\n'):
        stripped = line.strip()
        if not stripped or stripped.startswith('--'):
            continue

        current_statement.append(line)

        if stripped.endswith(';'):
            statements.append('\n'.join(current_statement))
            current_statement = []

    return statements


def setup_raffle_database(engine):
    """
    Create all raffle tables and indices

    Args:
        engine: SQLAlchemy engine instance

    Returns:
        bool: True if successful, False otherwise
    """
    try:
        logger.info("Setting up prize raffle database schema...")

        with engine.begin() as conn:
            for statement in split_statements(RAFFLE_SCHEMA_SQL):
                conn.execute(text(statement))

        logger.info("✅ Prize raffle database schema created successfully")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to setup raffle database: {e}", exc_info=True)
        return False


def verify_raffle_schema(engine):
    """
    Verify that all required tables exist

    Returns:
        dict: Status of each table (True/False)
    """
    existing = set(inspect(engine).get_table_names())
    return {table: table in existing for table in REQUIRED_TABLES}


if __name__ == "__main__":
    """
    Run this script directly to setup the database schema
    """
    from utils.logging_config import setup_logging

    log = setup_logging('prize_raffle', LOG_LEVEL, LOG_FILE)
    engine = get_engine()

    if setup_raffle_database(engine):
        status = verify_raffle_schema(engine)
        for table, exists in status.items():
            symbol = "✓" if exists else "✗"
            log.info(f"  {symbol} {table}")
    else:
        log.error("❌ Schema setup failed")
        exit(1)
