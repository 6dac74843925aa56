"""
DDL for the postgres-backed matchmaking store.

Applied idempotently at startup when STORE_BACKEND=postgres.
"""

from app.db.pool import db_pool
from app.db.helpers import translate_db_errors
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS attendees (
        actor_id TEXT PRIMARY KEY,
        goals TEXT[] NOT NULL DEFAULT '{}',
        interests TEXT[] NOT NULL DEFAULT '{}',
        company TEXT,
        role TEXT,
        name TEXT,
        matchmaking_consent BOOLEAN NOT NULL DEFAULT TRUE,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS interaction_edges (
        actor_a TEXT NOT NULL,
        actor_b TEXT NOT NULL,
        weight INTEGER NOT NULL DEFAULT 0 CHECK (weight >= 0),
        last_interaction_at TIMESTAMPTZ,
        PRIMARY KEY (actor_a, actor_b),
        CHECK (actor_a < actor_b)
    )
    """,
    "CREATE INDEX IF NOT EXISTS interaction_edges_actor_b_idx ON interaction_edges (actor_b)",
    """
    CREATE TABLE IF NOT EXISTS scan_log (
        scan_id TEXT PRIMARY KEY,
        actor_a TEXT NOT NULL,
        actor_b TEXT NOT NULL,
        occurred_at TIMESTAMPTZ NOT NULL,
        location TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS scan_log_occurred_at_idx ON scan_log (occurred_at)",
    """
    CREATE TABLE IF NOT EXISTS meetings (
        meeting_id TEXT PRIMARY KEY,
        requester_id TEXT NOT NULL,
        target_id TEXT NOT NULL,
        status TEXT NOT NULL,
        slot_start TIMESTAMPTZ NOT NULL,
        slot_end TIMESTAMPTZ NOT NULL,
        venue TEXT,
        message TEXT,
        idempotency_key TEXT UNIQUE,
        version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL,
        CHECK (slot_end > slot_start)
    )
    """,
    # At most one active meeting per unordered pair
    """
    CREATE UNIQUE INDEX IF NOT EXISTS meetings_active_pair_idx
        ON meetings (LEAST(requester_id, target_id), GREATEST(requester_id, target_id))
        WHERE status IN ('requested', 'scheduled')
    """,
    "CREATE INDEX IF NOT EXISTS meetings_requester_idx ON meetings (requester_id, status)",
    "CREATE INDEX IF NOT EXISTS meetings_target_idx ON meetings (target_id, status)",
    """
    CREATE TABLE IF NOT EXISTS hotspot_summaries (
        id BIGSERIAL PRIMARY KEY,
        computed_at TIMESTAMPTZ NOT NULL,
        window_start TIMESTAMPTZ NOT NULL,
        hotspots JSONB NOT NULL
    )
    """,
)


async def ensure_schema() -> None:
    async with translate_db_errors("ensure_schema"):
        async with db_pool.transaction() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
    logger.info("Matchmaking schema ensured", statement_count=len(SCHEMA_STATEMENTS))
