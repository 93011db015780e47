"""
Database Schema

Table definitions for the newsletter service, written for PostgreSQL and
translated for SQLite.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List

from .adapter import DatabaseAdapter, DatabaseBackend

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "001"

SCHEMA_STATEMENTS: List[str] = [
    # Owned by the subscription flow; read-only for this service
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id UUID PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        status TEXT NOT NULL,
        subscribed_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS idempotency_records (
        user_id TEXT NOT NULL,
        idempotency_key TEXT NOT NULL,
        request_hash TEXT NOT NULL,
        response_status_code SMALLINT,
        response_headers TEXT,
        response_body BYTEA,
        created_at TIMESTAMPTZ NOT NULL,
        PRIMARY KEY (user_id, idempotency_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS newsletter_issues (
        id UUID PRIMARY KEY,
        title TEXT NOT NULL,
        html_body TEXT NOT NULL,
        text_body TEXT NOT NULL,
        created_by TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS delivery_tasks (
        id UUID PRIMARY KEY,
        newsletter_issue_id UUID NOT NULL REFERENCES newsletter_issues (id),
        subscriber_email TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'processing', 'done', 'failed')),
        attempts INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        next_attempt_at TIMESTAMPTZ NOT NULL,
        claim_token UUID,
        claimed_by TEXT,
        claimed_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL,
        UNIQUE (newsletter_issue_id, subscriber_email)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_delivery_tasks_status_next_attempt
        ON delivery_tasks (status, next_attempt_at)
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_delivery_tasks_issue
        ON delivery_tasks (newsletter_issue_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version TEXT PRIMARY KEY,
        applied_at TIMESTAMPTZ NOT NULL
    )
    """,
]

_SQLITE_TYPES: Dict[str, str] = {
    "UUID": "TEXT",
    "TIMESTAMPTZ": "TEXT",
    "BYTEA": "BLOB",
    "SMALLINT": "INTEGER",
}


def _to_sqlite_ddl(statement: str) -> str:
    """Swap PostgreSQL column types for their SQLite storage classes."""
    for pg_type, sqlite_type in _SQLITE_TYPES.items():
        statement = re.sub(rf"\b{pg_type}\b", sqlite_type, statement)
    return statement


def statements_for(backend: DatabaseBackend) -> List[str]:
    if backend == DatabaseBackend.SQLITE:
        return [_to_sqlite_ddl(s) for s in SCHEMA_STATEMENTS]
    return list(SCHEMA_STATEMENTS)


async def get_applied_versions(db: DatabaseAdapter) -> List[str]:
    """Return applied schema versions, or an empty list on a fresh database."""
    async with db.transaction() as tx:
        if db.backend == DatabaseBackend.SQLITE:
            exists = await tx.fetchval(
                "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table' AND name = 'schema_migrations'"
            )
        else:
            exists = await tx.fetchval("SELECT COUNT(*) FROM pg_tables WHERE tablename = 'schema_migrations'")
        if not exists:
            return []
        rows = await tx.fetch("SELECT version FROM schema_migrations ORDER BY version")
    return [row["version"] for row in rows]


async def apply_schema(db: DatabaseAdapter) -> bool:
    """
    Create all tables and indexes if they do not exist.

    Returns True if the schema version was newly recorded, False if it was
    already present.
    """
    async with db.transaction() as tx:
        for statement in statements_for(db.backend):
            await tx.execute(statement)

        applied = await tx.fetchval(
            "SELECT version FROM schema_migrations WHERE version = $1",
            SCHEMA_VERSION
        )
        if applied:
            return False

        await tx.execute(
            "INSERT INTO schema_migrations (version, applied_at) VALUES ($1, $2)",
            SCHEMA_VERSION,
            datetime.now(timezone.utc)
        )

    logger.info("Applied schema version %s on %s", SCHEMA_VERSION, db.backend.value)
    return True
