"""
Tests for the database adapter and schema management.
"""

import re

import pytest

from newsletter_service.core.database import DatabaseAdapter, DatabaseBackend, DatabaseConfig, apply_schema, get_applied_versions
from newsletter_service.core.database import migrate
from newsletter_service.core.database.adapter import _convert_to_sqlite, is_unique_violation
from newsletter_service.core.database.schema import SCHEMA_VERSION, statements_for


class TestQueryTranslation:
    """PostgreSQL placeholders on SQLite."""

    def test_numbered_placeholders(self):
        query = "UPDATE t SET a = $1, b = $2 WHERE c <= $2 LIMIT $10"
        assert _convert_to_sqlite(query) == "UPDATE t SET a = ?1, b = ?2 WHERE c <= ?2 LIMIT ?10"

    def test_sqlite_ddl_has_no_postgres_types(self):
        ddl = " ".join(statements_for(DatabaseBackend.SQLITE))
        for pg_type in ("TIMESTAMPTZ", "BYTEA", "UUID", "SMALLINT"):
            assert re.search(rf"\b{pg_type}\b", ddl) is None


class TestTransactions:
    """Commit and rollback."""

    async def test_rollback_on_error(self, db):
        with pytest.raises(RuntimeError):
            async with db.transaction() as tx:
                await tx.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES ($1, $2)",
                    "999", "2026-01-01T00:00:00+00:00"
                )
                raise RuntimeError("abort")

        assert await get_applied_versions(db) == [SCHEMA_VERSION]

    async def test_unique_violation_detected(self, db):
        with pytest.raises(Exception) as exc_info:
            await db.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES ($1, $2)",
                SCHEMA_VERSION, "2026-01-01T00:00:00+00:00"
            )
        assert is_unique_violation(exc_info.value)

    async def test_ping(self, db):
        assert await db.ping() is True


class TestSchema:
    """Schema application and the migrate CLI."""

    async def test_apply_schema_is_idempotent(self, db):
        assert await apply_schema(db) is False
        assert await get_applied_versions(db) == [SCHEMA_VERSION]

    def test_migrate_cli(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_BACKEND", "sqlite")
        monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "cli.db"))

        with pytest.raises(SystemExit) as status_before:
            migrate.cli(["--status"])
        assert status_before.value.code == 2

        with pytest.raises(SystemExit) as applied:
            migrate.cli([])
        assert applied.value.code == 0

        with pytest.raises(SystemExit) as status_after:
            migrate.cli(["--status"])
        assert status_after.value.code == 0

    async def test_connect_is_idempotent(self, tmp_path):
        adapter = DatabaseAdapter(DatabaseConfig(backend="sqlite", sqlite_path=str(tmp_path / "x.db")))
        await adapter.connect()
        await adapter.connect()
        assert adapter.is_connected
        await adapter.disconnect()
        assert not adapter.is_connected
