#!/usr/bin/env python3
"""
Database Migration Runner

Usage:
    newsletter-migrate              # Apply the schema
    newsletter-migrate --status     # Show migration status

Environment:
    DATABASE_BACKEND - sqlite (default) or postgresql
    DATABASE_URL     - PostgreSQL connection string
    SQLITE_PATH      - SQLite database file
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from .adapter import DatabaseAdapter, DatabaseConfig
from .schema import SCHEMA_VERSION, apply_schema, get_applied_versions


async def run_migrations(config: DatabaseConfig) -> int:
    """Apply the schema and report what happened."""
    print("=" * 60)
    print("Newsletter Service Database Migration Runner")
    print("=" * 60)
    print(f"\nDatabase: {config}\n")

    db = DatabaseAdapter(config)
    try:
        applied = await apply_schema(db)
    except Exception as e:
        print(f"  Migration {SCHEMA_VERSION} failed: {e}")
        return 1
    finally:
        await db.disconnect()

    if applied:
        print(f"  Migration {SCHEMA_VERSION} complete")
    else:
        print("No pending migrations. Database is up to date.")
    return 0


async def show_status(config: DatabaseConfig) -> int:
    """Show migration status."""
    db = DatabaseAdapter(config)
    try:
        applied = await get_applied_versions(db)
    finally:
        await db.disconnect()

    print(f"Database: {config}")
    print(f"Current schema version: {SCHEMA_VERSION}")
    print(f"Applied versions: {', '.join(applied) if applied else '(none)'}")
    return 0 if SCHEMA_VERSION in applied else 2


def cli(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Newsletter service database migrations")
    parser.add_argument("--status", action="store_true", help="Show migration status")
    args = parser.parse_args(argv)

    config = DatabaseConfig()
    if args.status:
        sys.exit(asyncio.run(show_status(config)))
    sys.exit(asyncio.run(run_migrations(config)))


if __name__ == "__main__":
    cli()
