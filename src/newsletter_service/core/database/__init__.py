"""
Database Module

PostgreSQL / SQLite adapter, transactions and schema management.
"""

from .adapter import (
    DATABASE_ERRORS,
    DatabaseAdapter,
    DatabaseBackend,
    DatabaseConfig,
    Transaction,
    is_unique_violation,
)
from .schema import apply_schema, get_applied_versions

__all__ = [
    "DATABASE_ERRORS",
    "DatabaseAdapter",
    "DatabaseBackend",
    "DatabaseConfig",
    "Transaction",
    "is_unique_violation",
    "apply_schema",
    "get_applied_versions",
]
