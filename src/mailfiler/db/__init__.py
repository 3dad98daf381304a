"""Database layer for mailfiler.

This module provides SQLite-backed named records with async operations.

Usage:
    from mailfiler.db import DatabaseStore

    store = DatabaseStore("data/mailfiler.db")
    await store.initialize()

    await store.set_blob("rules", [])
"""

from mailfiler.db.models import SCHEMA_VERSION, init_database, verify_schema
from mailfiler.db.store import DatabaseStore

__all__ = [
    # Models
    "SCHEMA_VERSION",
    "init_database",
    "verify_schema",
    # Store
    "DatabaseStore",
]
