"""SQLite-backed persistent store for named records.

This module provides the DatabaseStore class, the default implementation of
the persistent store the rule store reads and writes. It uses aiosqlite for
async access and keeps every record as a JSON blob in the agent_state table.

Usage:
    from mailfiler.db.store import DatabaseStore

    store = DatabaseStore("data/mailfiler.db")
    await store.initialize()

    await store.set_blob("rules", [...])
    rules = await store.get_blob("rules")
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from mailfiler.core.errors import DatabaseError
from mailfiler.core.logging import get_logger
from mailfiler.db.models import init_database, verify_schema

logger = get_logger(__name__)


class DatabaseStore:
    """Key-value store backed by a single SQLite table.

    Attributes:
        db_path: Path to the SQLite database file
    """

    def __init__(self, db_path: str | Path):
        """Initialize the database store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed.

        This must be called before any other operations.

        Raises:
            DatabaseError: If the database cannot be created or lacks a
                required table afterwards
        """
        await init_database(self.db_path)
        if not await verify_schema(self.db_path):
            raise DatabaseError(
                f"Database at {self.db_path} is missing required tables. "
                "Move the file aside and run the command again to recreate it."
            )

    @asynccontextmanager
    async def _db(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get a configured database connection.

        Usage:
            async with self._db() as db:
                await db.execute(...)
        """
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA busy_timeout = 10000")
            await db.execute("PRAGMA synchronous = NORMAL")

            db.row_factory = aiosqlite.Row
            yield db

    # =========================================================================
    # Raw State Operations
    # =========================================================================

    async def get_state(self, key: str) -> str | None:
        """Get a raw state value.

        Args:
            key: State key

        Returns:
            State value or None if not found
        """
        try:
            async with self._db() as db:
                cursor = await db.execute("SELECT value FROM agent_state WHERE key = ?", (key,))
                row = await cursor.fetchone()
                return row["value"] if row else None

        except aiosqlite.Error as e:
            logger.error("Failed to get state", key=key, error=str(e))
            raise DatabaseError(f"Failed to get state: {e}") from e

    async def set_state(self, key: str, value: str) -> None:
        """Set a raw state value.

        Args:
            key: State key
            value: State value
        """
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO agent_state (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, datetime.now().isoformat()),
                )
                await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to set state", key=key, error=str(e))
            raise DatabaseError(f"Failed to set state: {e}") from e

    # =========================================================================
    # Blob Operations (persistent store protocol)
    # =========================================================================

    async def get_blob(self, key: str) -> Any | None:
        """Get a JSON-decoded record.

        Args:
            key: Record name

        Returns:
            The decoded value, or None if the record is absent

        Raises:
            DatabaseError: If the read fails or the stored JSON is corrupt
        """
        raw = await self.get_state(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Stored record is not valid JSON", key=key, error=str(e))
            raise DatabaseError(
                f"Record '{key}' in {self.db_path} is not valid JSON: {e}. "
                "Restore it from an export or remove the record."
            ) from e

    async def set_blob(self, key: str, value: Any) -> None:
        """Replace a record with the JSON encoding of value.

        Args:
            key: Record name
            value: JSON-serializable value
        """
        await self.set_state(key, json.dumps(value))
