"""Async key-value storage backends for the fragment store.

The fragment store keeps two kinds of data apart: a small state blob (file
metadata, sequential counters) and the bulk line content of every fragment
file. Both are written through the same minimal interface:

    get_item(key) -> str | None
    set_item(key, value)
    remove_item(key)
    clear()

Two backends are provided:

- :class:`SQLiteKeyValueStorage` persists to a table in an SQLite database.
  Each instance owns one table, so state and content can share a database
  file while staying separate.
- :class:`MemoryKeyValueStorage` keeps everything in a dictionary. It is
  used by tests and for throwaway sessions.

The SQLite backend runs its blocking calls in a worker thread so that the
event loop is never stalled by disk I/O.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StorageError(Exception):
    """Raised when the underlying persistence layer fails."""


class KeyValueStorage(ABC):
    """Abstract async key-value storage."""

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        """Return the value stored under *key*, or ``None``."""

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Remove *key*. Removing a missing key is not an error."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key."""


class MemoryKeyValueStorage(KeyValueStorage):
    """Dictionary-backed storage. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._items: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def clear(self) -> None:
        self._items.clear()


class SQLiteKeyValueStorage(KeyValueStorage):
    """Key-value storage backed by a single SQLite table.

    Every operation opens its own connection, so instances can be used from
    worker threads without sharing a connection object.

    Args:
        db_path: Path to the SQLite database file (created if missing)
        table: Table name for this store. Must be a plain identifier.
    """

    def __init__(self, db_path: Path, table: str = "keyval"):
        if not _TABLE_NAME_RE.match(table):
            raise ValueError(f"Invalid table name: {table!r}")

        self.db_path = Path(db_path)
        self.table = table
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized key-value table '{self.table}' at {self.db_path}")

    def _initialize_db(self) -> None:
        """Create the table if it doesn't exist."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                    """)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Error initializing table {self.table} in {self.db_path}: {e}")
            raise StorageError(f"Cannot initialize {self.db_path}: {e}") from e

    def _get_item_sync(self, key: str) -> str | None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    f"SELECT value FROM {self.table} WHERE key = ? LIMIT 1",
                    (key,),
                )
                row = cursor.fetchone()
                return row[0] if row else None
        except sqlite3.Error as e:
            logger.error(f"Error reading {key} from {self.table}: {e}")
            raise StorageError(f"Cannot read {key}: {e}") from e

    def _set_item_sync(self, key: str, value: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                # INSERT OR REPLACE keeps one row per key
                conn.execute(
                    f"""
                    INSERT OR REPLACE INTO {self.table} (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    (key, value, datetime.now().isoformat()),
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Error writing {key} to {self.table}: {e}")
            raise StorageError(f"Cannot write {key}: {e}") from e

    def _remove_item_sync(self, key: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(f"DELETE FROM {self.table} WHERE key = ?", (key,))
                conn.commit()
                if cursor.rowcount == 0:
                    logger.debug(f"Key not present in {self.table}: {key}")
        except sqlite3.Error as e:
            logger.error(f"Error removing {key} from {self.table}: {e}")
            raise StorageError(f"Cannot remove {key}: {e}") from e

    def _clear_sync(self) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(f"DELETE FROM {self.table}")
                conn.commit()
                logger.info(f"Cleared key-value table '{self.table}'")
        except sqlite3.Error as e:
            logger.error(f"Error clearing {self.table}: {e}")
            raise StorageError(f"Cannot clear {self.table}: {e}") from e

    async def get_item(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get_item_sync, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set_item_sync, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove_item_sync, key)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)
