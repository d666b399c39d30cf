"""
Storage Backends
================

Raw text key/value areas behind the two storage scopes.

- ``MemoryBackend``: the short-lived scope; lives as long as the
  process (the browsing context) and is gone afterwards.
- ``SqliteBackend``: the persistent scope; a single-table SQLite file
  that survives restarts.

Backends know nothing about expiry, encryption or key prefixes; that is
the token store's job.
"""

from __future__ import annotations

import contextlib
import sqlite3
from enum import Enum
from pathlib import Path
from typing import Final, Iterator, Optional, Protocol


class Scope(Enum):
    """Storage scope selector."""
    SESSION = "session"  # cleared when the context ends
    PERSISTENT = "persistent"  # survives restarts


class StorageBackend(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryBackend:
    """In-process key/value area."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))


class SqliteBackend:
    """
    Durable key/value area backed by SQLite.

    Every write is committed immediately; there is no cross-process
    locking beyond what SQLite provides, so concurrent writers to the
    same key are last-writer-wins.
    """

    __slots__ = ("_db_path",)

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self.initialize_db()

    @contextlib.contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection that commits on success and is always closed."""
        conn = sqlite3.connect(self._db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize_db(self) -> None:
        """Create the table (and parent directory) if missing."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.executescript(self._SCHEMA)

    @property
    def path(self) -> Path:
        return self._db_path

    def get_item(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (key, value),
            )

    def remove_item(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [row[0] for row in rows]
