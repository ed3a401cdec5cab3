# decision_engine/store.py
"""
Key-value stores for persisted learning state.

The engine only needs get/set of a string blob under a fixed key. Any
store failure surfaces as PersistenceError.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Protocol, runtime_checkable

from .errors import store_read_failed, store_write_failed


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    """In-process store, mostly for tests and single-process services."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class SQLiteStore:
    """SQLite-backed key-value persistence."""

    def __init__(self, db_path: str | Path = "decision_engine.sqlite3", timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        try:
            with self._conn() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
        except sqlite3.Error as e:
            raise store_write_failed(str(self.db_path), str(e)) from e

    @contextmanager
    def _conn(self):
        """Context manager for database connection."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> str | None:
        try:
            with self._conn() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise store_read_failed(key, str(e)) from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(UTC).isoformat()
        try:
            with self._conn() as conn:
                conn.execute(
                    """
                    INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, now),
                )
        except sqlite3.Error as e:
            raise store_write_failed(key, str(e)) from e

    def delete(self, key: str) -> bool:
        try:
            with self._conn() as conn:
                cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise store_write_failed(key, str(e)) from e

    def keys(self) -> list[str]:
        try:
            with self._conn() as conn:
                rows = conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        except sqlite3.Error as e:
            raise store_read_failed("*", str(e)) from e
        return [r[0] for r in rows]
