"""
SQLite database module for local client state.

Stores one-time markers such as the "zone created" flag so they survive
between runs. A single connection is opened lazily and shared by all
threads; every access is serialized by a lock.
"""

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

SCHEMA = """
CREATE TABLE IF NOT EXISTS flags (
    key TEXT PRIMARY KEY,
    value INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);
"""

MEMORY_PATH = ":memory:"


class SyncDatabase:
    """
    Boolean flags persisted in SQLite.

    Usage:
        with SyncDatabase('/path/to/state.db') as db:
            if not db.get_flag('isZoneCreated'):
                ...

        # In-memory for testing:
        db = SyncDatabase(':memory:')
        db.initialize()
    """

    def __init__(self, db_path: str):
        """
        Args:
            db_path: Path to the SQLite file, or ':memory:'
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run statements in one transaction.

        Commits when the block exits normally and rolls back if it raises.

        Usage:
            with db.transaction() as conn:
                conn.execute("DELETE FROM flags")
        """
        with self._lock:
            conn = self._connect()
            with conn:
                yield conn

    def initialize(self) -> None:
        """Create the flags table if it doesn't exist."""
        with self._lock:
            self._connect().executescript(SCHEMA)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "SyncDatabase":
        self.initialize()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ----- flags -----

    def get_flag(self, key: str) -> bool:
        """Return the stored value, or False if the flag was never set."""
        with self.transaction() as conn:
            row = conn.execute("SELECT value FROM flags WHERE key = ?", (key,)).fetchone()
        return bool(row["value"]) if row else False

    def set_flag(self, key: str, value: bool) -> None:
        stamp = datetime.now(timezone.utc).isoformat()
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO flags (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET "
                "value = excluded.value, updated_at = excluded.updated_at",
                (key, int(value), stamp),
            )

    def clear_flag(self, key: str) -> bool:
        """
        Delete a flag.

        Returns:
            True if a flag was deleted, False if not found
        """
        with self.transaction() as conn:
            deleted = conn.execute("DELETE FROM flags WHERE key = ?", (key,)).rowcount
        return deleted > 0

    def clear_all_flags(self) -> int:
        """Delete every flag and return how many there were."""
        with self.transaction() as conn:
            return conn.execute("DELETE FROM flags").rowcount

    def get_all_flags(self) -> dict[str, bool]:
        with self.transaction() as conn:
            rows = conn.execute("SELECT key, value FROM flags ORDER BY key").fetchall()
        return {row["key"]: bool(row["value"]) for row in rows}

    def __repr__(self) -> str:
        return f"SyncDatabase(db_path={self.db_path!r})"
