"""SQLite connections backing the persistent deduplication store."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator

SEEN_VALUES_SCHEMA = """
CREATE TABLE IF NOT EXISTS seen_values (
    scope TEXT NOT NULL,
    value TEXT NOT NULL,
    timestamp TEXT,
    PRIMARY KEY (scope, value)
)
"""


class SQLiteManager:
    """One shared connection per database file, schema created on first open."""

    def __init__(self) -> None:
        self._connections: dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    @staticmethod
    def _key(path: Path) -> Path:
        return Path(path).expanduser().resolve()

    def connect(self, path: Path) -> sqlite3.Connection:
        key = self._key(path)
        with self._lock:
            conn = self._connections.get(key)
            if conn is None:
                key.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(key, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute(SEEN_VALUES_SCHEMA)
                conn.commit()
                self._connections[key] = conn
            return conn

    @contextmanager
    def transaction(self, path: Path) -> Iterator[sqlite3.Connection]:
        """Yield the connection for ``path``; commit on success, roll back on error."""

        conn = self.connect(path)
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    def close(self, path: Path) -> None:
        with self._lock:
            conn = self._connections.pop(self._key(path), None)
        if conn is not None:
            conn.close()

    def reset(self, path: Path) -> None:
        """Close the connection and delete the database file."""

        self.close(path)
        self._key(path).unlink(missing_ok=True)

    def close_all(self) -> None:
        with self._lock:
            connections, self._connections = list(self._connections.values()), {}
        for conn in connections:
            conn.close()


__all__ = ["SEEN_VALUES_SCHEMA", "SQLiteManager"]
