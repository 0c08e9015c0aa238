"""Scoped uniqueness stores and the gate that applies the duplicate-request policy."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from ..config import DEFAULT_DUPLICATE_SCOPE, DuplicateRequestsPolicy
from ..infra.storage import SQLiteManager


class UniquenessStore(Protocol):
    """Contract the core requires from a deduplication backend."""

    def test_and_insert(self, scope: str, value: str) -> bool:
        """Record ``value`` and return True only the first time it is seen in ``scope``."""

    def contains(self, scope: str, value: str) -> bool:
        """Return whether ``value`` was already recorded in ``scope``."""


class DeduplicationStore:
    """In-memory set per scope, safe to share between worker threads."""

    def __init__(self) -> None:
        self._scopes: defaultdict[str, set[str]] = defaultdict(set)
        self._lock = Lock()

    def test_and_insert(self, scope: str, value: str) -> bool:
        with self._lock:
            seen = self._scopes[scope]
            if value in seen:
                return False
            seen.add(value)
            return True

    def contains(self, scope: str, value: str) -> bool:
        with self._lock:
            return value in self._scopes.get(scope, ())

    def add(self, scope: str, value: str) -> None:
        with self._lock:
            self._scopes[scope].add(value)

    def items(self, scope: str) -> set[str]:
        with self._lock:
            return set(self._scopes.get(scope, ()))

    def clear(self) -> None:
        with self._lock:
            self._scopes.clear()

    def close(self) -> None:
        return


class SQLiteDeduplicationStore:
    """Scoped values kept in SQLite, so uniqueness holds across runs."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = Lock()
        self.manager.connect(db_path)

    def test_and_insert(self, scope: str, value: str) -> bool:
        with self._lock, self.manager.transaction(self.db_path) as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO seen_values(scope, value, timestamp) VALUES (?, ?, datetime('now'))",
                (scope, value),
            )
            return cur.rowcount == 1

    def contains(self, scope: str, value: str) -> bool:
        with self._lock:
            row = self.manager.connect(self.db_path).execute(
                "SELECT 1 FROM seen_values WHERE scope = ? AND value = ?", (scope, value)
            ).fetchone()
        return row is not None

    def add(self, scope: str, value: str) -> None:
        self.test_and_insert(scope, value)

    def items(self, scope: str) -> set[str]:
        with self._lock:
            rows = self.manager.connect(self.db_path).execute(
                "SELECT value FROM seen_values WHERE scope = ?", (scope,)
            ).fetchall()
        return {row["value"] for row in rows}

    def clear(self) -> None:
        with self._lock:
            self.manager.reset(self.db_path)

    def close(self) -> None:
        self.manager.close(self.db_path)


class DeduplicationGate:
    """Decide whether a value may pass according to the configured policy."""

    def __init__(self, store: UniquenessStore, policy: DuplicateRequestsPolicy | None) -> None:
        self.store = store
        self.policy = policy

    @classmethod
    def from_setting(cls, store: UniquenessStore, setting: Any) -> "DeduplicationGate":
        """Build a gate from a ``skip_duplicate_requests`` value (bool, mapping or policy)."""

        if isinstance(setting, DuplicateRequestsPolicy):
            policy: DuplicateRequestsPolicy | None = setting
        elif isinstance(setting, dict):
            policy = DuplicateRequestsPolicy.model_validate(setting)
        elif setting:
            policy = DuplicateRequestsPolicy(scope=DEFAULT_DUPLICATE_SCOPE)
        else:
            policy = None
        return cls(store, policy)

    @property
    def enabled(self) -> bool:
        return self.policy is not None

    @property
    def scope(self) -> str:
        return self.policy.scope if self.policy else DEFAULT_DUPLICATE_SCOPE

    def admit(self, value: str, scope: str | None = None) -> bool:
        if self.policy is None:
            return True
        target = scope or self.policy.scope
        if self.policy.check_only:
            return not self.store.contains(target, value)
        return self.store.test_and_insert(target, value)


__all__ = [
    "DeduplicationGate",
    "DeduplicationStore",
    "SQLiteDeduplicationStore",
    "UniquenessStore",
]
