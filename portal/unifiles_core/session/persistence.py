"""
Session snapshot persistence.

A session is persisted as one serialized string under a well-known key,
the way a browser keeps it in local storage. Backends only move opaque
strings; parsing and validation live in the SessionStore.

Invariants:
    - save() replaces the whole value atomically
    - delete() of an absent key is not an error
    - Backend failures surface as SessionPersistenceError
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Protocol, TYPE_CHECKING, runtime_checkable

from ..errors import SessionPersistenceError

if TYPE_CHECKING:
    from ..config import SessionConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionPersistence(Protocol):
    """Key/value storage for session snapshots."""

    def load(self, key: str) -> Optional[str]:
        ...

    def save(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemorySessionPersistence:
    """Process-local persistence. Survives SessionStore instances, not restarts."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def load(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def save(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class SqliteSessionPersistence:
    """Session snapshots in a small SQLite key/value table.

    Table schema:
        session_kv:
            - key TEXT PRIMARY KEY
            - value TEXT
    """

    def __init__(self, path: str, busy_timeout_ms: int = 5000) -> None:
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), timeout=self.busy_timeout_ms / 1000.0)
        except (OSError, sqlite3.Error) as e:
            raise SessionPersistenceError(f"Cannot open session database: {e}") from e

        try:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS session_kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise SessionPersistenceError(f"Session database failure: {e}") from e
        finally:
            conn.close()

    def load(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM session_kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def save(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO session_kv (key, value) VALUES (?, ?)",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM session_kv WHERE key = ?", (key,))


def create_session_persistence(config: "SessionConfig") -> SessionPersistence:
    """Factory function to create session persistence from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import SessionBackend

    if config.backend == SessionBackend.MEMORY:
        return MemorySessionPersistence()
    elif config.backend == SessionBackend.SQLITE:
        return SqliteSessionPersistence(config.path)
    else:
        raise ValueError(f"Unsupported session backend: {config.backend}")
