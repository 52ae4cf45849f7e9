"""
SQLite record store for UniFiles.

This module keeps every partition in one SQLite file so records survive
restarts of the process. Queries load the rows of one partition and
evaluate predicates in Python; partitions are small catalogs.

Invariants:
    - One SQLite file per store
    - Every write runs in a single transaction and bumps the version row
    - Live queries behave exactly as in the in-memory backend

How to change safely:
    - Schema migrations must be backward compatible
    - Datetimes are tagged on encode; keep the tag stable
    - Encode and decode failures surface as StoreError, never as raw
      TypeError or ValueError

Table schema:
    records:
        - partition TEXT
        - record_id TEXT (UUID)
        - fields_json TEXT
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)
        - PRIMARY KEY (partition, record_id)

    store_meta:
        - key TEXT PRIMARY KEY
        - value INTEGER
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from .base import (
    ErrorCallback,
    Query,
    Record,
    RecordNotFoundError,
    SnapshotCallback,
    StoreConnectionError,
    StoreError,
    StoreSubscription,
    resolve_server_timestamps,
)
from .live import LiveQueryHub

logger = logging.getLogger(__name__)

_DATETIME_TAG = "$datetime"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _DATETIME_TAG in obj:
        return datetime.fromisoformat(obj[_DATETIME_TAG])
    return obj


def dumps_fields(fields: Mapping[str, Any]) -> str:
    try:
        return json.dumps(dict(fields), default=_encode)
    except (TypeError, ValueError) as e:
        raise StoreError(f"Cannot encode record fields: {e}") from e


def loads_fields(raw: str) -> dict[str, Any]:
    try:
        fields = json.loads(raw, object_hook=_decode)
    except (TypeError, ValueError) as e:
        raise StoreError(f"Corrupt record fields: {e}") from e
    if not isinstance(fields, dict):
        raise StoreError(f"Corrupt record fields: expected object, got {type(fields).__name__}")
    return fields


class SqliteRecordStore:
    """Single-file SQLite implementation of RecordStore.

    Thread safety:
        Each operation opens its own connection. Writes are serialized
        by an asyncio lock.

    Example:
        >>> store = SqliteRecordStore("/var/lib/unifiles")
        >>> await store.connect()
        >>> await store.create("Courses", {"courseName": "CompSci"})
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        db_name: str = "records.db",
        busy_timeout_ms: int = 5000,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.busy_timeout_ms = busy_timeout_ms
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._connected = False
        self._version = 0
        self._lock = asyncio.Lock()
        self._hub = LiveQueryHub(self._fetch)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def version(self) -> int:
        return self._version

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        except sqlite3.Error as e:
            raise StoreError(f"SQLite failure: {e}") from e
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS records (
                partition TEXT NOT NULL,
                record_id TEXT NOT NULL,
                fields_json TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                PRIMARY KEY (partition, record_id)
            );

            CREATE TABLE IF NOT EXISTS store_meta (
                key TEXT PRIMARY KEY,
                value INTEGER NOT NULL
            );

            INSERT OR IGNORE INTO store_meta (key, value) VALUES ('version', 0);
        """)
        conn.execute(
            "INSERT OR IGNORE INTO store_meta (key, value) VALUES ('schema_version', ?)",
            (self.SCHEMA_VERSION,),
        )

    async def connect(self) -> None:
        try:
            with self._get_connection() as conn:
                self._create_schema(conn)
                row = conn.execute(
                    "SELECT value FROM store_meta WHERE key = 'version'"
                ).fetchone()
        except StoreError as e:
            raise StoreConnectionError(f"Cannot open record store: {e}") from e

        self._version = int(row["value"])
        self._connected = True
        logger.info(
            "SQLite record store opened",
            extra={"path": str(self.db_path), "version": self._version},
        )

    async def close(self) -> None:
        self._connected = False
        self._hub.clear()
        logger.debug("SQLite record store closed")

    async def get(self, query: Query) -> list[Record]:
        self._check()
        return await self._fetch(query)

    async def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> StoreSubscription:
        self._check()
        subscription_id = self._hub.register(query, on_snapshot, on_error)

        async def _cancel() -> None:
            await asyncio.sleep(0)
            self._hub.unregister(subscription_id)

        await self._hub.push_initial(subscription_id, self._version)
        return StoreSubscription(
            subscription_id=subscription_id,
            query=query,
            canceller=_cancel,
        )

    async def create(self, partition: str, fields: Mapping[str, Any]) -> Record:
        self._check()
        record = Record(
            id=str(uuid.uuid4()),
            fields=resolve_server_timestamps(fields, self._clock()),
            partition=partition,
        )
        now = int(time.time() * 1000)

        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute(
                        """
                        INSERT INTO records (partition, record_id, fields_json,
                                             created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (partition, record.id, dumps_fields(record.fields), now, now),
                    )
                    version = self._bump_version(conn)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

        await self._hub.publish(partition, version)
        return record

    async def update(
        self, partition: str, record_id: str, fields: Mapping[str, Any]
    ) -> Record:
        self._check()
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = conn.execute(
                        "SELECT fields_json FROM records WHERE partition = ? AND record_id = ?",
                        (partition, record_id),
                    ).fetchone()
                    if row is None:
                        raise RecordNotFoundError(partition, record_id)

                    merged = loads_fields(row["fields_json"])
                    merged.update(resolve_server_timestamps(fields, self._clock()))
                    conn.execute(
                        """
                        UPDATE records SET fields_json = ?, updated_at = ?
                        WHERE partition = ? AND record_id = ?
                        """,
                        (dumps_fields(merged), int(time.time() * 1000), partition, record_id),
                    )
                    version = self._bump_version(conn)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

        await self._hub.publish(partition, version)
        return Record(id=record_id, fields=merged, partition=partition)

    async def delete(self, partition: str, record_id: str) -> None:
        self._check()
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    cursor = conn.execute(
                        "DELETE FROM records WHERE partition = ? AND record_id = ?",
                        (partition, record_id),
                    )
                    if cursor.rowcount == 0:
                        raise RecordNotFoundError(partition, record_id)
                    version = self._bump_version(conn)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

        await self._hub.publish(partition, version)

    def _bump_version(self, conn: sqlite3.Connection) -> int:
        conn.execute("UPDATE store_meta SET value = value + 1 WHERE key = 'version'")
        row = conn.execute("SELECT value FROM store_meta WHERE key = 'version'").fetchone()
        self._version = int(row["value"])
        return self._version

    async def _fetch(self, query: Query) -> list[Record]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT record_id, fields_json FROM records WHERE partition = ? ORDER BY created_at",
                (query.partition,),
            ).fetchall()

        records = [
            Record(
                id=row["record_id"],
                fields=loads_fields(row["fields_json"]),
                partition=query.partition,
            )
            for row in rows
        ]
        return query.apply(records)

    def _check(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")
