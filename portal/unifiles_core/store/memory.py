"""
In-memory record store implementation.

This module provides a fully functional record store backend kept in
process memory, used for:
- Unit tests
- Integration tests of the gateway
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Provides the same live query and versioning semantics as SQLite
    - Record ids are UUIDs assigned by the store

How to change safely:
    - Keep interface compatible with the RecordStore protocol
    - Testing helpers live at the bottom and are not part of the protocol
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from .base import (
    ErrorCallback,
    Query,
    Record,
    RecordNotFoundError,
    SnapshotCallback,
    SnapshotEvent,
    StoreConnectionError,
    StoreError,
    StoreSubscription,
    resolve_server_timestamps,
)
from .live import LiveQueryHub

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRecordStore:
    """In-memory implementation of RecordStore.

    Attributes:
        version: Logical version, bumped once per write

    Thread safety:
        Uses an asyncio lock around writes. Safe to use from multiple
        coroutines on one event loop.

    Example:
        >>> store = InMemoryRecordStore()
        >>> await store.connect()
        >>> await store.create("Ceo", {"studentID": "C1", "studentName": "ada"})
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow
        self._partitions: dict[str, dict[str, Record]] = {}
        self._version = 0
        self._connected = False
        self._lock = asyncio.Lock()
        self._hub = LiveQueryHub(self._fetch)
        self._failures: list[StoreError] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def version(self) -> int:
        return self._version

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryRecordStore connected")

    async def close(self) -> None:
        """Close and drop live queries. Data is kept for reconnects."""
        self._connected = False
        self._hub.clear()
        logger.debug("InMemoryRecordStore closed")

    async def get(self, query: Query) -> list[Record]:
        self._check("get")
        return await self._fetch(query)

    async def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> StoreSubscription:
        self._check("subscribe")
        subscription_id = self._hub.register(query, on_snapshot, on_error)

        async def _cancel() -> None:
            # Teardown is a round trip in real transports.
            await asyncio.sleep(0)
            self._hub.unregister(subscription_id)

        subscription = StoreSubscription(
            subscription_id=subscription_id,
            query=query,
            canceller=_cancel,
        )
        await self._hub.push_initial(subscription_id, self._version)
        logger.debug(
            "Live query registered",
            extra={"subscription_id": subscription_id, "query": str(query)},
        )
        return subscription

    async def create(self, partition: str, fields: Mapping[str, Any]) -> Record:
        self._check("create")
        async with self._lock:
            record = Record(
                id=str(uuid.uuid4()),
                fields=resolve_server_timestamps(fields, self._clock()),
                partition=partition,
            )
            self._partitions.setdefault(partition, {})[record.id] = record
            self._version += 1
            version = self._version

        await self._hub.publish(partition, version)
        return record

    async def update(
        self, partition: str, record_id: str, fields: Mapping[str, Any]
    ) -> Record:
        self._check("update")
        async with self._lock:
            current = self._partitions.get(partition, {}).get(record_id)
            if current is None:
                raise RecordNotFoundError(partition, record_id)
            merged = dict(current.fields)
            merged.update(resolve_server_timestamps(fields, self._clock()))
            record = Record(id=record_id, fields=merged, partition=partition)
            self._partitions[partition][record_id] = record
            self._version += 1
            version = self._version

        await self._hub.publish(partition, version)
        return record

    async def delete(self, partition: str, record_id: str) -> None:
        self._check("delete")
        async with self._lock:
            if record_id not in self._partitions.get(partition, {}):
                raise RecordNotFoundError(partition, record_id)
            del self._partitions[partition][record_id]
            self._version += 1
            version = self._version

        await self._hub.publish(partition, version)

    async def _fetch(self, query: Query) -> list[Record]:
        records = list(self._partitions.get(query.partition, {}).values())
        return query.apply(records)

    def _check(self, operation: str) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")
        if self._failures:
            error = self._failures.pop(0)
            logger.debug(f"Injected failure on {operation}: {error}")
            raise error

    # Testing helpers

    def seed(self, partition: str, fields: Mapping[str, Any], record_id: Optional[str] = None) -> Record:
        """Insert a record without publishing (testing helper)."""
        record = Record(
            id=record_id or str(uuid.uuid4()),
            fields=resolve_server_timestamps(fields, self._clock()),
            partition=partition,
        )
        self._partitions.setdefault(partition, {})[record.id] = record
        self._version += 1
        return record

    def inject_failure(self, exception: StoreError, times: int = 1) -> None:
        """Make the next `times` operations raise `exception`."""
        self._failures.extend([exception] * times)

    def inject_snapshot(self, query: Query, records: list[Record], version: int) -> int:
        """Push an arbitrary snapshot to every live query equal to `query`.

        Simulates a transport that reorders or replays pushes.

        Returns:
            Number of registrations the snapshot was scheduled for
        """
        event = SnapshotEvent(query=query, records=tuple(records), version=version)
        return self._hub.deliver(query, event)

    def fail_subscriptions(self, partition: str, error: Optional[StoreError] = None) -> int:
        """Fail every live query on a partition (testing helper)."""
        return self._hub.fail(partition, error or StoreConnectionError("Live query transport lost"))

    def subscriber_count(self, partition: Optional[str] = None) -> int:
        """Number of registered live queries (testing helper)."""
        return self._hub.count(partition)

    def get_all_records(self, partition: str) -> list[Record]:
        """All records of a partition (testing helper)."""
        return list(self._partitions.get(partition, {}).values())
