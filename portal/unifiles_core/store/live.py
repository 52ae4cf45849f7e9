"""
Live query fan-out shared by the record store backends.

The hub keeps the registered live queries of one store and, after every
write, recomputes the full snapshot of each query on the written
partition and schedules its delivery on the event loop.

Invariants:
    - Delivery is scheduled with loop.call_soon, never run inline
    - A cancelled registration receives nothing scheduled after cancel
    - A failing listener never blocks delivery to the others
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .base import (
    ErrorCallback,
    Query,
    Record,
    SnapshotCallback,
    SnapshotEvent,
    StoreError,
)

logger = logging.getLogger(__name__)

Fetcher = Callable[[Query], Awaitable[list[Record]]]


@dataclass
class _Registration:
    subscription_id: str
    query: Query
    on_snapshot: SnapshotCallback
    on_error: Optional[ErrorCallback]
    active: bool = True


class LiveQueryHub:
    """Registry of live queries for one store.

    Example:
        >>> hub = LiveQueryHub(store._fetch)
        >>> reg_id = hub.register(query, on_snapshot, on_error)
        >>> await hub.publish("PastQuestions", version=7)
    """

    def __init__(self, fetch: Fetcher) -> None:
        self._fetch = fetch
        self._registrations: dict[str, _Registration] = {}

    def register(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback],
    ) -> str:
        subscription_id = str(uuid.uuid4())
        self._registrations[subscription_id] = _Registration(
            subscription_id=subscription_id,
            query=query,
            on_snapshot=on_snapshot,
            on_error=on_error,
        )
        return subscription_id

    def unregister(self, subscription_id: str) -> None:
        reg = self._registrations.pop(subscription_id, None)
        if reg is not None:
            reg.active = False

    def clear(self) -> None:
        for reg in self._registrations.values():
            reg.active = False
        self._registrations.clear()

    def count(self, partition: Optional[str] = None) -> int:
        if partition is None:
            return len(self._registrations)
        return sum(1 for r in self._registrations.values() if r.query.partition == partition)

    async def push_initial(self, subscription_id: str, version: int) -> None:
        """Compute and schedule the first snapshot of a new registration."""
        reg = self._registrations.get(subscription_id)
        if reg is not None:
            await self._push(reg, version)

    async def publish(self, partition: str, version: int) -> None:
        """Recompute and schedule snapshots for every query on a partition."""
        targets = [r for r in self._registrations.values() if r.query.partition == partition]
        for reg in targets:
            await self._push(reg, version)

    def deliver(self, query: Query, event: SnapshotEvent) -> int:
        """Schedule an already-built snapshot for every registration of query."""
        loop = asyncio.get_running_loop()
        targets = [r for r in self._registrations.values() if r.query == query]
        for reg in targets:
            loop.call_soon(self._dispatch, reg, event)
        return len(targets)

    def fail(self, partition: str, error: StoreError) -> int:
        """Schedule a transport failure for every query on a partition.

        Failed registrations are dropped; the transport does not retry.
        """
        loop = asyncio.get_running_loop()
        targets = [r for r in self._registrations.values() if r.query.partition == partition]
        for reg in targets:
            self._registrations.pop(reg.subscription_id, None)
            loop.call_soon(self._dispatch_error, reg, error)
        return len(targets)

    async def _push(self, reg: _Registration, version: int) -> None:
        try:
            records = await self._fetch(reg.query)
        except StoreError as e:
            logger.error(
                f"Live query refresh failed: {e}",
                extra={"subscription_id": reg.subscription_id, "query": str(reg.query)},
            )
            self._registrations.pop(reg.subscription_id, None)
            asyncio.get_running_loop().call_soon(self._dispatch_error, reg, e)
            return

        event = SnapshotEvent(query=reg.query, records=tuple(records), version=version)
        asyncio.get_running_loop().call_soon(self._dispatch, reg, event)

    @staticmethod
    def _dispatch(reg: _Registration, event: SnapshotEvent) -> None:
        if not reg.active:
            return
        try:
            reg.on_snapshot(event)
        except Exception:
            logger.exception(
                "Snapshot listener raised",
                extra={"subscription_id": reg.subscription_id},
            )

    @staticmethod
    def _dispatch_error(reg: _Registration, error: StoreError) -> None:
        if not reg.active:
            return
        reg.active = False
        if reg.on_error is None:
            logger.warning(
                f"Live query failed with no error listener: {error}",
                extra={"subscription_id": reg.subscription_id},
            )
            return
        try:
            reg.on_error(error)
        except Exception:
            logger.exception(
                "Error listener raised",
                extra={"subscription_id": reg.subscription_id},
            )
