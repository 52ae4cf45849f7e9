"""
Sync engine: live query subscriptions with a stale-version filter.

Each SubscriptionHandle wraps one store live query and forwards full
snapshots to a callback. The transport may reorder or replay pushes, so
the engine tracks the last delivered version per handle and drops
anything that is not strictly newer.

State machine per handle:
    UNSUBSCRIBED -> SUBSCRIBING -> LIVE -> CLOSED      (unsubscribe)
                                  LIVE -> ERROR -> UNSUBSCRIBED
                                                    (transport failure)

Invariants:
    - Delivered versions are strictly increasing per handle
    - unsubscribe() is synchronous: no callback runs after it returns,
      even while the store teardown is still in flight
    - A changed filter means a new handle; queries are never mutated
    - A failure on one handle never touches the others

How to change safely:
    - Keep the version check ahead of every callback invocation
    - Teardown tasks must be tracked so close() can await them
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Optional

from ..errors import SubscriptionError
from ..store.base import (
    Query,
    RecordStore,
    SnapshotEvent,
    StoreError,
    StoreSubscription,
)

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[SnapshotEvent], None]
ErrorListener = Callable[[SubscriptionError], None]


class SubscriptionState(Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    LIVE = "live"
    ERROR = "error"
    CLOSED = "closed"


@dataclass
class SubscriptionHandle:
    """A cancellable live query.

    Attributes:
        handle_id: Engine-assigned id
        query: The query this handle was opened with (never changes)
        state: Current lifecycle state
        last_seen_version: Version of the last delivered snapshot
        delivered: Number of snapshots delivered
    """

    handle_id: str
    query: Query
    callback: SnapshotListener = field(repr=False)
    on_error: Optional[ErrorListener] = field(default=None, repr=False)
    state: SubscriptionState = SubscriptionState.UNSUBSCRIBED
    last_seen_version: int = -1
    delivered: int = 0
    subscription: Optional[StoreSubscription] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self.state in (SubscriptionState.SUBSCRIBING, SubscriptionState.LIVE)


class SyncEngine:
    """Owns the live query handles of one client context.

    Example:
        >>> engine = SyncEngine(store)
        >>> handle = await engine.subscribe(query, on_snapshot)
        >>> engine.unsubscribe(handle)
        >>> await engine.close()
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self._handles: dict[str, SubscriptionHandle] = {}
        self._teardowns: set[asyncio.Task] = set()
        self._closed = False

    @property
    def handles(self) -> list[SubscriptionHandle]:
        return list(self._handles.values())

    async def subscribe(
        self,
        query: Query,
        callback: SnapshotListener,
        on_error: Optional[ErrorListener] = None,
    ) -> SubscriptionHandle:
        """Open a live query.

        The first snapshot arrives asynchronously after the handshake.

        Raises:
            SubscriptionError: If the engine is closed or the handshake fails
        """
        if self._closed:
            raise SubscriptionError("Sync engine is closed")

        handle = SubscriptionHandle(
            handle_id=str(uuid.uuid4()),
            query=query,
            callback=callback,
            on_error=on_error,
            state=SubscriptionState.SUBSCRIBING,
        )
        self._handles[handle.handle_id] = handle

        try:
            subscription = await self.store.subscribe(
                query,
                lambda event: self._deliver(handle, event),
                lambda error: self._fail(handle, error),
            )
        except StoreError as e:
            self._handles.pop(handle.handle_id, None)
            handle.state = SubscriptionState.UNSUBSCRIBED
            logger.error(
                f"Live query handshake failed: {e}",
                extra={"handle_id": handle.handle_id, "query": str(query)},
            )
            raise SubscriptionError(
                f"Cannot subscribe to {query}: {e}", handle_id=handle.handle_id
            ) from e

        handle.subscription = subscription
        if handle.state is not SubscriptionState.SUBSCRIBING:
            # Unsubscribed or failed while the handshake was pending.
            self._schedule_teardown(handle, subscription)
            return handle

        handle.state = SubscriptionState.LIVE
        logger.debug(
            "Subscription live",
            extra={"handle_id": handle.handle_id, "query": str(query)},
        )
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop delivery now and release the live query in the background."""
        self._handles.pop(handle.handle_id, None)
        if handle.state is SubscriptionState.CLOSED:
            return
        was_active = handle.active
        handle.state = SubscriptionState.CLOSED
        if was_active and handle.subscription is not None:
            self._schedule_teardown(handle, handle.subscription)
        logger.debug(
            "Subscription closed",
            extra={"handle_id": handle.handle_id, "delivered": handle.delivered},
        )

    async def resubscribe(
        self, handle: SubscriptionHandle, query: Query
    ) -> SubscriptionHandle:
        """Point a subscription at a query.

        Returns the same handle when the query is unchanged and the
        handle is still active; otherwise a new handle.
        """
        if handle.query == query and handle.active:
            return handle
        self.unsubscribe(handle)
        return await self.subscribe(query, handle.callback, handle.on_error)

    async def stream(self, query: Query) -> AsyncIterator[SnapshotEvent]:
        """Iterate snapshots of a live query.

        Leaving the loop unsubscribes.

        Raises:
            SubscriptionError: If the live query fails
        """
        queue: asyncio.Queue = asyncio.Queue()
        handle = await self.subscribe(query, queue.put_nowait, queue.put_nowait)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, SubscriptionError):
                    raise item
                yield item
        finally:
            self.unsubscribe(handle)

    async def close(self) -> None:
        """Unsubscribe everything and wait for pending teardowns."""
        self._closed = True
        for handle in list(self._handles.values()):
            self.unsubscribe(handle)
        if self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)
        logger.debug("Sync engine closed")

    def _deliver(self, handle: SubscriptionHandle, event: SnapshotEvent) -> None:
        if not handle.active:
            return
        if event.version <= handle.last_seen_version:
            logger.debug(
                "Dropping stale snapshot",
                extra={
                    "handle_id": handle.handle_id,
                    "version": event.version,
                    "last_seen_version": handle.last_seen_version,
                },
            )
            return

        handle.last_seen_version = event.version
        handle.delivered += 1
        try:
            handle.callback(event)
        except Exception:
            logger.exception(
                "Snapshot callback raised",
                extra={"handle_id": handle.handle_id},
            )

    def _fail(self, handle: SubscriptionHandle, error: StoreError) -> None:
        if not handle.active:
            return
        handle.state = SubscriptionState.ERROR
        self._handles.pop(handle.handle_id, None)
        logger.error(
            f"Live query failed: {error}",
            extra={"handle_id": handle.handle_id, "query": str(handle.query)},
        )

        failure = SubscriptionError(f"Live query failed: {error}", handle_id=handle.handle_id)
        if handle.on_error is not None:
            try:
                handle.on_error(failure)
            except Exception:
                logger.exception(
                    "Error callback raised",
                    extra={"handle_id": handle.handle_id},
                )
        handle.state = SubscriptionState.UNSUBSCRIBED

    def _schedule_teardown(
        self, handle: SubscriptionHandle, subscription: StoreSubscription
    ) -> None:
        task = asyncio.get_running_loop().create_task(self._teardown(handle, subscription))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)

    @staticmethod
    async def _teardown(handle: SubscriptionHandle, subscription: StoreSubscription) -> None:
        try:
            await subscription.cancel()
        except StoreError as e:
            logger.warning(
                f"Live query teardown failed: {e}",
                extra={"handle_id": handle.handle_id},
            )
