"""
Live views: one authoritative snapshot plus an optimistic overlay.

Local writes and store snapshots are two independent sources feeding
one reconciliation step. Cached records are never edited in place; an
optimistic write is kept in an overlay entry tagged with the version it
was made against, and the entry is dropped as soon as a snapshot with a
newer version arrives.

Invariants:
    - records is always snapshot + overlay, recomputed on read
    - An overlay entry never outlives a newer snapshot
    - A query change resets both the snapshot and the overlay
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import SubscriptionError
from ..identity.models import Session
from ..store.base import Query, Record, SnapshotEvent
from .engine import SubscriptionHandle, SubscriptionState, SyncEngine

logger = logging.getLogger(__name__)

QueryFactory = Callable[[Optional[Session]], Optional[Query]]


@dataclass(frozen=True)
class OverlayEntry:
    """A pending local write.

    Attributes:
        record_id: Record the write targets
        record: Record as it should look, or None for a delete
        base_version: Snapshot version the write was made against
    """

    record_id: str
    record: Optional[Record]
    base_version: int


class LiveView:
    """A live query plus optimistic local writes.

    Example:
        >>> view = LiveView(engine, lambda s: student_past_questions(s))
        >>> await view.bind(sessions.current())
        >>> view.records
    """

    def __init__(
        self,
        engine: SyncEngine,
        query_factory: Optional[QueryFactory] = None,
        on_change: Optional[Callable[[LiveView], None]] = None,
    ) -> None:
        self.engine = engine
        self.query_factory = query_factory
        self.on_change = on_change
        self.handle: Optional[SubscriptionHandle] = None
        self.error: Optional[SubscriptionError] = None
        self._snapshot: Optional[SnapshotEvent] = None
        self._overlay: dict[str, OverlayEntry] = {}

    @property
    def query(self) -> Optional[Query]:
        return self.handle.query if self.handle is not None else None

    @property
    def state(self) -> SubscriptionState:
        if self.handle is None:
            return SubscriptionState.UNSUBSCRIBED
        return self.handle.state

    @property
    def version(self) -> int:
        return self._snapshot.version if self._snapshot is not None else -1

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def pending(self) -> int:
        return len(self._overlay)

    @property
    def records(self) -> list[Record]:
        """Snapshot records with the overlay applied."""
        base = list(self._snapshot.records) if self._snapshot is not None else []
        if not self._overlay:
            return base

        merged: list[Record] = []
        seen: set[str] = set()
        for record in base:
            seen.add(record.id)
            entry = self._overlay.get(record.id)
            if entry is None:
                merged.append(record)
            elif entry.record is not None:
                merged.append(entry.record)
        for record_id, entry in self._overlay.items():
            if record_id not in seen and entry.record is not None:
                merged.append(entry.record)
        return merged

    def get(self, record_id: str) -> Optional[Record]:
        for record in self.records:
            if record.id == record_id:
                return record
        return None

    async def open(self, query: Query) -> None:
        """Subscribe to a query, replacing the current one if different.

        Raises:
            SubscriptionError: If the handshake fails
        """
        if self.handle is not None and self.handle.query == query and self.handle.active:
            return

        self._reset()
        self.error = None
        try:
            if self.handle is None:
                self.handle = await self.engine.subscribe(query, self._on_snapshot, self._on_error)
            else:
                self.handle = await self.engine.resubscribe(self.handle, query)
        except SubscriptionError as e:
            self.handle = None
            self.error = e
            raise

    async def bind(self, session: Optional[Session]) -> None:
        """Recompute the query from a Session; resubscribe only on change."""
        if self.query_factory is None:
            raise ValueError("LiveView has no query factory to bind")
        query = self.query_factory(session)
        if query is None:
            self.close()
            return
        await self.open(query)

    def close(self) -> None:
        if self.handle is not None:
            self.engine.unsubscribe(self.handle)
            self.handle = None
        self._reset()

    def apply_optimistic(self, record_id: str, record: Optional[Record]) -> OverlayEntry:
        """Show a local write before the store confirms it."""
        entry = OverlayEntry(record_id=record_id, record=record, base_version=self.version)
        self._overlay[record_id] = entry
        self._changed()
        return entry

    def rollback(self, entry: OverlayEntry) -> None:
        """Drop an overlay entry after its write failed."""
        if self._overlay.get(entry.record_id) is entry:
            del self._overlay[entry.record_id]
            self._changed()

    def _on_snapshot(self, event: SnapshotEvent) -> None:
        self._snapshot = event
        self.error = None
        superseded = [
            record_id
            for record_id, entry in self._overlay.items()
            if entry.base_version < event.version
        ]
        for record_id in superseded:
            del self._overlay[record_id]
        self._changed()

    def _on_error(self, error: SubscriptionError) -> None:
        self.error = error
        self._changed()

    def _reset(self) -> None:
        self._snapshot = None
        self._overlay.clear()

    def _changed(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self)
        except Exception:
            logger.exception("LiveView change listener raised")
