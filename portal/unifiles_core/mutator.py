"""
Record mutator: create, update and delete against the record store.

Failures come back as MutationResult values; nothing expected is
raised to the caller. The next snapshot of any live query on the
written partition reflects a successful write.

Invariants:
    - update() replaces the supplied fields only
    - Concurrent edits are last-write-wins; there is no conflict detection
    - delete() assumes the caller already confirmed with the user
    - An optimistic overlay is rolled back when its write fails
    - Display names written to identity partitions are stored normalized,
      the form the identity resolver matches against
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional

from .config import PartitionConfig
from .errors import PortalError, RecordMissingError, StoreUnavailableError
from .store.base import (
    Record,
    RecordNotFoundError,
    RecordStore,
    StoreError,
    resolve_server_timestamps,
)
from .identity.models import normalize_display_name
from .sync.view import LiveView, OverlayEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a write.

    Attributes:
        success: Whether the store accepted the write
        record: Stored record (create/update only)
        error: RecordMissingError or StoreUnavailableError on failure
    """

    success: bool
    record: Optional[Record] = None
    error: Optional[PortalError] = None

    @classmethod
    def ok(cls, record: Optional[Record] = None) -> MutationResult:
        return cls(success=True, record=record)

    @classmethod
    def failed(cls, error: PortalError) -> MutationResult:
        return cls(success=False, error=error)


class RecordMutator:
    """Writes records and reports the outcome as a value.

    Example:
        >>> mutator = RecordMutator(store)
        >>> result = await mutator.update("PastQuestions", rec_id, {"Year": "2023"})
        >>> result.success
        True
    """

    def __init__(self, store: RecordStore, partitions: Optional[PartitionConfig] = None) -> None:
        self.store = store
        self.partitions = partitions or PartitionConfig()

    async def create(
        self,
        partition: str,
        fields: Mapping[str, Any],
        view: Optional[LiveView] = None,
    ) -> MutationResult:
        fields = self._prepare(partition, fields)
        entry = None
        if view is not None:
            pending_id = f"pending-{uuid.uuid4()}"
            entry = view.apply_optimistic(
                pending_id,
                Record(id=pending_id, fields=self._preview(fields), partition=partition),
            )
        return await self._run(
            "create",
            partition,
            None,
            lambda: self.store.create(partition, fields),
            view,
            entry,
        )

    async def update(
        self,
        partition: str,
        record_id: str,
        fields: Mapping[str, Any],
        view: Optional[LiveView] = None,
    ) -> MutationResult:
        fields = self._prepare(partition, fields)
        entry = None
        if view is not None:
            current = view.get(record_id)
            merged = dict(current.fields) if current is not None else {}
            merged.update(self._preview(fields))
            entry = view.apply_optimistic(
                record_id, Record(id=record_id, fields=merged, partition=partition)
            )
        return await self._run(
            "update",
            partition,
            record_id,
            lambda: self.store.update(partition, record_id, fields),
            view,
            entry,
        )

    async def delete(
        self,
        partition: str,
        record_id: str,
        view: Optional[LiveView] = None,
    ) -> MutationResult:
        entry = view.apply_optimistic(record_id, None) if view is not None else None
        return await self._run(
            "delete",
            partition,
            record_id,
            lambda: self.store.delete(partition, record_id),
            view,
            entry,
        )

    async def _run(
        self,
        operation: str,
        partition: str,
        record_id: Optional[str],
        call: Callable[[], Awaitable[Optional[Record]]],
        view: Optional[LiveView],
        entry: Optional[OverlayEntry],
    ) -> MutationResult:
        try:
            record = await call()
        except RecordNotFoundError as e:
            logger.warning(
                f"{operation} on missing record",
                extra={"partition": partition, "record_id": record_id},
            )
            self._rollback(view, entry)
            return MutationResult.failed(RecordMissingError(e.partition, e.record_id))
        except StoreError as e:
            logger.error(
                f"Error during {operation}: {e}",
                extra={"partition": partition, "record_id": record_id},
            )
            self._rollback(view, entry)
            return MutationResult.failed(
                StoreUnavailableError(f"{operation} failed on {partition}: {e}", operation=operation)
            )

        logger.info(
            f"Record {operation}d",
            extra={
                "partition": partition,
                "record_id": record.id if record is not None else record_id,
            },
        )
        return MutationResult.ok(record)

    @staticmethod
    def _rollback(view: Optional[LiveView], entry: Optional[OverlayEntry]) -> None:
        if view is not None and entry is not None:
            view.rollback(entry)

    @staticmethod
    def _preview(fields: Mapping[str, Any]) -> dict[str, Any]:
        return resolve_server_timestamps(fields, datetime.now(timezone.utc))

    def _prepare(self, partition: str, fields: Mapping[str, Any]) -> Mapping[str, Any]:
        identity_partitions = (self.partitions.students, self.partitions.admins, self.partitions.ceos)
        name = fields.get(self.partitions.name_field)
        if partition not in identity_partitions or not isinstance(name, str):
            return fields
        prepared = dict(fields)
        prepared[self.partitions.name_field] = normalize_display_name(name)
        return prepared
