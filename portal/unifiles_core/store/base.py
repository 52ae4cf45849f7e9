"""
Base protocol and types for the record store client.

This module defines the RecordStore protocol every backend implements,
along with the query, record and snapshot types shared by the core.

Invariants:
    - A Query is immutable and hashable; a changed filter is a new Query
    - A SnapshotEvent carries the full result set, never a delta
    - Snapshot versions come from one store-wide logical clock
    - Pushes are delivered asynchronously, never inline with the write

How to change safely:
    - Protocol changes require updating every backend
    - New predicate types must implement matches() on plain field mappings
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TYPE_CHECKING,
    runtime_checkable,
)
import logging

if TYPE_CHECKING:
    from ..config import StoreConfig

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for record store operations."""
    pass


class StoreConnectionError(StoreError):
    """Store is unreachable or not connected."""
    pass


class StoreTimeoutError(StoreError):
    """Store operation timed out."""
    pass


class RecordNotFoundError(StoreError):
    """Update or delete targeted a record that does not exist."""

    def __init__(self, partition: str, record_id: str) -> None:
        self.partition = partition
        self.record_id = record_id
        super().__init__(f"Record not found: {partition}/{record_id}")


class _ServerTimestamp:
    """Sentinel replaced by the store clock at write time."""

    _instance: Optional[_ServerTimestamp] = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def resolve_server_timestamps(fields: Mapping[str, Any], now: datetime) -> dict[str, Any]:
    """Replace SERVER_TIMESTAMP sentinels with the store time."""
    return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in fields.items()}


@dataclass(frozen=True)
class Eq:
    """Equality predicate: fields[field] == value."""

    field: str
    value: Any

    def matches(self, fields: Mapping[str, Any]) -> bool:
        return self.field in fields and fields[self.field] == self.value


@dataclass(frozen=True)
class ArrayContains:
    """Membership predicate: value in fields[field] (a list)."""

    field: str
    value: Any

    def matches(self, fields: Mapping[str, Any]) -> bool:
        items = fields.get(self.field)
        return isinstance(items, (list, tuple)) and self.value in items


@dataclass(frozen=True)
class Gte:
    """Range predicate: fields[field] >= value."""

    field: str
    value: Any

    def matches(self, fields: Mapping[str, Any]) -> bool:
        current = fields.get(self.field)
        if current is None:
            return False
        try:
            return current >= self.value
        except TypeError:
            return False


Predicate = Eq | ArrayContains | Gte


@dataclass(frozen=True)
class OrderBy:
    """Result ordering. Records missing the field sort last."""

    field: str
    descending: bool = False

    def sort(self, records: Sequence[Record]) -> list[Record]:
        present = [r for r in records if r.fields.get(self.field) is not None]
        missing = [r for r in records if r.fields.get(self.field) is None]
        present.sort(key=lambda r: r.fields[self.field], reverse=self.descending)
        return present + missing


@dataclass(frozen=True)
class Query:
    """A filtered view over one partition.

    Attributes:
        partition: Partition (collection) name
        predicates: Conjunction of predicates
        order_by: Optional result ordering

    Example:
        >>> Query("PastQuestions", (ArrayContains("Courses", "CompSci"),))
    """

    partition: str
    predicates: tuple[Predicate, ...] = ()
    order_by: Optional[OrderBy] = None

    def matches(self, fields: Mapping[str, Any]) -> bool:
        return all(p.matches(fields) for p in self.predicates)

    def apply(self, records: Sequence[Record]) -> list[Record]:
        """Filter and order records belonging to this query's partition."""
        result = [
            r for r in records
            if r.partition == self.partition and self.matches(r.fields)
        ]
        if self.order_by is not None:
            result = self.order_by.sort(result)
        return result

    def __str__(self) -> str:
        preds = ",".join(f"{type(p).__name__}({p.field})" for p in self.predicates)
        return f"{self.partition}[{preds}]"


@dataclass(frozen=True)
class Record:
    """A cached, read-only copy of a stored record.

    Attributes:
        id: Opaque record id assigned by the store
        fields: Field values
        partition: Partition the record belongs to
    """

    id: str
    fields: Mapping[str, Any]
    partition: str

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to {id, **fields} like the screens consume it."""
        return {"id": self.id, **dict(self.fields)}


@dataclass(frozen=True)
class SnapshotEvent:
    """Full result set of a live query at one logical version.

    Attributes:
        query: The query this snapshot answers
        records: Complete current result set
        version: Store logical version when the snapshot was computed
    """

    query: Query
    records: tuple[Record, ...]
    version: int

    def __len__(self) -> int:
        return len(self.records)


SnapshotCallback = Callable[[SnapshotEvent], None]
ErrorCallback = Callable[[StoreError], None]


@dataclass
class StoreSubscription:
    """Server-side registration of a live query.

    Attributes:
        subscription_id: Store-assigned id
        query: The live query
        canceller: Coroutine factory releasing server-side resources
    """

    subscription_id: str
    query: Query
    canceller: Callable[[], Awaitable[None]] = field(repr=False)
    cancelled: bool = False

    async def cancel(self) -> None:
        """Release server-side resources. Safe to call twice."""
        if self.cancelled:
            return
        self.cancelled = True
        await self.canceller()


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for record store backends.

    Ordering contract:
        - Writes are applied in call order
        - Each write bumps the store version by one
        - Snapshots are pushed for every live query on the written partition

    Example:
        >>> store = InMemoryRecordStore()
        >>> await store.connect()
        >>> rec = await store.create("Registration", {"studentID": "A1"})
        >>> await store.get(Query("Registration", (Eq("studentID", "A1"),)))
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the store.

        Raises:
            StoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store and drop all live queries."""
        ...

    @abstractmethod
    async def get(self, query: Query) -> list[Record]:
        """Run a point query.

        Raises:
            StoreConnectionError: If not connected
            StoreError: For other failures
        """
        ...

    @abstractmethod
    async def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> StoreSubscription:
        """Register a live query.

        The initial snapshot is pushed after the handshake completes.

        Raises:
            StoreConnectionError: If not connected
        """
        ...

    @abstractmethod
    async def create(self, partition: str, fields: Mapping[str, Any]) -> Record:
        """Create a record with a store-assigned id."""
        ...

    @abstractmethod
    async def update(
        self, partition: str, record_id: str, fields: Mapping[str, Any]
    ) -> Record:
        """Replace the supplied fields of a record; other fields are kept.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        ...

    @abstractmethod
    async def delete(self, partition: str, record_id: str) -> None:
        """Delete a record.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected."""
        ...

    @property
    @abstractmethod
    def version(self) -> int:
        """Current logical version."""
        ...


def create_record_store(config: "StoreConfig") -> RecordStore:
    """Factory function to create a record store from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryRecordStore
    from .sqlite import SqliteRecordStore

    if config.backend == StoreBackend.MEMORY:
        return InMemoryRecordStore()
    elif config.backend == StoreBackend.SQLITE:
        return SqliteRecordStore(
            config.data_dir,
            db_name=config.db_name,
            busy_timeout_ms=config.busy_timeout_ms,
        )
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
