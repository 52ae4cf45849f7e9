"""
Record store client for UniFiles.

This module provides the consumed interface to the remote document
store, with two backends:
- SQLite (durable, single file)
- In-memory (for testing and local development)

Invariants:
    - Live queries deliver full snapshots tagged with a logical version
    - update() replaces only the supplied fields
    - Failed writes leave no partial record behind

How to change safely:
    - New backends must implement the RecordStore protocol
    - Share live query fan-out through LiveQueryHub
"""

from .base import (
    SERVER_TIMESTAMP,
    ArrayContains,
    Eq,
    Gte,
    OrderBy,
    Query,
    Record,
    RecordNotFoundError,
    RecordStore,
    SnapshotEvent,
    StoreConnectionError,
    StoreError,
    StoreSubscription,
    StoreTimeoutError,
    create_record_store,
)
from .memory import InMemoryRecordStore
from .sqlite import SqliteRecordStore

__all__ = [
    # Protocol and types
    "RecordStore",
    "Record",
    "Query",
    "Eq",
    "ArrayContains",
    "Gte",
    "OrderBy",
    "SnapshotEvent",
    "StoreSubscription",
    "SERVER_TIMESTAMP",
    # Errors
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "RecordNotFoundError",
    # Factory
    "create_record_store",
    # Implementations
    "InMemoryRecordStore",
    "SqliteRecordStore",
]
