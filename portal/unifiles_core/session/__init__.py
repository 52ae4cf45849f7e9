"""
Session module for UniFiles - current session and its persistence.
"""

from .persistence import (
    MemorySessionPersistence,
    SessionPersistence,
    SqliteSessionPersistence,
    create_session_persistence,
)
from .store import SessionStore

__all__ = [
    "SessionStore",
    "SessionPersistence",
    "MemorySessionPersistence",
    "SqliteSessionPersistence",
    "create_session_persistence",
]
