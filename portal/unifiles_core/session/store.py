"""
Session store: the one piece of mutable shared state.

Holds the authenticated Session of a client context and keeps it in
step with its persisted snapshot.

Invariants:
    - At most one Session is active; login() replaces it wholesale
    - After a successful login()/logout() the snapshot and memory agree
    - A failed persistence write leaves the in-memory Session unchanged,
      except in force_logout(), which always clears memory
    - restore() never raises; a missing, corrupt or foreign snapshot
      yields None

How to change safely:
    - Persist first, then swap memory; never the other way round
    - Snapshot layout changes must bump SESSION_SCHEMA_VERSION
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..errors import SessionPersistenceError
from ..identity.models import Identity, Role, Session
from .persistence import SessionPersistence

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Current Session plus its persisted snapshot.

    Passed by reference to the access gate and to views; there is no
    process-wide singleton.

    Example:
        >>> sessions = SessionStore(MemorySessionPersistence())
        >>> sessions.login(identity, Role.STUDENT)
        >>> sessions.current().role
        <Role.STUDENT: 'Student'>
    """

    def __init__(
        self,
        persistence: SessionPersistence,
        key: str = "user",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.persistence = persistence
        self.key = key
        self._clock = clock or _utcnow
        self._current: Optional[Session] = None
        self._listeners: list[Callable[[Optional[Session]], None]] = []

    def current(self) -> Optional[Session]:
        return self._current

    def login(self, identity: Identity, role: Optional[Role] = None) -> Session:
        """Create a Session for an identity, replacing any existing one.

        Raises:
            ValueError: If role disagrees with the identity variant
            SessionPersistenceError: If the snapshot cannot be written
        """
        session = Session(
            identity=identity,
            role=role if role is not None else identity.role,
            created_at=self._clock(),
        )
        self.persistence.save(self.key, json.dumps(session.to_dict()))
        self._current = session
        logger.info(
            "Session started",
            extra={"role": session.role.value, "identity_ref": identity.external_id},
        )
        self._notify()
        return session

    def logout(self) -> None:
        """Destroy the current Session.

        Raises:
            SessionPersistenceError: If the snapshot cannot be removed
        """
        self.persistence.delete(self.key)
        previous, self._current = self._current, None
        if previous is not None:
            logger.info("Session ended", extra={"role": previous.role.value})
            self._notify()

    def force_logout(self) -> None:
        """End the Session even when its snapshot cannot be removed.

        Used on permission denials: memory is cleared regardless, and a
        failed delete is logged instead of raised.
        """
        try:
            self.persistence.delete(self.key)
        except SessionPersistenceError as e:
            logger.error(
                f"Forced logout could not remove session snapshot: {e}",
                extra={"key": self.key},
            )
        previous, self._current = self._current, None
        if previous is not None:
            logger.info("Session ended", extra={"role": previous.role.value, "forced": True})
            self._notify()

    def restore(self) -> Optional[Session]:
        """Load the persisted Session. Run once at process start."""
        try:
            raw = self.persistence.load(self.key)
        except SessionPersistenceError as e:
            logger.warning(f"Session snapshot unreadable: {e}")
            return None

        if raw is None:
            return None

        try:
            session = Session.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding invalid session snapshot: {e}")
            return None

        self._current = session
        logger.info("Session restored", extra={"role": session.role.value})
        self._notify()
        return session

    def on_change(self, listener: Callable[[Optional[Session]], None]) -> Callable[[], None]:
        """Register a listener for Session replacement.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._current)
            except Exception:
                logger.exception("Session listener raised")
