"""
UniFiles Core - Main entry point.

This module wires the core components for one client context:
- Record store (memory or SQLite)
- Session store with its persisted snapshot
- Identity resolver with login auditing
- Access gate, sync engine and record mutator

and serves the HTTP gateway with uvicorn.

Usage:
    python -m portal.unifiles_core.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The store is connected before the session is restored
    - restore() runs exactly once per start
    - stop() closes live queries before the store

How to change safely:
    - New components are built in Portal.__init__ and released in stop()
    - Keep startup failures fatal; a half-started portal is not useful
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import json_log_formatter
import uvicorn

from .config import PortalConfig
from .errors import SessionPersistenceError
from .gate.access import AccessGate
from .identity.audit import LoginAuditLog
from .identity.models import Credential, Session
from .identity.resolver import IdentityResolver, ResolveResult, default_partitions
from .mutator import RecordMutator
from .notify import LoggingNotifier, Notifier
from .session.persistence import SessionPersistence, create_session_persistence
from .session.store import SessionStore
from .store.base import RecordStore, create_record_store
from .sync.engine import SyncEngine

logger = logging.getLogger(__name__)

LOGIN_SUCCESS_MESSAGES = {
    "Student": "Student login successful!",
    "Admin": "Admin login successful!",
    "CEO": "CEO login successful!",
}


def setup_logging(config: PortalConfig) -> None:
    """Configure the root logger from configuration."""
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Portal:
    """Core components of one client context.

    Attributes:
        config: Portal configuration
        store: Record store client
        sessions: Session store
        resolver: Identity resolver
        gate: Access gate
        engine: Sync engine
        mutator: Record mutator

    Example:
        >>> portal = Portal(PortalConfig())
        >>> await portal.start()
        >>> result = await portal.login("A1B2C3D4", "Jane Doe")
        >>> portal.gate.navigate("/student-page").allowed
        True
        >>> await portal.stop()
    """

    def __init__(
        self,
        config: Optional[PortalConfig] = None,
        store: Optional[RecordStore] = None,
        persistence: Optional[SessionPersistence] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.config = config or PortalConfig.from_env()
        self.store = store or create_record_store(self.config.store)
        self.notifier = notifier or LoggingNotifier()
        self.sessions = SessionStore(
            persistence or create_session_persistence(self.config.session),
            key=self.config.session.key,
        )
        self.resolver = IdentityResolver(
            self.store,
            partitions=default_partitions(self.config.partitions),
            audit=LoginAuditLog(self.store, self.config.partitions.login_logs),
        )
        self.gate = AccessGate(self.sessions, self.notifier)
        self.engine = SyncEngine(self.store)
        self.mutator = RecordMutator(self.store, self.config.partitions)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> Optional[Session]:
        """Connect the store and restore the persisted Session.

        Returns:
            The restored Session, if any
        """
        if self._running:
            logger.warning("Portal already running")
            return self.sessions.current()

        logger.info("Starting UniFiles portal")
        self.config.log_config()

        await self.store.connect()
        session = self.sessions.restore()
        self._running = True
        logger.info(
            "UniFiles portal started",
            extra={"restored_role": session.role.value if session else None},
        )
        return session

    async def stop(self) -> None:
        if not self._running:
            return
        logger.info("Stopping UniFiles portal")
        await self.engine.close()
        await self.store.close()
        self._running = False
        logger.info("UniFiles portal stopped")

    async def login(self, external_id: str, display_name: str) -> ResolveResult:
        """Resolve a credential and start a Session on success.

        Failures are reported through the result and the notifier,
        including a Session snapshot that cannot be written.
        """
        result = await self.resolver.resolve(Credential(external_id, display_name))
        identity = result.identity
        if not result.success or identity is None:
            if result.error is not None:
                self.notifier.error(result.error.user_message)
            return result

        try:
            self.sessions.login(identity)
        except SessionPersistenceError as e:
            logger.error(
                f"Login resolved but session could not be saved: {e}",
                extra={"role": identity.role.value},
            )
            self.notifier.error(e.user_message)
            return ResolveResult(success=False, error=e)

        self.notifier.success(LOGIN_SUCCESS_MESSAGES[identity.role.value])
        return result

    def logout(self) -> None:
        self.sessions.logout()


def main() -> None:
    """Main entry point."""
    from console.gateway.config import Settings

    try:
        config = PortalConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    settings = Settings()

    uvicorn.run(
        "console.gateway.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
