"""
Login audit log.

Writes one append-only LoginEvent record per successful login. Writes
are best-effort: a failure is logged and swallowed because login
success must not depend on audit durability.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..store.base import SERVER_TIMESTAMP, Record, RecordStore, StoreError
from .models import Identity, LoginEvent

logger = logging.getLogger(__name__)


class LoginAuditLog:
    """Appends LoginEvents to the login log partition.

    The core never updates or deletes these records.
    """

    def __init__(self, store: RecordStore, partition: str = "LoginLogs") -> None:
        self.store = store
        self.partition = partition

    async def record(self, identity: Identity) -> Optional[Record]:
        """Write a LoginEvent for an identity.

        Returns:
            The stored record, or None if the write failed
        """
        event = LoginEvent(role=identity.role, identity=identity)
        fields = event.to_fields()
        fields["loggedInAt"] = SERVER_TIMESTAMP

        try:
            record = await self.store.create(self.partition, fields)
        except Exception as e:
            logger.error(
                f"Error logging login: {e}",
                exc_info=not isinstance(e, StoreError),
                extra={"role": event.role.value, "identity_ref": event.identity_ref},
            )
            return None

        logger.debug(
            "Login event recorded",
            extra={"role": event.role.value, "record_id": record.id},
        )
        return record
