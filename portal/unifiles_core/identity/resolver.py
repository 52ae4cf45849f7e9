"""
Identity resolution across role partitions.

There is no unified identity table. A credential is resolved by probing
the identity partitions in a fixed priority order and taking the first
match, tagged with that partition's role.

Invariants:
    - Partition order is Student, Admin, CEO; the first match wins
    - No partition is queried after a match
    - An empty externalID or displayName is rejected before any query
    - NotFound and StoreUnavailable are distinct outcomes
    - A failed LoginEvent write never fails the resolution

How to change safely:
    - Adding a partition means adding a Role and an Identity variant
    - Keep user-facing messages generic (never name the partitions checked)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..config import PartitionConfig
from ..errors import (
    IdentityNotFoundError,
    InvalidCredentialError,
    PortalError,
    StoreUnavailableError,
)
from ..store.base import Eq, Query, RecordStore, StoreError
from .audit import LoginAuditLog
from .models import Credential, Identity, Role, identity_from_fields

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartitionSpec:
    """How one identity partition is probed.

    Attributes:
        role: Role tag of identities found here
        partition: Partition name
        id_field: Field compared verbatim with externalID
        name_field: Field holding the normalized display name
    """

    role: Role
    partition: str
    id_field: str = "studentID"
    name_field: str = "studentName"

    def query_for(self, credential: Credential) -> Query:
        return Query(
            self.partition,
            (
                Eq(self.id_field, credential.external_id),
                Eq(self.name_field, credential.normalized_name),
            ),
        )


def default_partitions(config: Optional[PartitionConfig] = None) -> tuple[PartitionSpec, ...]:
    """Partition probes in priority order."""
    config = config or PartitionConfig()
    return tuple(
        PartitionSpec(role, name, config.id_field, config.name_field)
        for role, name in (
            (Role.STUDENT, config.students),
            (Role.ADMIN, config.admins),
            (Role.CEO, config.ceos),
        )
    )


@dataclass
class ResolveResult:
    """Outcome of a resolution.

    Attributes:
        success: Whether an identity was found
        identity: The resolved identity
        error: InvalidCredentialError, IdentityNotFoundError or
            StoreUnavailableError when not successful. Portal.login also
            reports SessionPersistenceError here
    """

    success: bool
    identity: Optional[Identity] = None
    error: Optional[PortalError] = None

    @property
    def role(self) -> Optional[Role]:
        return self.identity.role if self.identity is not None else None


class IdentityResolver:
    """Resolves credentials against ordered identity partitions.

    Example:
        >>> resolver = IdentityResolver(store, audit=LoginAuditLog(store))
        >>> result = await resolver.resolve(Credential("A1B2C3D4", "Jane Doe"))
        >>> result.identity.course
        'CompSci'
    """

    def __init__(
        self,
        store: RecordStore,
        partitions: Optional[Sequence[PartitionSpec]] = None,
        audit: Optional[LoginAuditLog] = None,
    ) -> None:
        self.store = store
        self.partitions = tuple(partitions) if partitions is not None else default_partitions()
        self.audit = audit

    async def resolve(self, credential: Credential) -> ResolveResult:
        """Resolve a credential. Never raises for expected failures."""
        try:
            identity = await self.resolve_or_raise(credential)
        except (InvalidCredentialError, IdentityNotFoundError, StoreUnavailableError) as e:
            return ResolveResult(success=False, error=e)
        return ResolveResult(success=True, identity=identity)

    async def resolve_or_raise(self, credential: Credential) -> Identity:
        """Resolve a credential.

        Raises:
            InvalidCredentialError: If either credential part is empty
            IdentityNotFoundError: If no partition matched
            StoreUnavailableError: If a partition query failed
        """
        self._validate(credential)

        for partition in self.partitions:
            try:
                records = await self.store.get(partition.query_for(credential))
            except StoreError as e:
                logger.error(
                    f"Login lookup failed: {e}",
                    extra={"partition": partition.partition},
                )
                raise StoreUnavailableError(
                    f"Identity lookup failed on {partition.partition}: {e}",
                    operation="resolve",
                ) from e

            if not records:
                continue

            if len(records) > 1:
                logger.warning(
                    "Credential matched several records in one partition; using the first",
                    extra={"partition": partition.partition, "matches": len(records)},
                )

            identity = identity_from_fields(
                partition.role, records[0].fields, partition.id_field, partition.name_field
            )
            logger.info(
                "Identity resolved",
                extra={"role": partition.role.value, "identity_ref": identity.external_id},
            )
            if self.audit is not None:
                await self.audit.record(identity)
            return identity

        logger.info("No identity matched credential")
        raise IdentityNotFoundError()

    @staticmethod
    def _validate(credential: Credential) -> None:
        if not credential.external_id:
            raise InvalidCredentialError("externalID is empty", field_name="externalID")
        if not credential.normalized_name:
            raise InvalidCredentialError("displayName is empty", field_name="displayName")
