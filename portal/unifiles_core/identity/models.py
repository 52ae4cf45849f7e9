"""
Identity, credential and session types.

Identity is a closed sum over three variants, one per identity
partition. Callers dispatch on Role (or isinstance) and must handle all
three cases.

Invariants:
    - Identity and Session values are frozen; they are replaced, not mutated
    - displayName is normalized (trimmed, case-folded) before comparison
    - externalID is compared verbatim
    - The stored snapshot layout keeps the partitions' field names
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

SESSION_SCHEMA_VERSION = 1


class Role(str, Enum):
    """Principal classes. Value is the tag persisted with the session."""

    STUDENT = "Student"
    ADMIN = "Admin"
    CEO = "CEO"

    @classmethod
    def parse(cls, value: str) -> Role:
        """Parse a role tag.

        Raises:
            ValueError: If the tag is unknown
        """
        for role in cls:
            if role.value == value:
                return role
        raise ValueError(f"Invalid role: {value}")


def normalize_display_name(name: str) -> str:
    """Trim and case-fold a display name for comparison."""
    return name.strip().casefold()


@dataclass(frozen=True)
class Credential:
    """A login attempt.

    Attributes:
        external_id: Institution-issued id, compared verbatim
        display_name: Name as typed by the user
    """

    external_id: str
    display_name: str

    @property
    def normalized_name(self) -> str:
        return normalize_display_name(self.display_name)


@dataclass(frozen=True)
class StudentIdentity:
    """Identity resolved from the student partition."""

    role: ClassVar[Role] = Role.STUDENT

    external_id: str
    display_name: str
    course: str | None = None
    institution: str | None = None
    photo_ref: str | None = None

    def to_fields(self) -> dict[str, Any]:
        return {
            "studentID": self.external_id,
            "studentName": self.display_name,
            "course": self.course,
            "institution": self.institution,
            "userPhotoUrl": self.photo_ref,
        }


@dataclass(frozen=True)
class AdminIdentity:
    """Identity resolved from the admin partition."""

    role: ClassVar[Role] = Role.ADMIN

    external_id: str
    display_name: str

    def to_fields(self) -> dict[str, Any]:
        return {"studentID": self.external_id, "studentName": self.display_name}


@dataclass(frozen=True)
class CeoIdentity:
    """Identity resolved from the CEO partition."""

    role: ClassVar[Role] = Role.CEO

    external_id: str
    display_name: str

    def to_fields(self) -> dict[str, Any]:
        return {"studentID": self.external_id, "studentName": self.display_name}


Identity = Union[StudentIdentity, AdminIdentity, CeoIdentity]


def identity_from_fields(
    role: Role,
    fields: Mapping[str, Any],
    id_field: str = "studentID",
    name_field: str = "studentName",
) -> Identity:
    """Build the identity variant for a role from stored record fields.

    Raises:
        ValueError: If the id or name field is missing or empty
    """
    external_id = fields.get(id_field)
    display_name = fields.get(name_field)
    if not external_id or not display_name:
        raise ValueError(f"Record is missing {id_field} or {name_field}")

    if role is Role.STUDENT:
        return StudentIdentity(
            external_id=str(external_id),
            display_name=str(display_name),
            course=fields.get("course"),
            institution=fields.get("institution"),
            photo_ref=fields.get("userPhotoUrl"),
        )
    if role is Role.ADMIN:
        return AdminIdentity(external_id=str(external_id), display_name=str(display_name))
    if role is Role.CEO:
        return CeoIdentity(external_id=str(external_id), display_name=str(display_name))
    raise ValueError(f"Unhandled role: {role}")


@dataclass(frozen=True)
class Session:
    """The authenticated identity of one client context.

    Attributes:
        identity: Resolved identity
        role: Role tag computed at login
        created_at: When the session was created
    """

    identity: Identity
    role: Role
    created_at: datetime

    def __post_init__(self) -> None:
        if self.identity.role is not self.role:
            raise ValueError(
                f"Role {self.role.value} does not match identity {type(self.identity).__name__}"
            )

    @property
    def course(self) -> str | None:
        """Course filter for role-scoped views (students only)."""
        if isinstance(self.identity, StudentIdentity):
            return self.identity.course
        return None

    def to_dict(self) -> dict[str, Any]:
        """Flat snapshot: identity fields plus role, createdAt, schemaVersion."""
        data = self.identity.to_fields()
        data["role"] = self.role.value
        data["createdAt"] = self.created_at.isoformat()
        data["schemaVersion"] = SESSION_SCHEMA_VERSION
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Session:
        """Rebuild a session from its snapshot.

        Raises:
            ValueError: If the snapshot is malformed or from another schema
            KeyError: If a required key is absent
        """
        if data.get("schemaVersion") != SESSION_SCHEMA_VERSION:
            raise ValueError(f"Unsupported session schema: {data.get('schemaVersion')}")
        role = Role.parse(data["role"])
        return cls(
            identity=identity_from_fields(role, data),
            role=role,
            created_at=datetime.fromisoformat(data["createdAt"]),
        )


@dataclass(frozen=True)
class LoginEvent:
    """Append-only audit record of a successful login.

    Attributes:
        role: Role the identity logged in as
        identity: The identity that logged in
    """

    role: Role
    identity: Identity

    @property
    def identity_ref(self) -> str:
        return self.identity.external_id

    def to_fields(self, placeholder: str = "—") -> dict[str, Any]:
        """Role-specific audit fields (without the timestamp)."""
        identity = self.identity
        fields: dict[str, Any] = {"role": self.role.value}
        if isinstance(identity, StudentIdentity):
            fields.update(
                studentID=identity.external_id,
                studentName=identity.display_name,
                institution=identity.institution or placeholder,
                course=identity.course or placeholder,
            )
        elif isinstance(identity, AdminIdentity):
            fields.update(adminID=identity.external_id, adminName=identity.display_name)
        elif isinstance(identity, CeoIdentity):
            fields.update(ceoID=identity.external_id, ceoName=identity.display_name)
        return fields
