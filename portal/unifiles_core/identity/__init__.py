"""
Identity module for UniFiles - credentials, identities and resolution.

This module handles:
- The closed Identity sum (Student, Admin, CEO)
- Ordered probing of identity partitions
- Best-effort login auditing
"""

from .audit import LoginAuditLog
from .models import (
    AdminIdentity,
    CeoIdentity,
    Credential,
    Identity,
    LoginEvent,
    Role,
    Session,
    StudentIdentity,
    identity_from_fields,
    normalize_display_name,
)
from .resolver import IdentityResolver, PartitionSpec, ResolveResult, default_partitions

__all__ = [
    "Role",
    "Credential",
    "Identity",
    "StudentIdentity",
    "AdminIdentity",
    "CeoIdentity",
    "Session",
    "LoginEvent",
    "identity_from_fields",
    "normalize_display_name",
    "IdentityResolver",
    "PartitionSpec",
    "ResolveResult",
    "default_partitions",
    "LoginAuditLog",
]
