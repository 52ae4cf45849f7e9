"""
Error types for the UniFiles core.

This module defines the error taxonomy surfaced by the core:
- PortalError: Base exception
- InvalidCredentialError: Malformed credential, rejected before any store call
- IdentityNotFoundError: No partition matched the credential
- StoreUnavailableError: Transport or backend failure
- PermissionDeniedError: Role mismatch at the access gate
- SubscriptionError: Live query transport failure
- SessionPersistenceError: Session snapshot could not be written

Invariants:
    - All errors inherit from PortalError
    - user_message never reveals which partitions were checked
    - NOT_FOUND and STORE_UNAVAILABLE are never conflated
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base exception for all core errors.

    Attributes:
        message: Error message (for logs)
        code: Error code for programmatic handling
        details: Additional error context
        user_message: Generic message safe to show to the user
    """

    user_message = "An error occurred. Please try again."

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "PORTAL_ERROR"
        self.details = details or {}


class InvalidCredentialError(PortalError):
    """Credential is malformed.

    Raised when:
    - externalID is empty
    - displayName is empty after trimming
    """

    user_message = "Please enter both Student ID and Student Name."

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_CREDENTIAL",
            details={"field": field_name},
        )
        self.field_name = field_name


class IdentityNotFoundError(PortalError):
    """No identity partition matched the credential."""

    user_message = "Invalid Student ID or Name. Please try again."

    def __init__(self, message: str = "No matching identity") -> None:
        super().__init__(message, code="NOT_FOUND")


class StoreUnavailableError(PortalError):
    """The record store could not serve the request.

    Raised when:
    - The store is unreachable or not connected
    - A query or write times out
    - The backend rejects the request
    """

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="STORE_UNAVAILABLE",
            details={"operation": operation},
        )
        self.operation = operation


class RecordMissingError(PortalError):
    """A mutation targeted a record id that does not exist."""

    user_message = "The record no longer exists."

    def __init__(self, partition: str, record_id: str) -> None:
        super().__init__(
            f"Record {record_id} not found in {partition}",
            code="RECORD_NOT_FOUND",
            details={"partition": partition, "record_id": record_id},
        )
        self.partition = partition
        self.record_id = record_id


class PermissionDeniedError(PortalError):
    """Session role is not allowed on the requested target.

    The access gate logs the session out before this is surfaced.
    """

    user_message = "You do not have permission to access this page."

    def __init__(
        self,
        message: str,
        role: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="PERMISSION_DENIED",
            details={"role": role, "path": path},
        )
        self.role = role
        self.path = path


class SubscriptionError(PortalError):
    """Live query failed. Only the affected view is notified."""

    user_message = "Failed to load live data."

    def __init__(self, message: str, handle_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="SUBSCRIPTION_ERROR",
            details={"handle_id": handle_id},
        )
        self.handle_id = handle_id


class SessionPersistenceError(PortalError):
    """Session snapshot could not be written or removed."""

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="SESSION_PERSISTENCE",
            details={"key": key},
        )
        self.key = key
