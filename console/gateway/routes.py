"""
API routes for the UniFiles gateway.

Exposes login, logout, session and navigation on top of the core, plus
record endpoints gated for Admin and CEO sessions.

Error mapping:
    - Invalid credential  -> 400
    - No matching identity -> 401 (generic message)
    - Permission denied   -> 403 (the session has been cleared)
    - Record not found    -> 404
    - Store unavailable   -> 503
    - Session not saved   -> 503
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, Field

from portal.unifiles_core.errors import (
    IdentityNotFoundError,
    InvalidCredentialError,
    PermissionDeniedError,
    PortalError,
    RecordMissingError,
)
from portal.unifiles_core.gate.access import DenyReason, DenyRedirect, landing_path
from portal.unifiles_core.identity.models import Role, Session
from portal.unifiles_core.main import Portal
from portal.unifiles_core.store.base import OrderBy, Query, Record, StoreError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["UniFiles Gateway"])

STAFF_ROLES = frozenset({Role.ADMIN, Role.CEO})


# --- Request/Response Models ---


class LoginRequest(BaseModel):
    """Login credential as typed on the login form."""

    student_id: str = Field("", alias="studentID", description="Institution-issued id")
    student_name: str = Field("", alias="studentName", description="Display name")


class NotificationModel(BaseModel):
    level: str
    message: str


class SessionResponse(BaseModel):
    """Current session snapshot, or null when logged out."""

    session: dict[str, Any] | None = None
    notifications: list[NotificationModel] = []


class LoginResponse(BaseModel):
    role: str
    landing: str
    session: dict[str, Any]
    notifications: list[NotificationModel] = []


class NavigateResponse(BaseModel):
    requested: str
    path: str
    allowed: bool
    reason: str | None = None
    notifications: list[NotificationModel] = []


class RecordWriteRequest(BaseModel):
    fields: dict[str, Any] = Field(..., description="Record fields")


class RecordResponse(BaseModel):
    id: str
    partition: str
    fields: dict[str, Any]


class RecordListResponse(BaseModel):
    items: list[RecordResponse]
    total: int


# --- Dependencies ---


def get_portal(request: Request) -> Portal:
    """Get the core from app state."""
    return request.app.state.portal


def require_staff(portal: Portal = Depends(get_portal)) -> Session:
    """Gate record endpoints for Admin and CEO sessions."""
    session = portal.sessions.current()
    decision = portal.gate.authorize(session, STAFF_ROLES)
    if isinstance(decision, DenyRedirect):
        if decision.reason is DenyReason.ANONYMOUS:
            raise HTTPException(status_code=401, detail="Please log in.")
        raise HTTPException(status_code=403, detail=PermissionDeniedError.user_message)
    if session is None:
        raise HTTPException(status_code=401, detail="Please log in.")
    return session


def _notifications(portal: Portal) -> list[NotificationModel]:
    drain = getattr(portal.notifier, "drain", None)
    if drain is None:
        return []
    return [NotificationModel(level=n.level, message=n.message) for n in drain()]


def _status_for(error: PortalError) -> int:
    if isinstance(error, InvalidCredentialError):
        return 400
    if isinstance(error, IdentityNotFoundError):
        return 401
    if isinstance(error, PermissionDeniedError):
        return 403
    if isinstance(error, RecordMissingError):
        return 404
    return 503


def _http_error(error: PortalError | None) -> HTTPException:
    if error is None:
        return HTTPException(status_code=503, detail=PortalError.user_message)
    return HTTPException(status_code=_status_for(error), detail=error.user_message)


def _record_response(record: Record) -> RecordResponse:
    return RecordResponse(id=record.id, partition=record.partition, fields=dict(record.fields))


def _check_writable(portal: Portal, partition: str) -> None:
    if partition == portal.config.partitions.login_logs:
        raise HTTPException(status_code=400, detail="Login events are append-only")


# --- Session Endpoints ---


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, portal: Portal = Depends(get_portal)):
    """Resolve a credential and start a session."""
    result = await portal.login(body.student_id, body.student_name)
    session = portal.sessions.current()
    if not result.success or session is None:
        _notifications(portal)
        raise _http_error(result.error)

    return LoginResponse(
        role=session.role.value,
        landing=landing_path(session.role),
        session=session.to_dict(),
        notifications=_notifications(portal),
    )


@router.post("/logout", response_model=SessionResponse)
async def logout(portal: Portal = Depends(get_portal)):
    portal.logout()
    return SessionResponse(session=None, notifications=_notifications(portal))


@router.get("/session", response_model=SessionResponse)
async def current_session(portal: Portal = Depends(get_portal)):
    session = portal.sessions.current()
    return SessionResponse(
        session=session.to_dict() if session is not None else None,
        notifications=_notifications(portal),
    )


@router.get("/navigate", response_model=NavigateResponse)
async def navigate(path: str = "/", portal: Portal = Depends(get_portal)):
    """Gate a navigation. Role mismatches end the session."""
    result = portal.gate.navigate(path)
    reason = None
    if isinstance(result.decision, DenyRedirect):
        reason = result.decision.reason.value
    return NavigateResponse(
        requested=result.requested,
        path=result.path,
        allowed=result.allowed,
        reason=reason,
        notifications=_notifications(portal),
    )


# --- Record Endpoints ---


@router.get("/records/{partition}", response_model=RecordListResponse)
async def list_records(
    partition: str,
    order_by: str | None = None,
    descending: bool = False,
    portal: Portal = Depends(get_portal),
    session: Session = Depends(require_staff),
):
    """Current contents of a partition."""
    query = Query(partition, order_by=OrderBy(order_by, descending) if order_by else None)
    try:
        records = await portal.store.get(query)
    except StoreError as e:
        logger.error(f"Error listing {partition}: {e}")
        raise HTTPException(status_code=503, detail=PortalError.user_message)

    return RecordListResponse(items=[_record_response(r) for r in records], total=len(records))


@router.post("/records/{partition}", response_model=RecordResponse, status_code=201)
async def create_record(
    partition: str,
    body: RecordWriteRequest,
    portal: Portal = Depends(get_portal),
    session: Session = Depends(require_staff),
):
    _check_writable(portal, partition)
    result = await portal.mutator.create(partition, body.fields)
    if not result.success or result.record is None:
        raise _http_error(result.error)
    return _record_response(result.record)


@router.put("/records/{partition}/{record_id}", response_model=RecordResponse)
async def update_record(
    partition: str,
    record_id: str,
    body: RecordWriteRequest,
    portal: Portal = Depends(get_portal),
    session: Session = Depends(require_staff),
):
    """Replace the supplied fields of a record. Last write wins."""
    _check_writable(portal, partition)
    result = await portal.mutator.update(partition, record_id, body.fields)
    if not result.success or result.record is None:
        raise _http_error(result.error)
    return _record_response(result.record)


@router.delete("/records/{partition}/{record_id}", status_code=204)
async def delete_record(
    partition: str,
    record_id: str,
    portal: Portal = Depends(get_portal),
    session: Session = Depends(require_staff),
):
    """Delete a record. The caller has already confirmed with the user."""
    _check_writable(portal, partition)
    result = await portal.mutator.delete(partition, record_id)
    if not result.success:
        raise _http_error(result.error)
    return Response(status_code=204)
