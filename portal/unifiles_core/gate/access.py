"""
Access gate for navigation targets.

Decides, on every navigation, whether the current Session may enter a
route. The decision itself is a pure function; the gate applies it and
enforces the side effects of a role mismatch.

Rules, evaluated in order:
    1. No session           -> redirect to the login entry, no side effects
    2. Role not in required -> redirect, force logout, notify
    3. Otherwise            -> allow

Invariants:
    - Decisions are never cached; the Session is read on every call
    - A role-mismatched Session is destroyed, not merely blocked
    - Denials are never silent: a redirect is always returned

How to change safely:
    - New routes go in ROUTES with their required roles
    - Keep unknown paths resolving to the anonymous login entry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Mapping, Optional, Union

from ..errors import PermissionDeniedError
from ..identity.models import Role, Session
from ..notify import LoggingNotifier, Notifier
from ..session.store import SessionStore

logger = logging.getLogger(__name__)

LOGIN_PATH = "/"


@dataclass(frozen=True)
class Route:
    """A navigation target.

    Attributes:
        path: Route path
        required_roles: Roles allowed in; empty means any session
        public: Reachable without a session
    """

    path: str
    required_roles: frozenset[Role] = frozenset()
    public: bool = False


def _route(path: str, *roles: Role) -> Route:
    return Route(path=path, required_roles=frozenset(roles))


ROUTES: Mapping[str, Route] = {
    route.path: route
    for route in (
        Route(path=LOGIN_PATH, public=True),
        _route("/register", Role.STUDENT, Role.CEO),
        _route("/admin", Role.ADMIN, Role.CEO),
        _route("/DataFormsPage", Role.ADMIN, Role.CEO),
        _route("/student-page", Role.STUDENT, Role.CEO),
        _route("/dashboard", Role.CEO),
        _route("/AdminSignup", Role.ADMIN, Role.CEO),
    )
}

LANDING_PATHS: Mapping[Role, str] = {
    Role.STUDENT: "/student-page",
    Role.ADMIN: "/admin",
    Role.CEO: "/dashboard",
}


def landing_path(role: Role) -> str:
    """Where a freshly logged-in role is sent."""
    return LANDING_PATHS[role]


def route_for(path: str) -> Route:
    """Look up a route; unknown paths resolve to the login entry."""
    return ROUTES.get(path, ROUTES[LOGIN_PATH])


class DenyReason(Enum):
    ANONYMOUS = "anonymous"
    ROLE_MISMATCH = "role_mismatch"


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class DenyRedirect:
    """Denied; navigate to `to` instead.

    Attributes:
        to: Redirect target
        reason: Why access was denied
        force_logout: Whether the Session must be destroyed
    """

    to: str
    reason: DenyReason
    force_logout: bool = False


Decision = Union[Allow, DenyRedirect]


def evaluate(session: Optional[Session], required_roles: AbstractSet[Role]) -> Decision:
    """Pure access decision. Performs no side effects."""
    if session is None:
        return DenyRedirect(to=LOGIN_PATH, reason=DenyReason.ANONYMOUS)
    if required_roles and session.role not in required_roles:
        return DenyRedirect(to=LOGIN_PATH, reason=DenyReason.ROLE_MISMATCH, force_logout=True)
    return Allow()


@dataclass(frozen=True)
class NavigationResult:
    """Outcome of a navigation.

    Attributes:
        requested: Path the caller asked for
        path: Path actually rendered
        decision: Access decision that produced it
    """

    requested: str
    path: str
    decision: Decision

    @property
    def allowed(self) -> bool:
        return isinstance(self.decision, Allow)


class AccessGate:
    """Applies access decisions against a SessionStore.

    Example:
        >>> gate = AccessGate(sessions, notifier)
        >>> gate.navigate("/dashboard").path
        '/'
    """

    PERMISSION_DENIED_MESSAGE = PermissionDeniedError.user_message

    def __init__(
        self,
        sessions: SessionStore,
        notifier: Optional[Notifier] = None,
        routes: Optional[Mapping[str, Route]] = None,
    ) -> None:
        self.sessions = sessions
        self.notifier = notifier or LoggingNotifier()
        self.routes = routes if routes is not None else ROUTES

    def authorize(
        self,
        session: Optional[Session],
        required_roles: AbstractSet[Role],
    ) -> Decision:
        """Decide and enforce. A role mismatch logs the session out."""
        decision = evaluate(session, required_roles)
        if isinstance(decision, DenyRedirect) and decision.force_logout:
            logger.warning(
                "Permission denied; forcing logout",
                extra={
                    "role": session.role.value if session else None,
                    "required": sorted(r.value for r in required_roles),
                },
            )
            self.notifier.error(self.PERMISSION_DENIED_MESSAGE)
            self.sessions.force_logout()
        return decision

    def navigate(self, path: str) -> NavigationResult:
        """Gate a navigation using the Session as it is right now."""
        route = self.routes.get(path, self.routes[LOGIN_PATH])
        if route.public:
            return NavigationResult(requested=path, path=route.path, decision=Allow())

        decision = self.authorize(self.sessions.current(), route.required_roles)
        if isinstance(decision, DenyRedirect):
            return NavigationResult(requested=path, path=decision.to, decision=decision)
        return NavigationResult(requested=path, path=route.path, decision=decision)

    def require(self, required_roles: AbstractSet[Role]) -> Session:
        """Authorize an operation rather than a page.

        Raises:
            PermissionDeniedError: If denied (after any forced logout)
        """
        session = self.sessions.current()
        decision = self.authorize(session, required_roles)
        if isinstance(decision, DenyRedirect) or session is None:
            reason = decision.reason.value if isinstance(decision, DenyRedirect) else "anonymous"
            raise PermissionDeniedError(
                f"Access denied ({reason})",
                role=session.role.value if session else None,
            )
        return session
