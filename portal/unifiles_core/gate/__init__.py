"""
Access gate module for UniFiles - role-gated navigation.
"""

from .access import (
    LOGIN_PATH,
    ROUTES,
    AccessGate,
    Allow,
    Decision,
    DenyReason,
    DenyRedirect,
    NavigationResult,
    Route,
    evaluate,
    landing_path,
    route_for,
)

__all__ = [
    "AccessGate",
    "Allow",
    "DenyRedirect",
    "DenyReason",
    "Decision",
    "NavigationResult",
    "Route",
    "ROUTES",
    "LOGIN_PATH",
    "evaluate",
    "landing_path",
    "route_for",
]
