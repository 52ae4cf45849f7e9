"""
UniFiles HTTP Gateway - REST access to the UniFiles core.

This gateway provides:
1. Login, logout and the current session
2. Role-gated navigation checks for the frontend router
3. Record endpoints for Admin and CEO sessions
"""

from .app import create_app
from .routes import router

__all__ = ["create_app", "router"]
