"""
UniFiles Test Suite.

This package contains:
- unit/: Unit tests against the in-memory and SQLite backends
- integration/: Login-to-navigation flow and the HTTP gateway
"""
