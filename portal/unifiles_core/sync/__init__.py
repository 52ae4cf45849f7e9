"""
Sync module for UniFiles - live subscriptions and reconciled views.
"""

from .engine import SubscriptionHandle, SubscriptionState, SyncEngine
from .view import LiveView, OverlayEntry

__all__ = [
    "SyncEngine",
    "SubscriptionHandle",
    "SubscriptionState",
    "LiveView",
    "OverlayEntry",
]
