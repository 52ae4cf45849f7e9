"""
User notifications.

Presentation (toasts) is outside the core. The core only emits messages
through a Notifier; the gateway collects them into its responses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Notifier(Protocol):
    def success(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class LoggingNotifier:
    """Notifier that only logs."""

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.warning(message)


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


class CollectingNotifier:
    """Buffers notifications until the caller drains them."""

    def __init__(self) -> None:
        self._pending: list[Notification] = []

    def success(self, message: str) -> None:
        self._pending.append(Notification("success", message))

    def error(self, message: str) -> None:
        self._pending.append(Notification("error", message))

    def drain(self) -> list[Notification]:
        pending, self._pending = self._pending, []
        return pending
