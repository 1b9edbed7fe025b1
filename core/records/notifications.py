"""
Notification Sink

User-visible messages emitted by the mutation coordinator: one per audited
field change or new status, then one for the overall outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol


logger = logging.getLogger(__name__)


class NotificationKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    kind: NotificationKind
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "message": self.message,
            "kind": self.kind.value,
            "created_at": self.created_at.isoformat(),
        }


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class CollectingSink:
    """Keeps notifications in memory, in emission order."""

    def __init__(self):
        self._items: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self._items.append(notification)

    @property
    def notifications(self) -> tuple[Notification, ...]:
        return tuple(self._items)

    def drain(self) -> list[Notification]:
        """Return and clear everything collected so far."""
        items, self._items = self._items, []
        return items

    def clear(self) -> None:
        self._items.clear()


_LEVELS = {
    NotificationKind.SUCCESS: logging.INFO,
    NotificationKind.INFO: logging.INFO,
    NotificationKind.WARNING: logging.WARNING,
    NotificationKind.ERROR: logging.ERROR,
}


class LoggingSink:
    """Writes notifications to the log."""

    def notify(self, notification: Notification) -> None:
        logger.log(
            _LEVELS[notification.kind],
            "%s: %s",
            notification.title,
            notification.message,
        )


class FanOutSink:
    """Passes every notification to each of several sinks, in order."""

    def __init__(self, *sinks: NotificationSink):
        self._sinks = sinks

    def notify(self, notification: Notification) -> None:
        for sink in self._sinks:
            sink.notify(notification)
