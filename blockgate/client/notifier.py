"""User notifications (the web app's toasts) for the blocked-state flow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol, runtime_checkable

from blockgate.utils.logger import get_logger

logger = get_logger(__name__)

NotificationLevel = Literal["error", "success"]


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    persistent: bool = False
    """True for notifications the user cannot dismiss (the suspension notice)."""


@runtime_checkable
class Notifier(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LogNotifier:
    """Emits notifications as structured log events."""

    def notify(self, notification: Notification) -> None:
        log = logger.warning if notification.level == "error" else logger.info
        log(
            notification.message,
            notification_level=notification.level,
            persistent=notification.persistent,
        )


class RecordingNotifier:
    """Keeps every notification in order; used by tests and the CLI."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def of_level(self, level: NotificationLevel) -> list[Notification]:
        return [n for n in self.notifications if n.level == level]
