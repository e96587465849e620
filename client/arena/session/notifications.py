"""Participant-facing notifications (toasts in a UI, log lines headless)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import structlog

from arena.logic.enums import NotificationLevel

logger = structlog.get_logger()


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingSink:
    """Default sink: writes every notification to the log."""

    _LEVELS = {
        NotificationLevel.INFO: "info",
        NotificationLevel.SUCCESS: "info",
        NotificationLevel.WARNING: "warning",
        NotificationLevel.ERROR: "error",
    }

    def notify(self, notification: Notification) -> None:
        method = getattr(logger, self._LEVELS[notification.level])
        method("notification", kind=notification.level, message=notification.message)


class NotificationService:
    """Fan-out of notifications to explicitly registered sinks."""

    def __init__(self, sinks: list[NotificationSink] | None = None) -> None:
        self._sinks: list[NotificationSink] = list(sinks) if sinks is not None else [LoggingSink()]

    def register(self, sink: NotificationSink) -> None:
        if sink not in self._sinks:
            self._sinks.append(sink)

    def unregister(self, sink: NotificationSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def notify(self, level: NotificationLevel, message: str) -> None:
        notification = Notification(level=level, message=message)
        for sink in list(self._sinks):
            try:
                sink.notify(notification)
            except Exception:
                logger.exception("notification sink failed")

    def info(self, message: str) -> None:
        self.notify(NotificationLevel.INFO, message)

    def success(self, message: str) -> None:
        self.notify(NotificationLevel.SUCCESS, message)

    def warning(self, message: str) -> None:
        self.notify(NotificationLevel.WARNING, message)

    def error(self, message: str) -> None:
        self.notify(NotificationLevel.ERROR, message)
