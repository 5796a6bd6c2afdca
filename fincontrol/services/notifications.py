"""
User Notifications

The ledger reports outcomes that the user should see (a failed cloud write,
a completed series deletion) through a NotificationSink. The UI decides how
to render them; the engine never blocks on one.
"""

from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Optional

import structlog
from pydantic import BaseModel


class NotificationSeverity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    message: str
    severity: NotificationSeverity = NotificationSeverity.INFO


class NotificationSink(ABC):
    """Receives user-facing messages."""

    @abstractmethod
    def notify(
        self,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
    ) -> None:
        pass


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the structured log. Used when there is no UI."""

    def __init__(self):
        self._logger = structlog.get_logger(__name__)

    def notify(
        self,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
    ) -> None:
        if severity == NotificationSeverity.ERROR:
            self._logger.error("notification", message=message)
        elif severity == NotificationSeverity.WARNING:
            self._logger.warning("notification", message=message)
        else:
            self._logger.info("notification", message=message, severity=severity.value)


class LatestNotificationSink(NotificationSink):
    """
    Keeps only the most recent notification, like a toast slot.

    history keeps the last history_size notifications, oldest first.
    """

    def __init__(self, history_size: int = 50):
        self.current: Optional[Notification] = None
        self.history: deque[Notification] = deque(maxlen=history_size)

    def notify(
        self,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
    ) -> None:
        notification = Notification(message=message, severity=severity)
        self.current = notification
        self.history.append(notification)

    def dismiss(self) -> None:
        self.current = None
