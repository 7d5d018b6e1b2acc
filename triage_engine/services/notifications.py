"""
Triage Engine Notification Service

The single channel through which user-visible outcomes reach the UI
(the toast/modal layer). Every failure a user must act on lands here
with a human-readable message.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    level: NotificationLevel
    message: str
    event_type: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class NotificationService:
    """
    Collects notifications for the session.

    The UI drains them with `drain()`; `history` keeps everything
    published so far.
    """

    def __init__(self, max_history: int = 200):
        self.max_history = max_history
        self.history: List[Notification] = []
        self._pending: List[Notification] = []

    def publish(
        self,
        level: NotificationLevel,
        message: str,
        event_type: Optional[str] = None
    ) -> Notification:
        notification = Notification(level=level, message=message, event_type=event_type)
        self._pending.append(notification)
        self.history.append(notification)
        if len(self.history) > self.max_history:
            del self.history[0]

        log_level = {
            NotificationLevel.SUCCESS: logging.INFO,
            NotificationLevel.WARNING: logging.WARNING,
            NotificationLevel.ERROR: logging.ERROR,
        }[level]
        logger.log(log_level, "notify: %s", message, extra={"event_type": event_type})
        return notification

    def success(self, message: str, event_type: Optional[str] = None) -> Notification:
        return self.publish(NotificationLevel.SUCCESS, message, event_type)

    def warning(self, message: str, event_type: Optional[str] = None) -> Notification:
        return self.publish(NotificationLevel.WARNING, message, event_type)

    def error(self, message: str, event_type: Optional[str] = None) -> Notification:
        return self.publish(NotificationLevel.ERROR, message, event_type)

    def drain(self) -> List[Notification]:
        """Return and clear notifications not yet shown."""
        pending, self._pending = self._pending, []
        return pending
