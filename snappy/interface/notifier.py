"""Toast-style user notifications for mutation outcomes."""

import logging
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from snappy.core.config import settings


logger = logging.getLogger(__name__)


class NotificationLevel(StrEnum):
    """Visual weight of a notification."""

    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    """A single user-visible notification."""

    level: NotificationLevel = Field(..., description="success or error")
    message: str = Field(..., description="Headline shown to the user")
    detail: str | None = Field(default=None, description="Secondary text, e.g. a rate limit hint")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


NotificationListener = Callable[[Notification], None]


class Notifier:
    """Keeps a bounded notification history and forwards each entry to listeners.

    A UI layer subscribes to render toasts; without listeners notifications
    are only logged and kept in history.
    """

    def __init__(self, history_limit: int | None = None) -> None:
        limit = settings.notification_history_limit if history_limit is None else history_limit
        self._history: deque[Notification] = deque(maxlen=limit)
        self._listeners: list[NotificationListener] = []

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    def subscribe(self, listener: NotificationListener) -> None:
        self._listeners.append(listener)

    def success(self, message: str) -> Notification:
        return self._emit(Notification(level=NotificationLevel.SUCCESS, message=message))

    def error(self, message: str, detail: str | None = None) -> Notification:
        return self._emit(Notification(level=NotificationLevel.ERROR, message=message, detail=detail))

    def clear(self) -> None:
        self._history.clear()

    def _emit(self, notification: Notification) -> Notification:
        self._history.append(notification)
        log_level = logging.INFO if notification.level is NotificationLevel.SUCCESS else logging.WARNING
        logger.log(log_level, notification.message, extra={"detail": notification.detail})

        for listener in self._listeners:
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")
        return notification
