"""Transient, auto-dismissing notifications shown to the user."""

import logging
import time
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel


logger = logging.getLogger(__name__)


class NotificationLevel(StrEnum):
    """Visual weight of a notification."""

    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class Notification(BaseModel):
    """A message that disappears on its own once ``expires_at`` has passed."""

    message: str
    level: NotificationLevel
    suggestion: str | None = None
    expires_at: float


class NotificationCenter:
    """Holds the notifications currently on screen.

    Expiry is checked lazily against ``clock`` whenever notifications are read,
    so nothing has to run in the background.
    """

    def __init__(self, *, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._items: list[Notification] = []

    def post(
        self,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
        *,
        suggestion: str | None = None,
    ) -> Notification:
        now = self._clock()
        notification = Notification(
            message=message,
            level=level,
            suggestion=suggestion,
            expires_at=now + self._ttl,
        )
        self._prune(now)
        self._items.append(notification)
        logger.debug("Posted notification", extra={"level": str(level), "notification": message})
        return notification

    def active(self) -> list[Notification]:
        """Notifications that have not expired yet, oldest first."""
        self._prune(self._clock())
        return list(self._items)

    def current(self) -> Notification | None:
        """Most recent notification still visible."""
        items = self.active()
        return items[-1] if items else None

    def _prune(self, now: float) -> None:
        self._items = [n for n in self._items if n.expires_at > now]

    def dismiss_all(self) -> None:
        self._items.clear()
