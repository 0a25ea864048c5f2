"""Transient user-facing notifications (toast-style summaries)."""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional

logger = logging.getLogger(__name__)

NotificationLevel = Literal["info", "success", "warning", "error"]

DEFAULT_DURATION_MS = 4000

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class Notification:
    """One summary message shown to the user for a limited time."""
    message: str
    level: NotificationLevel = "info"
    duration_ms: int = DEFAULT_DURATION_MS
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=time.time)

    def expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return (now - self.created_at) * 1000 >= self.duration_ms


class NotificationCenter:
    """Collects notifications and forwards them to an optional sink.

    The CLI registers a sink that prints; tests inspect ``notifications``.
    """

    def __init__(self, sink: Optional[Callable[[Notification], None]] = None):
        self._items: List[Notification] = []
        self._sink = sink

    def notify(
        self,
        message: str,
        level: NotificationLevel = "info",
        duration_ms: int = DEFAULT_DURATION_MS,
    ) -> Notification:
        notification = Notification(message=message, level=level, duration_ms=duration_ms)
        self._items.append(notification)
        logger.log(_LOG_LEVELS[level], "%s", message)
        if self._sink:
            self._sink(notification)
        return notification

    def dismiss(self, notification_id: str) -> None:
        self._items = [n for n in self._items if n.id != notification_id]

    def prune(self, now: Optional[float] = None) -> None:
        self._items = [n for n in self._items if not n.expired(now)]

    @property
    def notifications(self) -> List[Notification]:
        return list(self._items)

    def messages(self) -> List[str]:
        return [n.message for n in self._items]
