"""Transient notifications surfaced to the UI layer."""
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from spruce_outbox import settings
from spruce_outbox.logging_conf import logger


@dataclass(frozen=True)
class Notification:
    level: str  # "success", "error" or "info"
    title: str
    description: str = ""
    created_at: float = field(default_factory=time.time)


class Notifier:
    """Keeps the most recent notifications and fans them out to listeners."""

    def __init__(self, maxlen: Optional[int] = None):
        self._items = deque(maxlen=maxlen or settings.NOTIFICATION_HISTORY)
        self._lock = threading.Lock()
        self.listeners: List[Callable[[Notification], None]] = []

    def success(self, title: str, description: str = "") -> Notification:
        return self._push("success", title, description)

    def error(self, title: str, description: str = "") -> Notification:
        return self._push("error", title, description)

    def info(self, title: str, description: str = "") -> Notification:
        return self._push("info", title, description)

    def recent(self) -> List[Notification]:
        with self._lock:
            return list(self._items)

    def drain(self) -> List[Notification]:
        """Return and forget everything collected so far."""
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def _push(self, level: str, title: str, description: str) -> Notification:
        notification = Notification(level=level, title=title, description=description)
        with self._lock:
            self._items.append(notification)

        message = f"{title}: {description}" if description else title
        if level == "error":
            logger.warning(f"Notification: {message}")
        else:
            logger.info(f"Notification: {message}")

        for listener in list(self.listeners):
            try:
                listener(notification)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}", exc_info=True)
        return notification
