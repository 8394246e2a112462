"""
User-visible notifications.

Every outcome the dashboard reports (load failed, flight created, ...)
goes through a Notifier as a one-line human-readable message. The view
layer registers a listener to render them; without one they are only
logged and kept in a short history.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List

logger = logging.getLogger(__name__)

SUCCESS = 'success'
ERROR = 'error'
INFO = 'info'


@dataclass
class Notice:
    level: str
    message: str
    created_at: float = field(default_factory=time.time)


class Notifier:
    """Collects notices and fans them out to listeners."""

    def __init__(self, history: int = 50):
        self._notices: Deque[Notice] = deque(maxlen=history)
        self._listeners: List[Callable[[Notice], None]] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: Callable[[Notice], None]) -> None:
        self._listeners.append(listener)

    def notify(self, level: str, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        with self._lock:
            self._notices.append(notice)

        if level == ERROR:
            logger.warning(f'Notice: {message}')
        else:
            logger.info(f'Notice: {message}')

        for listener in self._listeners:
            try:
                listener(notice)
            except Exception as e:
                logger.error(f'Notice listener error: {e}')
        return notice

    def success(self, message: str) -> Notice:
        return self.notify(SUCCESS, message)

    def error(self, message: str) -> Notice:
        return self.notify(ERROR, message)

    def info(self, message: str) -> Notice:
        return self.notify(INFO, message)

    @property
    def notices(self) -> List[Notice]:
        with self._lock:
            return list(self._notices)

    @property
    def last(self):
        with self._lock:
            return self._notices[-1] if self._notices else None
