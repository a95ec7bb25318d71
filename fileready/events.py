"""
Minimal callback hook used for the watcher's public events.
"""

import threading
from typing import Any, Callable, List

from loguru import logger


class EventHook:
    """Ordered set of callbacks invoked on ``emit``.

    Callback exceptions are logged and do not reach the emitting thread,
    which is a monitor timer or the notification dispatch thread.
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Callable[..., Any]] = []
        self._lock = threading.Lock()

    def connect(self, callback: Callable[..., Any]) -> Callable[..., Any]:
        """Register ``callback``. Returns it so this can be used as a decorator."""
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)
        return callback

    def disconnect(self, callback: Callable[..., Any]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def clear(self) -> None:
        with self._lock:
            self._callbacks.clear()

    def emit(self, *args: Any) -> None:
        with self._lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(*args)
            except Exception:
                logger.exception(f"Subscriber to '{self.name}' raised")

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)
