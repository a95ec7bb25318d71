"""
Per-file stability monitor.

Polls one file on its own timer until the size stops growing and the file
can be opened exclusively, then reports it once and stops.
"""

import threading
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from fileready.utils.helpers import format_bytes
from fileready.watchers.probes import AccessProbe, SizeProbe, is_accessible, raw_size

DEFAULT_INTERVAL = 1.0  # seconds


class MonitorState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StabilityMonitor:
    """Polling state machine for a single in-flight file.

    Each tick reads the raw size. Growth records the new size and waits for
    the next tick. No growth means the file is a completion candidate, which
    is confirmed only if the exclusive-open probe succeeds. A writer that
    pauses without closing its handle is therefore tolerated indefinitely.

    Ticks are strictly sequential: the next timer is armed only after the
    previous evaluation has finished.
    """

    def __init__(
        self,
        path: str,
        on_stable: Callable[[str, int], None],
        interval: float = DEFAULT_INTERVAL,
        size_probe: SizeProbe = raw_size,
        access_probe: AccessProbe = is_accessible,
    ):
        """
        Initialize the monitor.

        Args:
            path: Absolute path of the file to watch
            on_stable: Called once with (path, last recorded size) on completion
            interval: Seconds between ticks
            size_probe: Uncached size query, 0 when the file cannot be opened
            access_probe: Exclusive-open check
        """
        self.path = path
        self.interval = interval
        self._on_stable = on_stable
        self._size_probe = size_probe
        self._access_probe = access_probe

        self._last_size = 0
        self._ticks = 0
        self._state = MonitorState.IDLE
        self._timer: Optional[threading.Timer] = None

        self._lock = threading.Lock()  # guards state and timer
        self._tick_lock = threading.Lock()  # serialises evaluations

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def last_size(self) -> int:
        return self._last_size

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def active(self) -> bool:
        return self._state in (MonitorState.IDLE, MonitorState.POLLING)

    def start(self) -> None:
        """Begin polling. The first tick runs immediately."""
        with self._lock:
            if self._state is not MonitorState.IDLE:
                return
            self._state = MonitorState.POLLING
            self._schedule(0)

        logger.debug(f"Monitoring {self.path} every {self.interval:.3f}s")

    def stop(self) -> None:
        """Cancel future ticks. A tick already running has its result discarded."""
        with self._lock:
            if not self.active:
                return
            self._state = MonitorState.CANCELLED
            self._cancel_timer()

        logger.debug(f"Stopped monitoring {self.path}")

    def check(self) -> bool:
        """
        Evaluate one tick.

        Returns:
            True if this tick completed the monitor and fired the callback
        """
        with self._tick_lock:
            if not self.active:
                return False
            self._ticks += 1

            try:
                size = self._size_probe(self.path)
            except Exception as e:
                logger.debug(f"Size probe raised for {self.path}: {e}")
                return False

            if size > self._last_size:
                logger.debug(f"{self.path} growing: {format_bytes(self._last_size)} -> {format_bytes(size)}")
                self._last_size = size
                return False

            try:
                accessible = self._access_probe(self.path)
            except Exception as e:
                logger.debug(f"Accessibility probe raised for {self.path}: {e}")
                return False

            if not accessible:
                logger.debug(f"{self.path} stalled at {format_bytes(self._last_size)} but still locked")
                return False

            with self._lock:
                if not self.active:
                    return False  # cancelled while probing
                self._state = MonitorState.COMPLETED
                self._cancel_timer()

            size_at_completion = self._last_size

        logger.debug(f"{self.path} stable after {self._ticks} ticks ({format_bytes(size_at_completion)})")
        self._on_stable(self.path, size_at_completion)
        return True

    def _run(self) -> None:
        try:
            self.check()
        except Exception:
            logger.exception(f"Completion handler for {self.path} raised")

        with self._lock:
            if self._state is MonitorState.POLLING:
                self._schedule(self.interval)

    def _schedule(self, delay: float) -> None:
        timer = threading.Timer(delay, self._run)
        timer.name = f"fileready-monitor:{self.path}"
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def __repr__(self) -> str:
        return f"StabilityMonitor(path={self.path!r}, state={self._state.value}, last_size={self._last_size})"
