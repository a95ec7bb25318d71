"""
Registry of in-flight files.

Maps each file path to the single StabilityMonitor tracking it. The map is
touched from the notification dispatch thread and from every monitor's
completion callback, so all access goes through one lock.
"""

import threading
from typing import Callable, Dict, List, Optional

from loguru import logger

from fileready.utils.helpers import format_bytes
from fileready.watchers.monitor import DEFAULT_INTERVAL, MonitorState, StabilityMonitor
from fileready.watchers.probes import AccessProbe, SizeProbe, is_accessible, raw_size


class WatchRegistry:
    """At most one monitor per path, removed again when it completes."""

    def __init__(
        self,
        on_ready: Callable[[str], None],
        interval: float = DEFAULT_INTERVAL,
        size_probe: SizeProbe = raw_size,
        access_probe: AccessProbe = is_accessible,
    ):
        self.interval = interval
        self._on_ready = on_ready
        self._size_probe = size_probe
        self._access_probe = access_probe

        self._monitors: Dict[str, StabilityMonitor] = {}
        self._lock = threading.Lock()

    def notify(self, path: str) -> bool:
        """
        Start tracking ``path`` unless it is already in flight.

        Duplicate notifications are expected while a file is being written
        and leave the existing monitor's progress untouched.

        Args:
            path: Absolute file path reported by the notification source

        Returns:
            True if a new monitor was created, False for a duplicate
        """
        with self._lock:
            if path in self._monitors:
                logger.debug(f"Already monitoring {path}")
                return False

            monitor = StabilityMonitor(
                path,
                on_stable=self._handle_stable,
                interval=self.interval,
                size_probe=self._size_probe,
                access_probe=self._access_probe,
            )
            self._monitors[path] = monitor

        logger.info(f"Tracking new file: {path}")
        monitor.start()
        return True

    def _handle_stable(self, path: str, size: int) -> None:
        logger.success(f"File ready: {path} ({format_bytes(size)})")
        try:
            self._on_ready(path)
        finally:
            with self._lock:
                monitor = self._monitors.get(path)
                if monitor is not None and monitor.state is MonitorState.COMPLETED:
                    del self._monitors[path]

    def get(self, path: str) -> Optional[StabilityMonitor]:
        with self._lock:
            return self._monitors.get(path)

    def pending(self) -> List[str]:
        """Snapshot of the paths currently being monitored."""
        with self._lock:
            return sorted(self._monitors)

    def cancel_all(self) -> int:
        """
        Stop every monitor and empty the registry.

        Returns:
            Number of monitors cancelled
        """
        with self._lock:
            monitors = list(self._monitors.values())
            self._monitors.clear()

        for monitor in monitors:
            monitor.stop()

        if monitors:
            logger.info(f"Cancelled {len(monitors)} pending file monitor(s)")
        return len(monitors)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._monitors

    def __len__(self) -> int:
        with self._lock:
            return len(self._monitors)
