"""
Directory watcher.

Subscribes to a notification source for one directory, hands every
created/changed file to the WatchRegistry and publishes ``file_ready`` once
a file has stabilised. Source errors are published on ``error`` and the
subscription is replaced so the watcher never stays silently dead.
"""

import threading
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from fileready.errors import ConfigurationError, WatchError
from fileready.events import EventHook
from fileready.utils.config import DEFAULT_INTERVAL_MS, Settings, build_options, get_settings
from fileready.utils.helpers import normalise_path
from fileready.watchers.probes import AccessProbe, SizeProbe, is_accessible, raw_size
from fileready.watchers.registry import WatchRegistry
from fileready.watchers.sources import NotificationSource, Subscription, WatchdogSource


class WatcherState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class _SubscriptionSink:
    """Routes callbacks of one subscription back to its watcher."""

    def __init__(self, watcher: "DirectoryWatcher", generation: int):
        self.watcher = watcher
        self.generation = generation

    def on_created(self, path: str) -> None:
        self.watcher._route(self.generation, path)

    def on_changed(self, path: str) -> None:
        self.watcher._route(self.generation, path)

    def on_error(self, error: BaseException) -> None:
        self.watcher._handle_source_error(self.generation, error)


class DirectoryWatcher:
    """Reports files in a directory once they are completely written.

    Subscribe with ``watcher.file_ready.connect(callback)`` (callback gets the
    absolute path) and ``watcher.error.connect(callback)`` (callback gets a
    WatchError).
    """

    def __init__(
        self,
        root: Union[str, Path],
        pattern: str,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        include_subdirectories: bool = True,
        source: Optional[NotificationSource] = None,
        size_probe: SizeProbe = raw_size,
        access_probe: AccessProbe = is_accessible,
        restart_delay: float = 1.0,
    ):
        """
        Initialize the watcher. Nothing is watched until ``start``.

        Args:
            root: Directory to watch
            pattern: File name filter, e.g. ``*.csv``
            interval_ms: Milliseconds between size checks of an in-flight file
            include_subdirectories: Watch the whole tree below ``root``
            source: Notification source, a WatchdogSource by default
            size_probe: Uncached size query
            access_probe: Exclusive-open check
            restart_delay: Seconds before retrying a failed resubscription

        Raises:
            ConfigurationError: If root or pattern is empty or interval_ms is not positive
        """
        options = build_options(
            root=root,
            pattern=pattern,
            interval_ms=interval_ms,
            include_subdirectories=include_subdirectories,
            restart_delay=restart_delay,
        )

        self.root = normalise_path(options.root)
        self.pattern = options.pattern
        self.interval_ms = options.interval_ms
        self.include_subdirectories = options.include_subdirectories
        self.restart_delay = options.restart_delay
        self.source: NotificationSource = source if source is not None else WatchdogSource()

        self.file_ready = EventHook("file_ready")
        self.error = EventHook("error")

        self.registry = WatchRegistry(
            on_ready=self._handle_ready,
            interval=options.interval_seconds,
            size_probe=size_probe,
            access_probe=access_probe,
        )

        self._lock = threading.RLock()
        self._state = WatcherState.STOPPED
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._closed = False
        self._retry_timer: Optional[threading.Timer] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> "DirectoryWatcher":
        """Build a watcher from environment settings (FILEREADY_* variables)."""
        settings = settings or get_settings()
        if settings.watch_root is None:
            raise ConfigurationError("FILEREADY_WATCH_ROOT is not set")

        kwargs.setdefault("source", WatchdogSource(health_check_interval=settings.health_check_interval))
        return cls(
            root=settings.watch_root,
            pattern=settings.watch_pattern,
            interval_ms=settings.interval_ms,
            include_subdirectories=settings.include_subdirectories,
            restart_delay=settings.restart_delay,
            **kwargs,
        )

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is WatcherState.RUNNING

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Subscribe to the notification source with a fresh subscription."""
        with self._lock:
            if self._closed:
                raise RuntimeError("DirectoryWatcher has been closed")
            if self._state is WatcherState.RUNNING:
                return

            self._generation += 1
            sink = _SubscriptionSink(self, self._generation)
            self._subscription = self.source.subscribe(self.root, self.pattern, self.include_subdirectories, sink)
            self._state = WatcherState.RUNNING

        logger.info(f"Watching {self.root} for {self.pattern}")

    def stop(self) -> None:
        """Unsubscribe. Files already being monitored keep being tracked."""
        with self._lock:
            self._cancel_retry()
            subscription = self._subscription
            self._subscription = None
            was_running = self._state is WatcherState.RUNNING
            self._state = WatcherState.STOPPED
            # Callbacks still queued on the old subscription are ignored.
            self._generation += 1

        if subscription is not None:
            subscription.unsubscribe()
        if was_running:
            logger.info(f"Stopped watching {self.root}")

    def close(self) -> None:
        """Stop watching, cancel all pending monitors and drop subscribers."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self.stop()
        self.registry.cancel_all()
        self.file_ready.clear()
        self.error.clear()
        logger.info(f"Closed watcher for {self.root}")

    def _route(self, generation: int, path: str) -> None:
        if self._closed or generation != self._generation:
            return
        self.registry.notify(normalise_path(path))

    def _handle_ready(self, path: str) -> None:
        if self._closed:
            return
        self.file_ready.emit(path)

    def _handle_source_error(self, generation: int, error: BaseException) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return

        logger.error(f"Notification source error for {self.root}: {error}")
        self.error.emit(WatchError(error, self.root))

        with self._lock:
            # stop() or close() while the error was being published bumps the generation
            if self._closed or generation != self._generation:
                logger.info(f"Watcher for {self.root} was stopped, not resubscribing")
                return
            self.stop()
            failure = self._try_start()

        if failure is not None:
            self.error.emit(WatchError(failure, self.root))

    def _try_start(self) -> Optional[BaseException]:
        """Start with the lock held. On failure schedule a retry and return the error."""
        try:
            self.start()
        except Exception as e:
            if self._closed:
                return None
            self._schedule_retry(e)
            return e

        logger.success(f"Resubscribed to {self.root}")
        return None

    def _schedule_retry(self, error: BaseException) -> None:
        logger.warning(f"Resubscribing to {self.root} failed, retrying in {self.restart_delay:.1f}s: {error}")
        self._cancel_retry()
        timer = threading.Timer(self.restart_delay, self._retry_start, args=(self._generation,))
        timer.name = f"fileready-restart:{self.root}"
        timer.daemon = True
        self._retry_timer = timer
        timer.start()

    def _retry_start(self, generation: int) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return
            self._retry_timer = None
            failure = self._try_start()

        if failure is not None:
            self.error.emit(WatchError(failure, self.root))

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def __enter__(self) -> "DirectoryWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"DirectoryWatcher(root={self.root!r}, pattern={self.pattern!r}, "
            f"state={self._state.value}, pending={len(self.registry)})"
        )
