"""
Directory notification sources.

A source turns (root, pattern, recursive) into a stream of created/changed/
error callbacks on a sink. The default implementation wraps the watchdog
library: every subscription gets its own Observer, and a periodic health
check reports observers that died or lost their root directory, since
watchdog itself has no error event.
"""

import errno
import os
import threading
from typing import Callable, Optional, Protocol

from loguru import logger
from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer

from fileready.utils.helpers import matches_pattern


class NotificationSink(Protocol):
    """Receiver of directory notifications."""

    def on_created(self, path: str) -> None: ...

    def on_changed(self, path: str) -> None: ...

    def on_error(self, error: BaseException) -> None: ...


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class NotificationSource(Protocol):
    def subscribe(self, root: str, pattern: str, recursive: bool, sink: NotificationSink) -> Subscription: ...


class ObserverDiedError(RuntimeError):
    """The watchdog observer or one of its emitters stopped on its own."""


class SinkEventHandler(PatternMatchingEventHandler):
    """Watchdog handler forwarding matching file events to a sink."""

    def __init__(self, sink: NotificationSink, pattern: str, on_failure: Callable[[BaseException], None]):
        """
        Initialize event handler.

        Args:
            sink: Receiver of created/changed notifications
            pattern: Glob matched against file names
            on_failure: Called with any exception raised while dispatching
        """
        super().__init__(
            patterns=[pattern],
            ignore_directories=True,
            case_sensitive=os.name != "nt",
        )
        self.sink = sink
        self.pattern = pattern
        self._on_failure = on_failure

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception as e:
            logger.error(f"Failed to dispatch {event.event_type} for {event.src_path}: {e}")
            self._on_failure(e)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation."""
        self.sink.on_created(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification."""
        self.sink.on_changed(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Treat a file renamed into a matching name like a new file."""
        dest = getattr(event, "dest_path", None)
        if not dest:
            return

        dest = os.fsdecode(dest)
        if matches_pattern(dest, self.pattern):
            self.sink.on_created(dest)


class WatchdogSubscription:
    """One live watchdog Observer plus its health check timer."""

    def __init__(
        self,
        observer: Observer,
        root: str,
        sink: NotificationSink,
        health_check_interval: Optional[float],
    ):
        self.observer = observer
        self.root = root
        self.sink = sink
        self.health_check_interval = health_check_interval

        self._lock = threading.Lock()
        self._closed = False
        self._failed = False
        self._health_timer: Optional[threading.Timer] = None

    def start_health_checks(self) -> None:
        with self._lock:
            self._schedule_health_check()

    def _schedule_health_check(self) -> None:
        if self._closed or self._failed or not self.health_check_interval:
            return
        timer = threading.Timer(self.health_check_interval, self._check_health)
        timer.name = f"fileready-health:{self.root}"
        timer.daemon = True
        self._health_timer = timer
        timer.start()

    def _check_health(self) -> None:
        if self._closed:
            return

        if not os.path.isdir(self.root):
            self.report(FileNotFoundError(errno.ENOENT, "Watched directory is gone", self.root))
        elif not self.observer.is_alive():
            self.report(ObserverDiedError(f"Observer for {self.root} stopped unexpectedly"))
        elif any(not emitter.is_alive() for emitter in self.observer.emitters):
            self.report(ObserverDiedError(f"Event emitter for {self.root} stopped unexpectedly"))
        else:
            with self._lock:
                self._schedule_health_check()

    def report(self, error: BaseException) -> None:
        """Forward ``error`` to the sink, at most once per subscription."""
        with self._lock:
            if self._closed or self._failed:
                return
            self._failed = True
            if self._health_timer is not None:
                self._health_timer.cancel()
                self._health_timer = None

        logger.warning(f"Notification source for {self.root} failed: {error}")
        self.sink.on_error(error)

    def unsubscribe(self) -> None:
        """Stop the observer. Safe to call from the observer's own thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._health_timer is not None:
                self._health_timer.cancel()
                self._health_timer = None

        try:
            self.observer.stop()
            if self.observer.is_alive() and threading.current_thread() is not self.observer:
                self.observer.join(timeout=5.0)
        except Exception as e:
            logger.warning(f"Error stopping observer for {self.root}: {e}")

        logger.debug(f"Unsubscribed from {self.root}")


class WatchdogSource:
    """Notification source backed by a watchdog Observer."""

    def __init__(
        self,
        health_check_interval: Optional[float] = 5.0,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        """
        Args:
            health_check_interval: Seconds between observer health checks,
                None or 0 to disable them
            observer_factory: Builds the Observer for each subscription,
                e.g. a PollingObserver for network shares
        """
        self.health_check_interval = health_check_interval
        self.observer_factory = observer_factory

    def subscribe(self, root: str, pattern: str, recursive: bool, sink: NotificationSink) -> WatchdogSubscription:
        observer = self.observer_factory()
        subscription = WatchdogSubscription(observer, root, sink, self.health_check_interval)
        handler = SinkEventHandler(sink, pattern, on_failure=subscription.report)

        observer.schedule(handler, root, recursive=recursive)
        observer.daemon = True
        observer.start()
        subscription.start_health_checks()

        logger.info(f"Subscribed to {root} (pattern={pattern}, recursive={recursive})")
        return subscription
