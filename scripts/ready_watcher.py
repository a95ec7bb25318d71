#!/usr/bin/env python3
"""Example host process for fileready.

Watches a directory and logs every file once it has been completely written.
Defaults come from ``FILEREADY_*`` environment variables (or a ``.env``
file); command line flags override them.
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from loguru import logger

from fileready import DirectoryWatcher, WatchError
from fileready.errors import ConfigurationError
from fileready.utils.config import get_settings
from fileready.watchers.sources import WatchdogSource


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level.upper(),
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Report files in a directory once they are fully written.",
    )
    parser.add_argument(
        "root",
        nargs="?",
        type=Path,
        default=settings.watch_root,
        help="Directory to watch (default: FILEREADY_WATCH_ROOT).",
    )
    parser.add_argument(
        "--pattern",
        default=settings.watch_pattern,
        help="File name filter, e.g. '*.csv' (default: %(default)s).",
    )
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=settings.interval_ms,
        help="Milliseconds between size checks (default: %(default)s).",
    )
    parser.add_argument(
        "--no-recursive",
        dest="recursive",
        action="store_false",
        default=settings.include_subdirectories,
        help="Only watch the top level of the directory.",
    )
    parser.add_argument(
        "--polling",
        action="store_true",
        help="Use watchdog's PollingObserver (for network shares).",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Log level (default: %(default)s).",
    )

    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    configure_logging(args.log_level)
    settings = get_settings()

    if args.root is None:
        logger.error("No directory given and FILEREADY_WATCH_ROOT is not set.")
        return 1

    source = WatchdogSource(health_check_interval=settings.health_check_interval)
    if args.polling:
        from watchdog.observers.polling import PollingObserver

        source = WatchdogSource(
            health_check_interval=settings.health_check_interval,
            observer_factory=PollingObserver,
        )

    try:
        watcher = DirectoryWatcher(
            root=args.root,
            pattern=args.pattern,
            interval_ms=args.interval_ms,
            include_subdirectories=args.recursive,
            source=source,
            restart_delay=settings.restart_delay,
        )
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    @watcher.file_ready.connect
    def _report(path: str) -> None:
        logger.info(f"READY {path}")

    @watcher.error.connect
    def _report_error(error: WatchError) -> None:
        logger.warning(f"Watch error, resubscribing: {error.cause}")

    stop_event = threading.Event()

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        stop_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        watcher.start()
    except OSError as e:
        logger.error(f"Cannot watch {args.root}: {e}")
        watcher.close()
        return 1

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    finally:
        watcher.close()

    logger.info("Ready watcher stopped.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
