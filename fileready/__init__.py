"""
fileready - report files in a watched directory once they are fully written.

Watches a directory, tracks every new or changed file on its own polling
timer and publishes it once its size has stopped growing and no other
process holds it open.
"""

from fileready.errors import ConfigurationError, FileReadyError, WatchError
from fileready.watchers.directory import DirectoryWatcher, WatcherState
from fileready.watchers.monitor import MonitorState, StabilityMonitor
from fileready.watchers.probes import is_accessible, raw_size
from fileready.watchers.registry import WatchRegistry

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "DirectoryWatcher",
    "FileReadyError",
    "MonitorState",
    "StabilityMonitor",
    "WatchError",
    "WatchRegistry",
    "WatcherState",
    "is_accessible",
    "raw_size",
]
