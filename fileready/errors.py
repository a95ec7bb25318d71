"""
Exception types for fileready.

Configuration errors are raised synchronously to the caller. Watch errors
are never raised into the host process; they are delivered to the
watcher's error subscribers instead.
"""

from pathlib import Path
from typing import Optional, Union


class FileReadyError(Exception):
    """Base class for all fileready errors."""


class ConfigurationError(FileReadyError, ValueError):
    """Invalid watcher construction arguments."""


class WatchError(FileReadyError):
    """A failure reported by the directory notification source."""

    def __init__(self, cause: BaseException, root: Optional[Union[str, Path]] = None):
        self.cause = cause
        self.root = str(root) if root is not None else None
        where = f" ({self.root})" if self.root else ""
        super().__init__(f"Notification source failed{where}: {cause!r}")
