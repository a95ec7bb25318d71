"""
Helper utilities for fileready.

Path normalisation and small formatting helpers shared by the watchers.
"""

import fnmatch
import os
from pathlib import Path, PurePath
from typing import Union


def normalise_path(path: Union[str, Path]) -> str:
    """
    Return the absolute, normalised string form of ``path``.

    The file does not need to exist. Symlinks are not resolved so that the
    identity matches what the notification source reports.
    """
    return os.path.normpath(os.path.abspath(os.path.expanduser(os.fsdecode(path))))


def matches_pattern(path: Union[str, Path], pattern: str) -> bool:
    """Check the file name of ``path`` against a glob such as ``*.csv``."""
    name = PurePath(os.fsdecode(path)).name
    return fnmatch.fnmatch(name, pattern)


def format_bytes(bytes_count: int) -> str:
    """Format bytes as human-readable string."""
    size = float(bytes_count)
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"
