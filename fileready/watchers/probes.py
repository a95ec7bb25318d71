"""
File probes used by the stability monitor.

``raw_size`` reads the size from an open handle instead of cached directory
metadata, which on some platforms already reports the final size while a
copy is still in progress. ``is_accessible`` tries to take the file
exclusively; that only succeeds once the writer has let go of it.

Both probes are plain callables so the monitor can be given fakes in tests.
"""

import os
from typing import Callable

from loguru import logger

SizeProbe = Callable[[str], int]
AccessProbe = Callable[[str], bool]


if os.name == "nt":  # pragma: no cover - exercised on Windows only
    import ctypes
    from ctypes import wintypes

    _GENERIC_READ = 0x80000000
    _FILE_SHARE_READ = 0x1
    _FILE_SHARE_WRITE = 0x2
    _OPEN_EXISTING = 3
    _FILE_ATTRIBUTE_NORMAL = 0x80
    _INVALID_HANDLE_VALUE = wintypes.HANDLE(-1).value

    _kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

    _CreateFileW = _kernel32.CreateFileW
    _CreateFileW.argtypes = [
        wintypes.LPCWSTR,
        wintypes.DWORD,
        wintypes.DWORD,
        wintypes.LPVOID,
        wintypes.DWORD,
        wintypes.DWORD,
        wintypes.HANDLE,
    ]
    _CreateFileW.restype = wintypes.HANDLE

    _GetFileSizeEx = _kernel32.GetFileSizeEx
    _GetFileSizeEx.argtypes = [wintypes.HANDLE, ctypes.POINTER(ctypes.c_longlong)]
    _GetFileSizeEx.restype = wintypes.BOOL

    _CloseHandle = _kernel32.CloseHandle
    _CloseHandle.argtypes = [wintypes.HANDLE]
    _CloseHandle.restype = wintypes.BOOL

    def _open_handle(path: str, share_mode: int):
        handle = _CreateFileW(
            path,
            _GENERIC_READ,
            share_mode,
            None,
            _OPEN_EXISTING,
            _FILE_ATTRIBUTE_NORMAL,
            None,
        )
        if handle is None or handle == _INVALID_HANDLE_VALUE:
            return None
        return handle

    def _raw_size(path: str) -> int:
        handle = _open_handle(path, _FILE_SHARE_READ | _FILE_SHARE_WRITE)
        if handle is None:
            return 0
        try:
            size = ctypes.c_longlong(0)
            if not _GetFileSizeEx(handle, ctypes.byref(size)):
                return 0
            return size.value
        finally:
            _CloseHandle(handle)

    def _try_exclusive_open(path: str) -> bool:
        handle = _open_handle(path, 0)
        if handle is None:
            return False
        _CloseHandle(handle)
        return True

else:
    import fcntl

    def _raw_size(path: str) -> int:
        try:
            fd = os.open(path, os.O_RDONLY)
        except OSError:
            return 0
        try:
            return os.fstat(fd).st_size
        finally:
            os.close(fd)

    _PROC = "/proc"

    def _held_open_elsewhere(path: str) -> bool:
        """
        Scan /proc for any descriptor on ``path``, whatever its access mode.

        Runs after our own descriptor is closed, so every hit belongs
        to someone else (another process, or another handle in this one).
        Each call walks every ``/proc/<pid>/fd`` entry on the host; the cost
        grows with the number of stalled files and open descriptors.
        """
        target = os.path.realpath(path)
        try:
            pids = [entry for entry in os.listdir(_PROC) if entry.isdigit()]
        except OSError:
            return False

        for pid in pids:
            fd_dir = os.path.join(_PROC, pid, "fd")
            try:
                fds = os.listdir(fd_dir)
            except OSError:
                continue  # exited or not ours to inspect

            for fd_name in fds:
                try:
                    if os.readlink(os.path.join(fd_dir, fd_name)) == target:
                        return True
                except OSError:
                    continue

        return False

    def _try_exclusive_open(path: str) -> bool:
        # POSIX has no share modes. An exclusive advisory lock fails while
        # another handle holds one; on Linux any other open handle is also
        # visible in /proc. Without /proc (e.g. macOS) a holder that never
        # calls flock cannot be detected.
        fd = os.open(path, os.O_RDONLY)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            return False
        else:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

        if os.path.isdir(_PROC):
            return not _held_open_elsewhere(path)
        return True


def raw_size(path: str) -> int:
    """
    Return the number of bytes currently on disk for ``path``.

    Returns 0 when the file cannot be opened (missing, deleted or locked).
    A 0 is not proof of an empty file; combine it with ``is_accessible``.
    """
    try:
        return _raw_size(path)
    except OSError as e:
        logger.debug(f"Size probe failed for {path}: {e}")
        return 0


def is_accessible(path: str) -> bool:
    """
    Check whether ``path`` can be opened exclusively right now.

    Args:
        path: File to probe

    Returns:
        False if the file does not exist or another process holds it,
        True if the exclusive open succeeded (the handle is released again)
    """
    if not os.path.isfile(path):
        return False

    try:
        return _try_exclusive_open(path)
    except OSError as e:
        logger.debug(f"Accessibility probe failed for {path}: {e}")
        return False
