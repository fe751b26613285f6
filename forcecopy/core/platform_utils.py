"""Cross-platform helpers for file attributes."""
from __future__ import annotations
import ctypes
import os
import stat
import sys
from typing import Optional

WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH

# Seconds between 1601-01-01 and 1970-01-01, in 100ns FILETIME ticks
_EPOCH_AS_FILETIME = 116444736000000000


def is_windows() -> bool:
    return sys.platform.startswith("win")


def creation_time(st: os.stat_result) -> Optional[float]:
    birth = getattr(st, "st_birthtime", None)
    if birth is not None:
        return birth
    if is_windows():
        return st.st_ctime
    return None


def set_creation_time(path: str, timestamp: float) -> bool:
    """Set a file's creation time. Returns False where the OS offers no way to."""
    if not is_windows():
        return False
    from ctypes import wintypes

    kernel32 = ctypes.windll.kernel32
    kernel32.CreateFileW.restype = wintypes.HANDLE
    FILE_WRITE_ATTRIBUTES = 0x100
    OPEN_EXISTING = 3
    FILE_FLAG_BACKUP_SEMANTICS = 0x02000000
    invalid = wintypes.HANDLE(-1).value

    handle = kernel32.CreateFileW(
        str(path), FILE_WRITE_ATTRIBUTES, 0, None, OPEN_EXISTING, FILE_FLAG_BACKUP_SEMANTICS, None
    )
    if handle == invalid:
        raise ctypes.WinError()
    try:
        ticks = int(timestamp * 10_000_000) + _EPOCH_AS_FILETIME
        created = wintypes.FILETIME(ticks & 0xFFFFFFFF, ticks >> 32)
        if not kernel32.SetFileTime(handle, ctypes.byref(created), None, None):
            raise ctypes.WinError()
    finally:
        kernel32.CloseHandle(handle)
    return True


def is_read_only(path: str) -> bool:
    return not (os.stat(path).st_mode & stat.S_IWUSR)


def set_read_only(path: str, read_only: bool) -> None:
    mode = stat.S_IMODE(os.stat(path).st_mode)
    if read_only:
        mode &= ~WRITE_BITS
    else:
        mode |= stat.S_IWUSR
    os.chmod(path, mode)
