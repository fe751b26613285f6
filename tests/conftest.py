from __future__ import annotations

import errno
import importlib.util
import io
import os
import sys
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

import pytest


def repo_root() -> Path:
    """Return the repository root holding the ``forcecopy`` package."""

    return Path(__file__).resolve().parents[1]


def _ensure_repo_on_path() -> None:
    if importlib.util.find_spec("forcecopy") is None:
        sys.path.insert(0, str(repo_root()))


_ensure_repo_on_path()


class FaultyStream(io.RawIOBase):
    """
    Read-only view of a file that raises on chosen byte ranges.

    ``bad`` maps ``(start, end)`` ranges to how many reads touching them
    fail before they start succeeding; ``None`` fails forever.
    """

    def __init__(self, path: str, bad: Optional[Dict[Tuple[int, int], Optional[int]]] = None,
                 error: int = errno.EIO) -> None:
        super().__init__()
        self._f = open(path, "rb", buffering=0)
        self.bad = dict(bad or {})
        self.error = error
        self.attempts = 0
        self.failures = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._f.seek(offset, whence)

    def tell(self) -> int:
        return self._f.tell()

    def read(self, size: int = -1) -> bytes:
        self.attempts += 1
        pos = self._f.tell()
        end = pos + (size if size >= 0 else os.fstat(self._f.fileno()).st_size)
        for (a, b), remaining in self.bad.items():
            if pos < b and a < end and (remaining is None or remaining > 0):
                if remaining is not None:
                    self.bad[(a, b)] = remaining - 1
                self.failures += 1
                raise OSError(self.error, os.strerror(self.error))
        return self._f.read(size)

    def close(self) -> None:
        self._f.close()
        super().close()


def faulty_opener(bad: Dict[Tuple[int, int], Optional[int]], error: int = errno.EIO, opened: Optional[list] = None):
    def _open(path: str) -> FaultyStream:
        stream = FaultyStream(path, bad, error)
        if opened is not None:
            opened.append(stream)
        return stream
    return _open


def pattern(length: int, seed: int = 1) -> bytes:
    return bytes(((i * 7 + seed) % 251) + 1 for i in range(length))


@pytest.fixture
def make_file(tmp_path: Path):
    def _make(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _make


def zero_runs(data: bytes, ranges: Iterable[Tuple[int, int]]) -> bool:
    return all(data[a:b] == bytes(b - a) for a, b in ranges)
