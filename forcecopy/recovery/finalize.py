"""Renaming, ledger bookkeeping and attribute copying after a copy run."""
from __future__ import annotations
import os
import re
from typing import Optional

from ..core.logger import get_logger
from ..core.platform_utils import creation_time, is_read_only, set_creation_time, set_read_only
from ..imaging.ledger import Ledger

log = get_logger(__name__)

_BAD_MARKER = re.compile(r"\.\d+_bad_bytes$")


def bad_copy_name(path: str, bad_bytes: int) -> str:
    """``disk.img`` -> ``disk.<bad_bytes>_bad_bytes.img``, replacing an earlier marker."""
    directory, name = os.path.split(path)
    stem, suffix = os.path.splitext(name)
    stem = _BAD_MARKER.sub("", stem)
    return os.path.join(directory, f"{stem}.{bad_bytes}_bad_bytes{suffix}")


def clean_copy_name(path: str) -> str:
    directory, name = os.path.split(path)
    stem, suffix = os.path.splitext(name)
    return os.path.join(directory, _BAD_MARKER.sub("", stem) + suffix)


def copy_attributes(source: str, dest: str) -> None:
    st = os.stat(source)
    if is_read_only(dest):
        set_read_only(dest, False)
    os.utime(dest, ns=(st.st_atime_ns, st.st_mtime_ns))
    created = creation_time(st)
    if created is not None:
        try:
            set_creation_time(dest, created)
        except OSError as exc:
            log.warning("Could not set creation time on %s: %s", dest, exc)
    set_read_only(dest, is_read_only(source))


class Finalizer:
    def __init__(self, source: str):
        self.source = source

    def finalize(self, working: str, target: str, ledger: Ledger) -> tuple[str, Optional[str]]:
        """
        Move ``working`` into its final place and settle its ledger.

        With bad blocks the file is named after ``target`` with the bad byte
        count embedded and the ledger is saved beside it. Without, it takes
        ``target``'s name and any stale ledger is removed. Returns the final
        path and the ledger path (None when clean).
        """
        ledger_path = None
        if ledger:
            final = bad_copy_name(target, ledger.total_bytes)
            self._move(working, final)
            ledger_path = ledger.save(final)
            if os.path.abspath(working) != os.path.abspath(final):
                Ledger.delete(working)
            log.warning("Copy has %d unreadable bytes in %d block(s): %s", ledger.total_bytes, len(ledger), final)
        else:
            final = target
            self._move(working, final)
            Ledger.delete(working)
            if os.path.abspath(working) != os.path.abspath(final):
                Ledger.delete(final)
        copy_attributes(self.source, final)
        return final, ledger_path

    @staticmethod
    def _move(working: str, final: str) -> None:
        if os.path.abspath(working) == os.path.abspath(final):
            return
        log.info("Renaming %s -> %s", working, final)
        os.replace(working, final)
