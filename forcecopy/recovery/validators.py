"""Error kinds and precondition guards for copy runs."""
from __future__ import annotations
import os
from typing import Optional

from ..core.logger import get_logger

log = get_logger(__name__)

EXIT_OK = 0
EXIT_BAD_BLOCKS = 1
EXIT_DESTINATION_EXISTS = 2
EXIT_LEDGER_MISSING = 3
EXIT_PRECONDITION = 4
EXIT_STREAM_FAILURE = 5


class ForceCopyError(Exception):
    """Base class for fatal copy errors; carries the process exit code."""
    exit_code = EXIT_STREAM_FAILURE


class PreconditionViolation(ForceCopyError):
    """Raised before any byte is copied when a run cannot safely start."""
    exit_code = EXIT_PRECONDITION


class DestinationExists(PreconditionViolation):
    exit_code = EXIT_DESTINATION_EXISTS


class LedgerMissing(PreconditionViolation):
    """The file to repair or merge from has no bad-block ledger."""
    exit_code = EXIT_LEDGER_MISSING


class LedgerLoadError(PreconditionViolation):
    """A ledger sidecar exists but could not be read or parsed."""


class SizeMismatch(PreconditionViolation):
    pass


class BlockSizeMismatch(PreconditionViolation):
    pass


class UnsupportedRange(PreconditionViolation):
    pass


class InsufficientSpace(PreconditionViolation):
    pass


class SourceMissing(PreconditionViolation):
    pass


class UnclassifiedStreamFailure(ForceCopyError):
    """A read or write failed in a way retrying cannot fix."""
    exit_code = EXIT_STREAM_FAILURE


class PartialCopyInconsistent(ForceCopyError):
    """A partial copy failed to read in a range its ledger lists as good."""
    exit_code = EXIT_STREAM_FAILURE


def guard_source(source: str) -> int:
    if not os.path.isfile(source):
        raise SourceMissing(f"Source file not found: {source}")
    return os.path.getsize(source)


def guard_destination(destination: str, overwrite: bool) -> None:
    if os.path.exists(destination) and not overwrite:
        raise DestinationExists(
            f"Destination already exists: {destination} (use --overwrite to repair its bad blocks)"
        )


def guard_range(start: int, end: Optional[int], length: int) -> None:
    # Only whole-file copies are implemented.
    if start != 0 or (end is not None and end != length):
        raise UnsupportedRange(
            f"Copying the byte range [{start}, {end if end is not None else length}) is not supported; "
            f"only the full range [0, {length}) can be copied"
        )


def guard_same_size(label: str, path: str, expected: int) -> None:
    actual = os.path.getsize(path)
    if actual != expected:
        raise SizeMismatch(
            f"{label} {path} is {actual} bytes but the source is {expected} bytes"
        )


def guard_block_size(label: str, ledger_block_size: int, block_size: int) -> None:
    if ledger_block_size != block_size:
        raise BlockSizeMismatch(
            f"{label} ledger was recorded with {ledger_block_size}-byte blocks, "
            f"but this run uses {block_size}-byte blocks"
        )
