"""Block-by-block copy engine with retrying reads and bad-block bookkeeping."""
from __future__ import annotations
import os
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, Optional

from ..core.config import PROGRESS_STEP_PERCENT, CopyConfig
from ..core.disk_manager import DiskManager
from ..core.logger import get_logger
from ..core.platform_utils import is_read_only, set_read_only
from ..recovery.finalize import Finalizer, clean_copy_name
from ..recovery.validators import (
    EXIT_BAD_BLOCKS,
    EXIT_OK,
    LedgerMissing,
    PartialCopyInconsistent,
    PreconditionViolation,
    UnclassifiedStreamFailure,
    guard_block_size,
    guard_destination,
    guard_range,
    guard_same_size,
    guard_source,
)
from .forced_reader import ForcedReader, ReadResult
from .ledger import Block, Ledger
from .source_selector import CopyMode, Origin, SourceSelector

log = get_logger(__name__)

Opener = Callable[[str], BinaryIO]


def open_raw(path: str) -> BinaryIO:
    return open(path, "rb", buffering=0)


class CopyState(Enum):
    INITIALIZING = "initializing"
    COPYING = "copying"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class CopyReport:
    mode: CopyMode
    source: str
    destination: str
    length: int
    bad_blocks: Ledger
    bytes_from_source: int = 0
    bytes_from_partial: int = 0
    bytes_skipped: int = 0
    ledger_path: Optional[str] = None
    stale_ledger: Optional[Ledger] = field(default=None, repr=False)

    @property
    def bad_bytes(self) -> int:
        return self.bad_blocks.total_bytes

    @property
    def exit_code(self) -> int:
        return EXIT_BAD_BLOCKS if self.bad_blocks else EXIT_OK


class CopyOrchestrator:
    """
    Copy ``source`` to ``destination`` one block at a time.

    ``auxiliary`` is the existing copy to repair (overwrite mode, optional:
    defaults to ``destination``) or the earlier partial copy to merge from
    (merge mode, required). ``open_source``/``open_partial`` return the
    binary streams the reads go through.
    """

    def __init__(
        self,
        source: str,
        destination: str,
        config: Optional[CopyConfig] = None,
        mode: CopyMode = CopyMode.FRESH,
        auxiliary: Optional[str] = None,
        open_source: Opener = open_raw,
        open_partial: Opener = open_raw,
        disk_manager: Optional[DiskManager] = None,
    ):
        self.source = os.fspath(source)
        self.destination = os.fspath(destination)
        self.config = (config or CopyConfig()).validate()
        self.mode = mode
        self.auxiliary = os.fspath(auxiliary) if auxiliary is not None else None
        self.open_source = open_source
        self.open_partial = open_partial
        self.disk_manager = disk_manager or DiskManager()
        self.reader = ForcedReader(self.config.max_retries)
        self.state = CopyState.INITIALIZING

    def run(self) -> CopyReport:
        try:
            report, selector, working, target = self._initialize()
            self.state = CopyState.COPYING
            self._copy(report, selector, working)
            self.state = CopyState.FINALIZING
            try:
                final, ledger_path = Finalizer(self.source).finalize(working, target, report.bad_blocks)
            except OSError as exc:
                raise UnclassifiedStreamFailure(f"finishing {working} failed: {exc}") from exc
        except BaseException:
            self.state = CopyState.FAILED
            raise
        report.destination = final
        report.ledger_path = ledger_path
        self.state = CopyState.DONE
        log.info(
            "Copied %d bytes (%d from source, %d from partial copy, %d left as-is), %d bad",
            report.length, report.bytes_from_source, report.bytes_from_partial,
            report.bytes_skipped, report.bad_bytes,
        )
        return report

    # Initializing

    def _initialize(self):
        cfg = self.config
        length = guard_source(self.source)
        guard_range(cfg.start, cfg.end, length)
        report = CopyReport(self.mode, self.source, self.destination, length, Ledger(cfg.block_size))

        if self.mode is CopyMode.FRESH:
            guard_destination(self.destination, cfg.overwrite)
            self.disk_manager.ensure_free_space(self.destination, length)
            return report, SourceSelector(self.mode, cfg.max_retries), self.destination, self.destination

        if self.mode is CopyMode.OVERWRITE_BAD_ONLY:
            if not cfg.overwrite:
                guard_destination(self.auxiliary or self.destination, overwrite=False)
            working = self.auxiliary or self.destination
            target = self.destination if self.auxiliary else clean_copy_name(self.destination)
            if not os.path.isfile(working):
                raise PreconditionViolation(f"Existing copy to repair not found: {working}")
            ledger = self._load_ledger("Destination", working, length)
            report.stale_ledger = ledger
            log.info("Re-reading %d bad block(s) (%d bytes) into %s", len(ledger), ledger.total_bytes, working)
            return report, SourceSelector(self.mode, cfg.max_retries, ledger), working, target

        if self.auxiliary is None:
            raise PreconditionViolation("Merging needs the path of the earlier partial copy")
        if not os.path.isfile(self.auxiliary):
            raise PreconditionViolation(f"Partial copy not found: {self.auxiliary}")
        if os.path.abspath(self.auxiliary) == os.path.abspath(self.destination):
            raise PreconditionViolation("The partial copy and the destination must be different files")
        guard_destination(self.destination, cfg.overwrite)
        ledger = self._load_ledger("Partial copy", self.auxiliary, length)
        self.disk_manager.ensure_free_space(self.destination, length)
        log.info("Merging from %s; %d bad block(s) will be read from the source", self.auxiliary, len(ledger))
        return report, SourceSelector(self.mode, cfg.max_retries, ledger), self.destination, self.destination

    def _load_ledger(self, label: str, path: str, length: int) -> Ledger:
        ledger = Ledger.load(path)
        if ledger is None:
            raise LedgerMissing(
                f"{label} {path} has no bad-block ledger ({Ledger.path_for(path)}); "
                "refusing to re-copy a file believed to be good"
            )
        guard_same_size(label, path, length)
        guard_block_size(label, ledger.block_size, self.config.block_size)
        return ledger

    # Copying

    def _copy(self, report: CopyReport, selector: SourceSelector, working: str) -> None:
        block_size = self.config.block_size
        length = report.length
        self.disk_manager.describe("Source", self.source)

        with ExitStack() as stack:
            src = self._open(stack, self.open_source, self.source)
            partial = None
            if self.mode is CopyMode.MERGE_FROM_PARTIAL:
                partial = self._open(stack, self.open_partial, self.auxiliary)
            if self.mode is CopyMode.OVERWRITE_BAD_ONLY:
                if is_read_only(working):
                    set_read_only(working, False)
                    # restored once the stream is closed
                    stack.callback(set_read_only, working, True)
                dest = self._open(stack, lambda p: open(p, "r+b"), working)
            else:
                dest = self._open(stack, self._create, working)

            last_origin = None
            step = max(1, length * PROGRESS_STEP_PERCENT // 100)
            next_progress = step
            position = 0
            while position < length:
                selection = selector.select(position)
                if selection.origin is Origin.SKIP:
                    skipped = min(block_size, length - position)
                    report.bytes_skipped += skipped
                    position += skipped
                    continue

                if selection.origin is not last_origin:
                    log.info("Reading from %s at offset %d", selection.origin.value, position)
                    last_origin = selection.origin

                if selection.origin is Origin.PARTIAL:
                    result = self._read_partial(partial, position, length)
                    report.bytes_from_partial += result.length
                else:
                    result = self.reader.read(src, position, block_size, selection.retries, length)
                    report.bytes_from_source += result.length
                    if not result.success:
                        report.bad_blocks.append(Block(position, result.length))

                if result.length == 0:
                    raise UnclassifiedStreamFailure(
                        f"{selection.origin.value} ended at offset {position}, expected {length} bytes"
                    )
                self._write(dest, position, result.data)
                position += result.length

                if position >= next_progress:
                    log.info("Progress: %d/%d bytes (%d%%)", position, length, position * 100 // length)
                    next_progress = position + step
            if self.mode is not CopyMode.OVERWRITE_BAD_ONLY:
                dest.truncate(length)

    @staticmethod
    def _create(path: str) -> BinaryIO:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        return open(path, "wb")

    @staticmethod
    def _open(stack: ExitStack, opener: Opener, path: str) -> BinaryIO:
        try:
            return stack.enter_context(opener(path))
        except OSError as exc:
            raise UnclassifiedStreamFailure(f"cannot open {path}: {exc}") from exc

    def _read_partial(self, partial: BinaryIO, position: int, length: int) -> ReadResult:
        result = self.reader.read(partial, position, self.config.block_size, 0, length)
        if not result.success:
            raise PartialCopyInconsistent(
                f"Partial copy {self.auxiliary} failed to read at offset {position}, "
                "a range its ledger lists as good"
            )
        return result

    @staticmethod
    def _write(dest: BinaryIO, position: int, data: bytes) -> None:
        try:
            dest.seek(position)
            dest.write(data)
        except OSError as exc:
            raise UnclassifiedStreamFailure(f"write at offset {position} failed: {exc}") from exc
