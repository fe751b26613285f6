"""Bad-block ledger: the list of unreadable ranges recorded for one file."""
from __future__ import annotations
import json
import math
import os
import tempfile
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from ..core.config import LEDGER_SUFFIX, LEDGER_VERSION
from ..core.logger import get_logger
from ..recovery.validators import LedgerLoadError

log = get_logger(__name__)


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


@dataclass(frozen=True)
class Block:
    """A contiguous byte range that could not be read in full."""
    offset: int
    size: int

    @property
    def end(self) -> int:
        return self.offset + self.size

    def contains(self, position: int) -> bool:
        return self.offset <= position < self.end


@dataclass
class Ledger:
    """
    Ordered bad blocks for one file, plus the block size they were recorded with.

    Entries are kept exactly as appended: no sorting, no merging of
    overlapping ranges. Lookups scan front to back and the first covering
    block wins.
    """
    block_size: int
    blocks: List[Block] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks)

    def __bool__(self) -> bool:
        return bool(self.blocks)

    def append(self, block: Block) -> None:
        self.blocks.append(block)

    def find(self, position: int) -> Optional[Block]:
        for block in self.blocks:
            if block.contains(position):
                return block
        return None

    def contains(self, position: int) -> bool:
        return self.find(position) is not None

    def union(self, other: "Ledger") -> "Ledger":
        if other.block_size != self.block_size:
            raise ValueError(
                f"cannot combine ledgers with block sizes {self.block_size} and {other.block_size}"
            )
        return Ledger(self.block_size, list(self.blocks) + list(other.blocks))

    @property
    def total_bytes(self) -> int:
        return sum(b.size for b in self.blocks)

    @property
    def average_block_size(self) -> int:
        if not self.blocks:
            return 0
        return math.ceil(self.total_bytes / len(self.blocks))

    # Persistence

    @staticmethod
    def path_for(path: str) -> str:
        return os.fspath(path) + LEDGER_SUFFIX

    @classmethod
    def exists_for(cls, path: str) -> bool:
        return os.path.isfile(cls.path_for(path))

    def to_dict(self) -> dict:
        return {
            "version": LEDGER_VERSION,
            "block_size": self.block_size,
            "total_bad_bytes": self.total_bytes,
            "blocks": [{"offset": b.offset, "size": b.size} for b in self.blocks],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Ledger":
        if not isinstance(data, dict):
            raise LedgerLoadError("ledger must be a JSON object")
        version = data.get("version", LEDGER_VERSION)
        if version != LEDGER_VERSION:
            raise LedgerLoadError(f"unsupported ledger version {version!r}")
        records = data.get("blocks")
        if not isinstance(records, list):
            raise LedgerLoadError("ledger has no 'blocks' list")
        blocks: List[Block] = []
        for idx, rec in enumerate(records):
            try:
                offset, size = int(rec["offset"]), int(rec["size"])
            except (KeyError, TypeError, ValueError) as exc:
                raise LedgerLoadError(f"malformed block record #{idx}: {rec!r}") from exc
            if offset < 0 or size < 0:
                raise LedgerLoadError(f"negative offset or size in block record #{idx}: {rec!r}")
            blocks.append(Block(offset, size))
        block_size = data.get("block_size")
        if block_size is None:
            block_size = cls(0, blocks).average_block_size
        try:
            block_size = int(block_size)
        except (TypeError, ValueError) as exc:
            raise LedgerLoadError(f"invalid block_size {block_size!r}") from exc
        return cls(block_size, blocks)

    @classmethod
    def load(cls, path: str) -> Optional["Ledger"]:
        """Load the ledger for ``path``; ``None`` when no sidecar exists."""
        ledger_path = cls.path_for(path)
        if not os.path.exists(ledger_path):
            return None
        try:
            with open(ledger_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise LedgerLoadError(f"cannot read ledger {ledger_path}: {exc}") from exc
        ledger = cls.from_dict(data)
        log.debug("Loaded %d bad block(s) from %s", len(ledger), ledger_path)
        return ledger

    def save(self, path: str) -> str:
        """Atomically write the sidecar for ``path`` and return its location."""
        ledger_path = self.path_for(path)
        directory = os.path.dirname(os.path.abspath(ledger_path))
        fd, tmp_name = tempfile.mkstemp(prefix=os.path.basename(ledger_path) + ".", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            # mkstemp creates 0600; give the sidecar the usual umask-derived mode
            os.chmod(tmp_name, 0o666 & ~_current_umask())
            os.replace(tmp_name, ledger_path)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
        log.info("Recorded %d bad block(s) (%d bytes) in %s", len(self), self.total_bytes, ledger_path)
        return ledger_path

    @classmethod
    def delete(cls, path: str) -> bool:
        ledger_path = cls.path_for(path)
        try:
            os.remove(ledger_path)
        except FileNotFoundError:
            return False
        log.info("Removed stale ledger %s", ledger_path)
        return True
