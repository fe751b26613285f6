"""Per-block choice of where the bytes for a destination block come from."""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .ledger import Block, Ledger


class CopyMode(Enum):
    FRESH = "fresh"
    OVERWRITE_BAD_ONLY = "overwrite-bad-only"
    MERGE_FROM_PARTIAL = "merge-from-partial"


class Origin(Enum):
    SOURCE = "source"
    PARTIAL = "partial"
    SKIP = "skip"


@dataclass(frozen=True)
class Selection:
    origin: Origin
    retries: int = 0
    block: Optional[Block] = None


class SourceSelector:
    """
    Decide, for one block offset, whether to read the source, read the
    partial copy, or leave the destination untouched.

    In overwrite mode ``ledger`` is the destination's own ledger; in merge
    mode it is the partial copy's ledger. Fresh copies ignore it.
    """

    def __init__(self, mode: CopyMode, max_retries: int, ledger: Optional[Ledger] = None):
        if mode is not CopyMode.FRESH and ledger is None:
            raise ValueError(f"{mode.value} copies need a ledger")
        self.mode = mode
        self.max_retries = max_retries
        self.ledger = ledger

    def select(self, position: int) -> Selection:
        if self.mode is CopyMode.FRESH:
            return Selection(Origin.SOURCE, self.max_retries)

        block = self.ledger.find(position)
        if self.mode is CopyMode.OVERWRITE_BAD_ONLY:
            if block is None:
                return Selection(Origin.SKIP)
            return Selection(Origin.SOURCE, self.max_retries, block)

        if block is None:
            return Selection(Origin.PARTIAL, 0)
        return Selection(Origin.SOURCE, self.max_retries, block)
