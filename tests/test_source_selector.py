from __future__ import annotations

import pytest

from forcecopy.imaging.ledger import Block, Ledger
from forcecopy.imaging.source_selector import CopyMode, Origin, SourceSelector


def test_fresh_always_reads_source() -> None:
    selector = SourceSelector(CopyMode.FRESH, 3)
    for position in (0, 4096, 10 ** 9):
        selection = selector.select(position)
        assert selection.origin is Origin.SOURCE
        assert selection.retries == 3


def test_overwrite_reads_only_ledger_ranges() -> None:
    ledger = Ledger(100, [Block(100, 100)])
    selector = SourceSelector(CopyMode.OVERWRITE_BAD_ONLY, 2, ledger)
    assert selector.select(0).origin is Origin.SKIP
    assert selector.select(99).origin is Origin.SKIP
    inside = selector.select(100)
    assert inside.origin is Origin.SOURCE
    assert inside.retries == 2
    assert inside.block == Block(100, 100)
    assert selector.select(199).origin is Origin.SOURCE
    assert selector.select(200).origin is Origin.SKIP


def test_merge_reads_partial_outside_ledger_without_retries() -> None:
    ledger = Ledger(50, [Block(0, 50)])
    selector = SourceSelector(CopyMode.MERGE_FROM_PARTIAL, 4, ledger)
    good = selector.select(50)
    assert good.origin is Origin.PARTIAL
    assert good.retries == 0
    bad = selector.select(0)
    assert bad.origin is Origin.SOURCE
    assert bad.retries == 4


def test_overlapping_entries_first_match_wins() -> None:
    first, second = Block(0, 300), Block(100, 100)
    selector = SourceSelector(CopyMode.OVERWRITE_BAD_ONLY, 0, Ledger(100, [first, second]))
    assert selector.select(150).block is first


@pytest.mark.parametrize("mode", [CopyMode.OVERWRITE_BAD_ONLY, CopyMode.MERGE_FROM_PARTIAL])
def test_ledger_required_outside_fresh_mode(mode: CopyMode) -> None:
    with pytest.raises(ValueError):
        SourceSelector(mode, 0)
