from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

from conftest import faulty_opener, pattern, repo_root
from forcecopy.cli.forcecopy_cli import build_parser, config_from_args, main
from forcecopy.core.config import CopyConfig
from forcecopy.imaging.ledger import Block, Ledger
from forcecopy.imaging.source_selector import CopyMode
from forcecopy.recovery.clone import force_copy
from forcecopy.recovery.core import CopyController


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FORCECOPY_BLOCK_SIZE", raising=False)
    monkeypatch.delenv("FORCECOPY_RETRIES", raising=False)
    args = build_parser().parse_args(["a", "b"])
    assert args.auxiliary is None
    assert not args.overwrite
    assert not args.delete_source
    config = config_from_args(args)
    assert config.block_size == 4096
    assert config.max_retries == 0


def test_environment_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORCECOPY_BLOCK_SIZE", "512")
    monkeypatch.setenv("FORCECOPY_RETRIES", "3")
    config = config_from_args(build_parser().parse_args(["a", "b"]))
    assert config.block_size == 512
    assert config.max_retries == 3


def test_flags_override_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORCECOPY_BLOCK_SIZE", "512")
    monkeypatch.setenv("FORCECOPY_RETRIES", "not-a-number")
    config = config_from_args(build_parser().parse_args(["a", "b", "-b", "1024", "-r", "1"]))
    assert config.block_size == 1024
    assert config.max_retries == 1


@pytest.mark.parametrize("name", ["FORCECOPY_RETRIES", "FORCECOPY_BLOCK_SIZE"])
def test_invalid_environment_default_is_a_precondition_failure(
    make_file, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, name: str
) -> None:
    monkeypatch.setenv(name, "abc")
    src = make_file("src.bin", pattern(100))
    dst = tmp_path / "dst.bin"
    assert main([str(src), str(dst)]) == 4
    assert not dst.exists()


@pytest.mark.parametrize("argv", [["only-source"], ["a", "b", "-r", "-1"], ["a", "b", "--bogus"]])
def test_usage_errors_exit_with_precondition_code(argv) -> None:
    with pytest.raises(SystemExit) as info:
        main(argv)
    assert info.value.code == 4


def test_destination_under_a_regular_file(make_file, tmp_path: Path) -> None:
    src = make_file("src.bin", pattern(1000))
    make_file("blocker", b"not a directory")
    dst = tmp_path / "blocker" / "sub" / "dst.bin"
    assert main([str(src), str(dst)]) == 5
    assert (tmp_path / "blocker").read_bytes() == b"not a directory"


def test_clean_copy_exit_code(make_file, tmp_path: Path) -> None:
    data = pattern(5000)
    src = make_file("src.bin", data)
    dst = tmp_path / "dst.bin"
    assert main([str(src), str(dst), "-b", "1024", "-r", "2"]) == 0
    assert dst.read_bytes() == data


def test_existing_destination_exit_code(make_file) -> None:
    src = make_file("src.bin", pattern(100))
    dst = make_file("dst.bin", b"original")
    assert main([str(src), str(dst)]) == 2
    assert dst.read_bytes() == b"original"


def test_overwrite_without_ledger_exit_code(make_file) -> None:
    src = make_file("src.bin", pattern(100))
    dst = make_file("dst.bin", pattern(100, seed=5))
    assert main([str(src), str(dst), "--overwrite"]) == 3
    assert dst.read_bytes() == pattern(100, seed=5)


def test_unsupported_range_exit_code(make_file, tmp_path: Path) -> None:
    src = make_file("src.bin", pattern(100))
    assert main([str(src), str(tmp_path / "dst.bin"), "--start", "10"]) == 4
    assert not (tmp_path / "dst.bin").exists()


def test_missing_source_exit_code(tmp_path: Path) -> None:
    assert main([str(tmp_path / "nope.bin"), str(tmp_path / "dst.bin")]) == 4


def test_overwrite_repairs_with_ledger(make_file, tmp_path: Path) -> None:
    data = pattern(300)
    src = make_file("src.bin", data)
    damaged = bytearray(data)
    damaged[100:200] = bytes(100)
    dst = make_file("dst.bin", bytes(damaged))
    Ledger(100, [Block(100, 100)]).save(str(dst))

    assert main([str(src), str(dst), "-o", "-b", "100"]) == 0
    assert dst.read_bytes() == data
    assert not Ledger.exists_for(str(dst))


def test_merge_from_command_line(make_file, tmp_path: Path) -> None:
    src = make_file("src.bin", pattern(200, seed=1))
    partial = make_file("partial.bin", pattern(200, seed=2))
    Ledger(100, [Block(100, 100)]).save(str(partial))
    dst = tmp_path / "merged.bin"

    assert main([str(src), str(dst), str(partial), "-b", "100"]) == 0
    assert dst.read_bytes() == pattern(200, seed=2)[:100] + pattern(200, seed=1)[100:]


def test_delete_source_after_clean_copy(make_file, tmp_path: Path) -> None:
    src = make_file("src.bin", pattern(100))
    dst = tmp_path / "dst.bin"
    assert main([str(src), str(dst), "--delete-source"]) == 0
    assert not src.exists()
    assert dst.read_bytes() == pattern(100)


def test_source_kept_when_copy_has_bad_blocks(make_file, tmp_path: Path) -> None:
    src = make_file("src.bin", pattern(400))
    controller = CopyController(
        CopyConfig(block_size=100, delete_source=True),
        open_source=faulty_opener({(0, 100): None}),
    )
    report = controller.copy(str(src), str(tmp_path / "dst.bin"))
    assert report.exit_code == 1
    assert src.exists()


def test_mode_selection(tmp_path: Path) -> None:
    existing = tmp_path / "exists.bin"
    existing.write_bytes(b"x")
    missing = str(tmp_path / "missing.bin")

    plain = CopyController(CopyConfig())
    assert plain.select_mode(missing) is CopyMode.FRESH
    assert plain.select_mode(str(existing)) is CopyMode.FRESH
    assert plain.select_mode(missing, str(existing)) is CopyMode.MERGE_FROM_PARTIAL

    overwrite = CopyController(CopyConfig(overwrite=True))
    assert overwrite.select_mode(str(existing)) is CopyMode.OVERWRITE_BAD_ONLY
    assert overwrite.select_mode(missing) is CopyMode.FRESH
    assert overwrite.select_mode(missing, str(existing)) is CopyMode.OVERWRITE_BAD_ONLY


def test_force_copy_facade(make_file, tmp_path: Path) -> None:
    src = make_file("src.bin", pattern(1000))
    report = force_copy(str(src), str(tmp_path / "dst.bin"), block_size=256, max_retries=1)
    assert report.exit_code == 0
    assert report.bad_bytes == 0


def test_module_entrypoint(make_file, tmp_path: Path) -> None:
    src = make_file("src.bin", pattern(100))
    dst = tmp_path / "dst.bin"
    result = subprocess.run(
        [sys.executable, "-m", "forcecopy", str(src), str(dst)],
        cwd=str(repo_root()), capture_output=True, text=True, check=False,
    )
    assert result.returncode == 0, result.stderr
    assert dst.read_bytes() == pattern(100)
