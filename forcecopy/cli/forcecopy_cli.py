"""forcecopy CLI entrypoint."""
from __future__ import annotations
import argparse
import os
import sys
from .. import __version__
from ..core.config import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_MAX_RETRIES,
    ENV_BLOCK_SIZE,
    ENV_RETRIES,
    CopyConfig,
    default_block_size,
    default_max_retries,
)
from ..core.logger import get_logger, setup_logging
from ..recovery.core import CopyController
from ..recovery.validators import EXIT_PRECONDITION, EXIT_STREAM_FAILURE, ForceCopyError

log = get_logger(__name__)

EPILOG = """\
modes:
  SOURCE DEST                 fresh copy; DEST must not exist
  SOURCE DEST --overwrite     re-read only the blocks listed in DEST's ledger
  SOURCE DEST COPY --overwrite
                              repair the existing bad copy COPY, then name it after DEST
  SOURCE DEST PARTIAL         build DEST from PARTIAL, reading PARTIAL's bad blocks from SOURCE

exit codes: 0 clean copy, 1 copied with bad blocks, 2 destination exists,
3 no ledger for the file to repair/merge, 4 other precondition failure,
5 unrecoverable stream error.

Running two copies against the same destination at once is not supported.
"""


def _non_negative(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return value


def _positive(text: str) -> int:
    value = int(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return value


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        # argparse's own code 2 would read as "destination exists"
        self.print_usage(sys.stderr)
        self.exit(EXIT_PRECONDITION, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    p = _Parser(
        prog="forcecopy",
        description="Copy a file off failing media, zero-filling and recording unreadable blocks",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("source", help="File to copy")
    p.add_argument("destination", help="Where the copy goes")
    p.add_argument("auxiliary", nargs="?", help="Existing bad copy (with --overwrite) or partial copy to merge from")
    p.add_argument("-b", "--block-size", type=_positive, default=None,
                   help=f"Bytes per read (default: {DEFAULT_BLOCK_SIZE}, or ${ENV_BLOCK_SIZE})")
    p.add_argument("-r", "--retries", type=_non_negative, default=None,
                   help=f"Extra attempts per failing block (default: {DEFAULT_MAX_RETRIES}, or ${ENV_RETRIES})")
    p.add_argument("-o", "--overwrite", action="store_true", help="Repair an existing copy using its ledger")
    p.add_argument("--delete-source", action="store_true", help="Delete the source after a clean copy")
    p.add_argument("--start", type=_non_negative, default=0, help=argparse.SUPPRESS)
    p.add_argument("--end", type=_non_negative, default=None, help=argparse.SUPPRESS)
    p.add_argument("-v", "--verbose", action="store_true")
    p.add_argument("--log-file", help="Also write the full log to this file")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def config_from_args(args: argparse.Namespace) -> CopyConfig:
    block_size = args.block_size if args.block_size is not None else default_block_size()
    retries = args.retries if args.retries is not None else default_max_retries()
    return CopyConfig(
        block_size=block_size,
        max_retries=retries,
        overwrite=args.overwrite,
        delete_source=args.delete_source,
        start=args.start,
        end=args.end,
    ).validate()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        config = config_from_args(args)
    except ValueError as exc:
        log.error("%s", exc)
        return EXIT_PRECONDITION

    try:
        report = CopyController(config).copy(args.source, args.destination, args.auxiliary)
    except ForceCopyError as exc:
        log.error("%s", exc)
        return exc.exit_code
    except OSError as exc:
        log.error("%s", exc)
        return EXIT_STREAM_FAILURE

    if report.bad_blocks:
        log.warning("Done with %d bad bytes: %s (ledger %s)",
                    report.bad_bytes, report.destination, report.ledger_path)
    else:
        log.info("Done: %s", os.path.abspath(report.destination))
    if report.stale_ledger is not None:
        log.info("Recovered %d of %d previously unreadable bytes",
                 report.stale_ledger.total_bytes - report.bad_bytes, report.stale_ledger.total_bytes)
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
