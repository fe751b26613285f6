"""CLI entrypoint for forcecopy."""
from __future__ import annotations

import sys

from .cli.forcecopy_cli import main


if __name__ == "__main__":
    sys.exit(main())
