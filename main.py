#!/usr/bin/env python3
"""
forcecopy - copy files off failing media
Main application entry point
"""

import sys
from pathlib import Path

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).parent))

from forcecopy.cli.forcecopy_cli import main


if __name__ == "__main__":
    sys.exit(main())
