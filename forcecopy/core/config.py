"""
forcecopy configuration
Defaults and the per-run copy settings.
"""
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BLOCK_SIZE = 4096
DEFAULT_MAX_RETRIES = 0
LEDGER_SUFFIX = ".badblocks"
LEDGER_VERSION = 1
PROGRESS_STEP_PERCENT = 5

ENV_BLOCK_SIZE = "FORCECOPY_BLOCK_SIZE"
ENV_RETRIES = "FORCECOPY_RETRIES"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def default_block_size() -> int:
    return _env_int(ENV_BLOCK_SIZE, DEFAULT_BLOCK_SIZE)


def default_max_retries() -> int:
    return _env_int(ENV_RETRIES, DEFAULT_MAX_RETRIES)


@dataclass
class CopyConfig:
    """Settings for a single copy run."""
    block_size: int = DEFAULT_BLOCK_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    overwrite: bool = False
    delete_source: bool = False
    start: int = 0
    end: Optional[int] = None

    def validate(self) -> "CopyConfig":
        if self.block_size <= 0:
            raise ValueError(f"block size must be positive, got {self.block_size}")
        if self.max_retries < 0:
            raise ValueError(f"retry count cannot be negative, got {self.max_retries}")
        if self.start < 0:
            raise ValueError(f"start offset cannot be negative, got {self.start}")
        if self.end is not None and self.end < self.start:
            raise ValueError(f"end offset {self.end} is before start offset {self.start}")
        return self
