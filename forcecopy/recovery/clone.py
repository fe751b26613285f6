"""Facade for the forced copy engine."""
from __future__ import annotations
from typing import Any, Optional
from ..core.config import CopyConfig
from ..imaging.copy_engine import CopyReport
from .core import CopyController


def force_copy(src: str, dst: str, auxiliary: Optional[str] = None, **settings: Any) -> CopyReport:
    return CopyController(CopyConfig(**settings)).copy(src, dst, auxiliary)
