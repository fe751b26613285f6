"""Orchestrator for fresh/overwrite/merge copy runs."""
from __future__ import annotations
import os
from typing import Optional

from ..core.config import CopyConfig
from ..core.logger import get_logger
from ..core.platform_utils import is_read_only, set_read_only
from ..imaging.copy_engine import CopyOrchestrator, CopyReport, Opener, open_raw
from ..imaging.source_selector import CopyMode
from .validators import EXIT_OK

log = get_logger(__name__)


class CopyController:
    def __init__(self, config: Optional[CopyConfig] = None, open_source: Opener = open_raw):
        self.config = (config or CopyConfig()).validate()
        self.open_source = open_source

    def select_mode(self, destination: str, auxiliary: Optional[str] = None) -> CopyMode:
        if self.config.overwrite:
            if auxiliary is None and not os.path.exists(destination):
                return CopyMode.FRESH
            return CopyMode.OVERWRITE_BAD_ONLY
        if auxiliary is not None:
            return CopyMode.MERGE_FROM_PARTIAL
        return CopyMode.FRESH

    def copy(self, source: str, destination: str, auxiliary: Optional[str] = None) -> CopyReport:
        mode = self.select_mode(destination, auxiliary)
        log.info("Copying %s -> %s (%s, %d-byte blocks, %d retries)",
                 source, destination, mode.value, self.config.block_size, self.config.max_retries)
        orchestrator = CopyOrchestrator(
            source,
            destination,
            self.config,
            mode=mode,
            auxiliary=auxiliary,
            open_source=self.open_source,
        )
        report = orchestrator.run()
        if report.exit_code == EXIT_OK and self.config.delete_source:
            self._delete_source(source)
        return report

    def _delete_source(self, source: str) -> None:
        if is_read_only(source):
            set_read_only(source, False)
        os.remove(source)
        log.info("Deleted source %s", source)
