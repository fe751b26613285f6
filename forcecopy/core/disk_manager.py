"""
forcecopy volume helpers
Free-space checks and volume lookup for the files being copied
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional
import psutil

from ..recovery.validators import InsufficientSpace


@dataclass
class VolumeInfo:
    """Volume a path lives on"""
    mountpoint: str
    device: str
    filesystem: str
    total_bytes: int
    free_bytes: int


class DiskManager:
    """Looks up the volumes behind source and destination paths"""

    def __init__(self):
        self.logger = logging.getLogger("forcecopy.core.disk_manager")

    @staticmethod
    def _existing_dir(path: str) -> str:
        directory = os.path.abspath(path)
        if not os.path.isdir(directory):
            directory = os.path.dirname(directory)
        while directory and not os.path.isdir(directory):
            parent = os.path.dirname(directory)
            if parent == directory:
                break
            directory = parent
        return directory or os.getcwd()

    def volume_for(self, path: str) -> Optional[VolumeInfo]:
        """Return the mounted volume holding ``path``, if psutil can see it"""
        target = os.path.realpath(self._existing_dir(path))
        best = None
        try:
            for partition in psutil.disk_partitions(all=True):
                mp = partition.mountpoint
                if not mp:
                    continue
                prefix = mp if mp.endswith(os.sep) else mp + os.sep
                if target == mp or target.startswith(prefix):
                    if best is None or len(mp) > len(best.mountpoint):
                        best = partition
            if best is None:
                return None
            usage = psutil.disk_usage(best.mountpoint)
        except (PermissionError, OSError) as e:
            self.logger.debug("Could not look up volume for %s: %s", path, e)
            return None

        return VolumeInfo(
            mountpoint=best.mountpoint,
            device=best.device,
            filesystem=best.fstype,
            total_bytes=usage.total,
            free_bytes=usage.free,
        )

    def free_space(self, path: str) -> int:
        return psutil.disk_usage(self._existing_dir(path)).free

    def ensure_free_space(self, destination: str, needed: int) -> None:
        """Raise InsufficientSpace when the destination volume cannot hold ``needed`` bytes"""
        try:
            free = self.free_space(destination)
        except OSError as e:
            self.logger.warning("Could not check free space for %s: %s", destination, e)
            return
        if free < needed:
            raise InsufficientSpace(
                f"Destination volume has {free} bytes free, {needed} bytes are needed for {destination}"
            )
        self.logger.debug("Destination volume has %d bytes free, %d needed", free, needed)

    def describe(self, label: str, path: str) -> None:
        volume = self.volume_for(path)
        if volume is None:
            return
        self.logger.info(
            "%s on %s (%s, %s), %d of %d bytes free",
            label, volume.mountpoint, volume.device, volume.filesystem,
            volume.free_bytes, volume.total_bytes,
        )
