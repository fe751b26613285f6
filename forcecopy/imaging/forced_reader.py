"""Block reads with bounded retries on media errors."""
from __future__ import annotations
import errno
import io
from dataclasses import dataclass
from typing import BinaryIO, Optional

from ..core.logger import get_logger
from ..recovery.validators import UnclassifiedStreamFailure

log = get_logger(__name__)

TRANSIENT_ERRNOS = {errno.EIO, errno.ENXIO}
for _name in ("ENODATA", "EBADMSG", "EREMOTEIO"):
    if hasattr(errno, _name):
        TRANSIENT_ERRNOS.add(getattr(errno, _name))

# ERROR_CRC, ERROR_DEVICE_HARDWARE_ERROR, ERROR_IO_DEVICE, ERROR_FILE_CORRUPT
TRANSIENT_WINERRORS = {23, 483, 1117, 1392}


def is_transient_read_error(exc: BaseException) -> bool:
    """True for device/media errors that a repeated read may get past."""
    if not isinstance(exc, OSError):
        return False
    if getattr(exc, "winerror", None) in TRANSIENT_WINERRORS:
        return True
    return exc.errno in TRANSIENT_ERRNOS


def stream_length(stream: BinaryIO) -> int:
    current = stream.tell()
    try:
        return stream.seek(0, io.SEEK_END)
    finally:
        stream.seek(current)


@dataclass(frozen=True)
class ReadResult:
    """
    Outcome of one forced read.

    ``length`` is the number of bytes the block should hold. On failure
    ``data`` is that many zero bytes.
    """
    data: bytes
    length: int
    success: bool
    failures: int = 0


class ForcedReader:
    def __init__(self, max_retries: int = 0):
        self.max_retries = max_retries

    def read(
        self,
        stream: BinaryIO,
        offset: int,
        block_size: int,
        max_retries: Optional[int] = None,
        length: Optional[int] = None,
    ) -> ReadResult:
        retries = self.max_retries if max_retries is None else max_retries
        failures = 0
        last_exc: Optional[OSError] = None
        while failures <= retries:
            try:
                data = self._read_once(stream, offset, block_size)
            except OSError as exc:
                if not is_transient_read_error(exc):
                    raise UnclassifiedStreamFailure(f"read at offset {offset} failed: {exc}") from exc
                failures += 1
                last_exc = exc
                log.warning("Read error at offset %d (attempt %d of %d): %s", offset, failures, retries + 1, exc)
                continue
            except ValueError as exc:
                # closed or otherwise unusable stream
                raise UnclassifiedStreamFailure(f"read at offset {offset} failed: {exc}") from exc
            if failures:
                log.info("Recovered block at offset %d after %d tries", offset, failures + 1)
            return ReadResult(data, len(data), True, failures)

        total = stream_length(stream) if length is None else length
        should_have_read = max(0, min(block_size, total - offset))
        log.warning(
            "Giving up on block at offset %d after %d tries; zero-filling %d bytes (%s)",
            offset, failures, should_have_read, last_exc,
        )
        return ReadResult(bytes(should_have_read), should_have_read, False, failures)

    @staticmethod
    def _read_once(stream: BinaryIO, offset: int, block_size: int) -> bytes:
        stream.seek(offset)
        chunks = []
        remaining = block_size
        while remaining > 0:
            chunk = stream.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)
