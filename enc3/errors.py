"""
Error taxonomy for ENC3 recovery.

Decode failures are raised by `enc3.decode_buffer` and collected by the
delta brute-forcer. Filesystem failures are raised while reading or replacing
a file. The worker loop catches `Enc3Error` at the per-file boundary, so no
single file can stop a run.
"""

from __future__ import annotations

from typing import List, Optional, Tuple


class Enc3Error(Exception):
    """Base class for every ENC3 failure."""

    kind = "Enc3Error"


class DecodeError(Enc3Error):
    """A single decode attempt did not yield valid plaintext."""

    kind = "DecodeError"


class ContainerFormatError(DecodeError, ValueError):
    """The buffer is not a structurally valid ENC3 container."""

    kind = "ContainerFormat"


class TooShortError(ContainerFormatError):
    kind = "TooShort"


class BadMagicError(ContainerFormatError):
    kind = "BadMagic"


class TruncatedPayloadError(ContainerFormatError):
    kind = "TruncatedPayload"


class DecompressionFailedError(DecodeError):
    kind = "DecompressionFailed"


class ChecksumMismatchError(DecodeError):
    kind = "ChecksumMismatch"

    def __init__(self, expected: int, actual: int):
        super().__init__(f"checksum mismatch: stored 0x{expected:08x}, computed 0x{actual:08x}")
        self.expected = expected
        self.actual = actual


class BruteForceExhaustedError(Enc3Error):
    """No candidate delta produced a valid decode."""

    kind = "BruteForceExhausted"

    def __init__(self, attempts: List[Tuple[int, DecodeError]]):
        self.attempts = list(attempts)
        tried = ", ".join(f"0x{delta:08x}" for delta, _ in self.attempts)
        last = self.attempts[-1][1] if self.attempts else None
        detail = f"; last error: {last.kind}: {last}" if last is not None else ""
        super().__init__(f"no delta decoded the container (tried {tried or 'nothing'}){detail}")

    @property
    def last_error(self) -> Optional[DecodeError]:
        return self.attempts[-1][1] if self.attempts else None


class FileProcessingError(Enc3Error, OSError):
    """Filesystem failure while handling a single file."""

    kind = "FileProcessing"


class IOReadFailedError(FileProcessingError):
    kind = "IOReadFailed"


class IOWriteFailedError(FileProcessingError):
    kind = "IOWriteFailed"


class BackupFailedError(FileProcessingError):
    kind = "BackupFailed"


__all__ = [
    "BackupFailedError",
    "BadMagicError",
    "BruteForceExhaustedError",
    "ChecksumMismatchError",
    "ContainerFormatError",
    "DecodeError",
    "DecompressionFailedError",
    "Enc3Error",
    "FileProcessingError",
    "IOReadFailedError",
    "IOWriteFailedError",
    "TooShortError",
    "TruncatedPayloadError",
]
