"""
Exception types raised by ftb-dl.

Every error the CLI is expected to report derives from :class:`FTBDLError`.
Timeout errors additionally derive from the builtin :class:`TimeoutError`
so callers can catch them generically.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class FTBDLError(Exception):
    """Base class for all ftb-dl errors."""


class RequestError(FTBDLError):
    """An HTTP request failed (bad status, transport failure or bad body)."""

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class RequestTimeoutError(RequestError, TimeoutError):
    """A request was admitted but did not settle within its timeout."""


class QueueTimeoutError(FTBDLError, TimeoutError):
    """Waiting for spare capacity in the admission gate timed out."""


class IntegrityError(FTBDLError):
    """A file's digest does not match the manifest."""

    def __init__(self, path: Path, expected: str, actual: Optional[str]):
        super().__init__(
            f"Integrity check failed for {path}: expected {expected}, got {actual}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class FileDownloadError(FTBDLError):
    """A single file could not be downloaded after all attempts."""

    def __init__(self, path: str, attempts: int, cause: Optional[BaseException]):
        super().__init__(
            f"Failed to download {path} after {attempts} attempt(s): {cause}"
        )
        self.path = path
        self.attempts = attempts
        self.cause = cause


class BatchDownloadError(FTBDLError):
    """One or more files of a modpack version failed to download."""

    def __init__(self, failures: Sequence[FileDownloadError]):
        names = ", ".join(f.path for f in failures[:5])
        more = f" (+{len(failures) - 5} more)" if len(failures) > 5 else ""
        super().__init__(f"{len(failures)} file(s) failed to download: {names}{more}")
        self.failures = list(failures)


class UnsafePathError(FTBDLError, ValueError):
    """A manifest path resolves outside the staging directory."""


class DestinationExistsError(FTBDLError, FileExistsError):
    """The output path already exists and overwriting was not requested."""
