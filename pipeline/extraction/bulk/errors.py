"""Error hierarchy shared by the download, check and transform stages.

Every failure the pipeline surfaces to the operator is an :class:`RfbError`;
``exit_code`` is what the CLI returns for it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class RfbError(Exception):
    """Root of every error the pipeline reports to the operator."""

    exit_code: int = 1


class ConfigError(RfbError, ValueError):
    """Invalid flag or configuration value."""

    exit_code = 2


class InvalidPeriodError(ConfigError):
    """A snapshot period that is not ``YYYY-MM``."""


class InternalError(RfbError):
    """An invariant of the pipeline itself was violated."""


# ---------------------------------------------------------------------------
# Download stage
# ---------------------------------------------------------------------------


class DownloadError(RfbError):
    """Base for failures tied to a single remote artifact."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url


class NetworkError(DownloadError):
    """Transient failure: timeout, connection reset, DNS, 5xx, 429..."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(url, message)
        self.status_code = status_code


class PermanentHTTPError(DownloadError):
    """The origin answered with a status that retrying cannot fix."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code


class MaxRetriesExceededError(DownloadError):
    def __init__(self, url: str, attempts: int, last_error: Exception) -> None:
        super().__init__(url, f"download failed after {attempts} attempts ({last_error})")
        self.attempts = attempts
        self.last_error = last_error


class ShortReadError(DownloadError):
    """Local size does not match the advertised content-length after a full fetch."""

    def __init__(self, url: str, expected: int, actual: int) -> None:
        super().__init__(url, f"expected {expected} bytes, got {actual}")
        self.expected = expected
        self.actual = actual


class DownloadCancelled(DownloadError):
    def __init__(self, url: str) -> None:
        super().__init__(url, "cancelled")


# ---------------------------------------------------------------------------
# Archives
# ---------------------------------------------------------------------------


class ArchiveCorruptError(RfbError):
    def __init__(self, path: Path, reason: str, member: Optional[str] = None) -> None:
        where = f"{path} [{member}]" if member else str(path)
        super().__init__(f"{where}: archive corrupt ({reason})")
        self.path = path
        self.reason = reason
        self.member = member
