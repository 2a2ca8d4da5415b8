"""
Centralized exception hierarchy for BinKeeper.

Every exception carries a ``stage`` naming the pipeline step that failed, so
callers can render a single human-readable message for the user.
"""

from typing import List, Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class BinKeeperError(Exception):
    """Base exception for all BinKeeper errors."""

    stage = "binkeeper"

    def describe(self) -> str:
        """Render as '<stage> failed: <cause>'."""
        return f"{self.stage} failed: {self}"


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(BinKeeperError):
    """User-actionable configuration problem (not a crash)."""

    stage = "configuration"


class UnsupportedPlatformError(ConfigurationError):
    """Raised when no release target exists for the running OS/architecture."""

    def __init__(self, os_name: str, arch: str):
        self.os_name = os_name
        self.arch = arch
        super().__init__(f"Unsupported platform: {os_name}/{arch}")


class AssetNotFoundError(ConfigurationError):
    """Raised when a release has no asset matching the platform suffix."""

    def __init__(self, tag: str, suffix: str, available: Optional[List[str]] = None):
        self.tag = tag
        self.suffix = suffix
        self.available = available or []
        msg = f"No matching release asset for this platform ({suffix}) in {tag}"
        if self.available:
            msg += f". Assets: {', '.join(self.available)}"
        super().__init__(msg)


class ConfigError(ConfigurationError):
    """Configuration file parsing or validation error."""

    pass


# ============================================================================
# Remote Exceptions
# ============================================================================


class NetworkError(BinKeeperError):
    """Transport-level failure talking to a remote endpoint."""

    stage = "release metadata"


class RemoteError(BinKeeperError):
    """Remote endpoint answered with a non-success status."""

    stage = "release metadata"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MalformedResponseError(BinKeeperError):
    """Release metadata could not be decoded."""

    stage = "release metadata"


class DownloadError(NetworkError):
    """Raised when an asset download fails."""

    stage = "download"


# ============================================================================
# Filesystem Exceptions
# ============================================================================


class ExtractionError(BinKeeperError):
    """Failed to extract an archive."""

    stage = "extraction"


class InsecureArchiveError(ExtractionError):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


class LocatorError(BinKeeperError):
    """Executable not found, or ambiguous, in an extracted tree."""

    stage = "locate"

    def __init__(
        self,
        message: str,
        candidates: Optional[List[str]] = None,
        files: Optional[List[str]] = None,
    ):
        self.candidates = candidates or []
        self.files = files or []
        if self.candidates:
            message += f" Candidates: {', '.join(self.candidates)}."
        if self.files:
            message += f" Files: {', '.join(self.files)}"
        super().__init__(message)


class InstallError(BinKeeperError):
    """Failed to place the executable at its managed location."""

    stage = "install"


class OperationCancelled(BinKeeperError):
    """Raised when the caller's cancellation signal is observed."""

    stage = "cancelled"
