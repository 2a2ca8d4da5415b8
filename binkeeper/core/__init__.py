"""
Core functionality for BinKeeper.

This package contains the foundational modules that the lifecycle manager
depends on: platform resolution, downloads, archives, installation and locks.
"""

from .exceptions import (
    BinKeeperError,
    ConfigurationError,
    UnsupportedPlatformError,
    AssetNotFoundError,
    ConfigError,
    NetworkError,
    RemoteError,
    MalformedResponseError,
    DownloadError,
    ExtractionError,
    InsecureArchiveError,
    LocatorError,
    InstallError,
    OperationCancelled,
)

from .platform import (
    PlatformInfo,
    PlatformTarget,
    detect_platform,
    resolve_platform,
    is_supported_platform,
)

from .version import normalize_version, versions_match

from .locking import LockManager, LockTimeout

__all__ = [
    "BinKeeperError",
    "ConfigurationError",
    "UnsupportedPlatformError",
    "AssetNotFoundError",
    "ConfigError",
    "NetworkError",
    "RemoteError",
    "MalformedResponseError",
    "DownloadError",
    "ExtractionError",
    "InsecureArchiveError",
    "LocatorError",
    "InstallError",
    "OperationCancelled",
    "PlatformInfo",
    "PlatformTarget",
    "detect_platform",
    "resolve_platform",
    "is_supported_platform",
    "normalize_version",
    "versions_match",
    "LockManager",
    "LockTimeout",
]
