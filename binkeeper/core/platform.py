"""
Platform detection for BinKeeper.

This module maps the running operating system and CPU architecture to a
release target: the local executable filename and the suffix that identifies
the matching asset in a published release.

The mapping is a data table. Supporting a new platform means adding one row
to ``RELEASE_TARGETS``.

Usage:
    from binkeeper.core.platform import resolve_platform

    target = resolve_platform("typmark-cli")
    print(target.binary_name)   # 'typmark-cli' or 'typmark-cli.exe'
    print(target.asset_suffix)  # e.g. 'x86_64-unknown-linux-gnu.tar.gz'
"""

import functools
import platform
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from binkeeper.core.exceptions import UnsupportedPlatformError

# Architecture wildcard used in RELEASE_TARGETS
ANY_ARCH = "*"

# (os, arch) -> asset suffix. Exact arch rows win over the ANY_ARCH row.
RELEASE_TARGETS: Dict[Tuple[str, str], str] = {
    ("windows", ANY_ARCH): "x86_64-pc-windows-msvc.zip",
    ("macos", "arm64"): "aarch64-apple-darwin.tar.gz",
    ("macos", ANY_ARCH): "x86_64-apple-darwin.tar.gz",
    ("linux", ANY_ARCH): "x86_64-unknown-linux-gnu.tar.gz",
}

# Executable extension per OS (empty for Unix-like systems)
EXECUTABLE_EXTENSIONS: Dict[str, str] = {
    "windows": ".exe",
}


@dataclass(frozen=True)
class PlatformInfo:
    """
    Host platform as seen by BinKeeper.

    Attributes:
        os: Operating system ('windows', 'linux', 'macos', or the raw name)
        arch: CPU architecture ('x64', 'arm64', 'x86', 'arm', or the raw name)
    """

    os: str
    arch: str

    def platform_string(self) -> str:
        """
        Get canonical platform string (e.g., 'linux-x64', 'macos-arm64').

        Example:
            >>> PlatformInfo('linux', 'x64').platform_string()
            'linux-x64'
        """
        return f"{self.os}-{self.arch}"

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"


@dataclass(frozen=True)
class PlatformTarget:
    """Expected local executable name and remote asset suffix."""

    binary_name: str
    asset_suffix: str


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform information.

    This function is cached - it only runs detection once per process.
    """
    return PlatformInfo(os=_detect_os(), arch=_detect_architecture())


def _detect_os() -> str:
    """
    Detect operating system.

    Returns:
        Normalized OS name: 'windows', 'linux', 'macos', or the lowercased
        raw system name for anything else
    """
    system = platform.system().lower()

    if system == "windows":
        return "windows"
    elif system == "darwin":
        return "macos"
    elif system == "linux":
        return "linux"
    return system


def _detect_architecture() -> str:
    """
    Detect CPU architecture.

    Returns:
        Normalized architecture: 'x64', 'arm64', 'x86', 'arm'
    """
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x64"
    elif machine in ("aarch64", "arm64"):
        return "arm64"
    elif machine in ("i386", "i686", "x86"):
        return "x86"
    elif machine.startswith("arm"):
        return "arm"
    else:
        # Return original for unknown architectures
        return machine


def asset_suffix_for(info: PlatformInfo) -> Optional[str]:
    """Look up the release asset suffix for a platform, or None if unsupported."""
    suffix = RELEASE_TARGETS.get((info.os, info.arch))
    if suffix is None:
        suffix = RELEASE_TARGETS.get((info.os, ANY_ARCH))
    return suffix


def executable_name(tool_name: str, info: Optional[PlatformInfo] = None) -> str:
    """
    Get the local executable filename for a tool.

    Example:
        >>> executable_name('typmark-cli', PlatformInfo('windows', 'x64'))
        'typmark-cli.exe'
    """
    if info is None:
        info = detect_platform()
    return tool_name + EXECUTABLE_EXTENSIONS.get(info.os, "")


def resolve_platform(
    tool_name: str, info: Optional[PlatformInfo] = None
) -> PlatformTarget:
    """
    Resolve the release target for the running (or given) platform.

    Args:
        tool_name: Base executable name without extension (e.g. 'typmark-cli')
        info: Platform to resolve. If None, detects current platform.

    Returns:
        PlatformTarget with local binary name and remote asset suffix

    Raises:
        UnsupportedPlatformError: If no release target exists for the platform
    """
    if info is None:
        info = detect_platform()

    suffix = asset_suffix_for(info)
    if suffix is None:
        raise UnsupportedPlatformError(info.os, info.arch)

    return PlatformTarget(
        binary_name=executable_name(tool_name, info), asset_suffix=suffix
    )


def is_supported_platform(info: Optional[PlatformInfo] = None) -> bool:
    """Check if a release target exists for the platform."""
    if info is None:
        info = detect_platform()
    return asset_suffix_for(info) is not None


def clear_platform_cache():
    """
    Clear the platform detection cache.

    This forces the next call to detect_platform() to re-detect.
    """
    detect_platform.cache_clear()


__all__ = [
    "RELEASE_TARGETS",
    "PlatformInfo",
    "PlatformTarget",
    "detect_platform",
    "asset_suffix_for",
    "executable_name",
    "resolve_platform",
    "is_supported_platform",
    "clear_platform_cache",
]
