"""
Cross-platform file system utilities for BinKeeper.

This module provides the filesystem side of an install:
- Archive extraction (zip, tar.gz) with path validation
- Uniquely named scratch directories with guaranteed cleanup
- Executable installation (rename fast path, copy fallback, permission bits)
- Safe recursive deletion
"""

import logging
import os
import shutil
import sys
import tarfile
import tempfile
import time
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from binkeeper.core.exceptions import (
    ExtractionError,
    InsecureArchiveError,
    InstallError,
)

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = os.name == "nt"

EXECUTABLE_MODE = 0o755


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Example:
        >>> is_relative_to(Path("/home/user/project/file.txt"), Path("/home/user"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


# ============================================================================
# Archive Extraction
# ============================================================================


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Prevents directory traversal attacks (e.g., paths containing '../').

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


def extract_archive(archive_path: Union[str, Path], destination: Union[str, Path]) -> None:
    """
    Extract an archive to a destination directory.

    Archives whose name ends in '.zip' are unpacked as zip files; everything
    else is treated as gzip-compressed tar. The full tree, including nested
    directories, is materialized under destination with relative paths kept.

    Args:
        archive_path: Path to the archive file
        destination: Directory to extract to

    Raises:
        ExtractionError: If extraction fails (message carries the underlying
            library diagnostic)
        InsecureArchiveError: If archive contains malicious paths

    Example:
        >>> extract_archive('typmark-cli-x86_64-unknown-linux-gnu.tar.gz', '/tmp/x')
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ExtractionError(f"Archive not found: {archive_path}")

    logger.info(f"Extracting {archive_path.name} to {destination}")

    try:
        destination.mkdir(parents=True, exist_ok=True)
        if archive_path.name.endswith(".zip"):
            _extract_zip(archive_path, destination)
        else:
            _extract_tar_gz(archive_path, destination)
    except InsecureArchiveError:
        raise
    except (zipfile.BadZipFile, tarfile.TarError, EOFError, OSError) as e:
        raise ExtractionError(f"Failed to extract {archive_path.name}: {e}") from e


def _extract_zip(archive_path: Path, destination: Path) -> None:
    """Extract a ZIP archive."""
    with zipfile.ZipFile(archive_path, "r") as zf:
        members = zf.namelist()

        # Validate all paths first
        for member in members:
            _validate_archive_path(member, destination)

        zf.extractall(destination)


def _extract_tar_gz(archive_path: Path, destination: Path) -> None:
    """Extract a .tar.gz archive."""
    with tarfile.open(archive_path, "r:gz") as tar:
        members = tar.getmembers()

        # Validate all paths first
        for member in members:
            _validate_archive_path(member.name, destination)

        # Extract with filter for security (Python 3.12+)
        # For older Python, we've already validated paths above
        if sys.version_info >= (3, 12):
            tar.extractall(destination, filter="data")
        else:
            tar.extractall(destination)


# ============================================================================
# Scratch Space
# ============================================================================


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        OSError: If deletion fails
    """
    path = Path(path).resolve()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists():
        return

    if IS_WINDOWS:

        def handle_remove_readonly(func, path, exc):
            """Error handler for Windows read-only files."""
            if not os.access(path, os.W_OK):
                os.chmod(path, 0o777)
                func(path)
            else:
                raise exc

        # onerror is deprecated from Python 3.12 in favor of onexc
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=handle_remove_readonly)
        else:
            shutil.rmtree(
                path,
                onerror=lambda func, p, exc_info: handle_remove_readonly(
                    func, p, exc_info[1]
                ),
            )
    else:
        shutil.rmtree(path)


@contextmanager
def scratch_directory(parent: Union[str, Path]) -> Iterator[Path]:
    """
    Create a uniquely named scratch directory for one install attempt.

    The name carries a millisecond timestamp plus a random suffix so
    concurrent installs never collide. The directory is removed recursively
    on exit, whether the body succeeded or raised.

    Example:
        >>> with scratch_directory(storage_dir) as scratch:
        ...     download_file(url, scratch / "tool.tar.gz")
    """
    parent = Path(parent)
    try:
        parent.mkdir(parents=True, exist_ok=True)
        scratch = Path(
            tempfile.mkdtemp(prefix=f"tmp-{int(time.time() * 1000)}-", dir=parent)
        )
    except OSError as e:
        raise InstallError(f"Cannot create scratch directory in {parent}: {e}") from e
    logger.debug(f"Created scratch directory: {scratch}")

    try:
        yield scratch
    finally:
        try:
            safe_rmtree(scratch, require_prefix=parent)
            logger.debug(f"Removed scratch directory: {scratch}")
        except OSError as e:
            logger.warning(f"Failed to remove scratch directory {scratch}: {e}")


# ============================================================================
# Installation
# ============================================================================


def select_install_strategy(source: Path, destination: Path) -> str:
    """
    Choose how to move source onto destination.

    Returns:
        'rename' when both paths live on the same device, otherwise 'copy'
    """
    try:
        same_device = os.stat(source).st_dev == os.stat(destination.parent).st_dev
    except OSError:
        return "copy"
    return "rename" if same_device else "copy"


def install_binary(
    source: Union[str, Path],
    destination: Union[str, Path],
    is_windows: Optional[bool] = None,
) -> Path:
    """
    Move an executable into its final location and mark it executable.

    Same-device installs use an atomic rename. Cross-device installs (or any
    failed rename) copy into a temporary sibling of destination,
    atomically replace destination with it, then delete source. The copy
    fallback is not atomic as a whole: for a moment both source and
    destination exist, and a crash between the replace and the delete leaves
    the source behind in scratch space.

    On non-Windows platforms the destination mode is set to 0755.

    Args:
        source: Located executable inside scratch space
        destination: Final managed path
        is_windows: Override platform detection (for tests)

    Returns:
        Destination path

    Raises:
        InstallError: If both strategies fail or permissions cannot be set
    """
    source = Path(source)
    destination = Path(destination)
    if is_windows is None:
        is_windows = IS_WINDOWS

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise InstallError(f"Cannot create {destination.parent}: {e}") from e

    strategy = select_install_strategy(source, destination)
    if strategy == "rename":
        try:
            os.replace(source, destination)
        except OSError as e:
            logger.warning(f"Rename failed, copying instead: {e}")
            strategy = "copy"

    if strategy == "copy":
        _copy_then_delete(source, destination)

    if not is_windows:
        try:
            os.chmod(destination, EXECUTABLE_MODE)
        except OSError as e:
            raise InstallError(
                f"Failed to set executable permissions on {destination}: {e}"
            ) from e

    logger.info(f"Installed executable at {destination} ({strategy})")
    return destination


def _copy_then_delete(source: Path, destination: Path) -> None:
    """Copy source next to destination, swap it in, then delete source."""
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=destination.parent, prefix=f".{destination.name}.", suffix=".tmp"
    )
    os.close(temp_fd)
    temp_path = Path(temp_path_str)

    try:
        shutil.copyfile(source, temp_path)
        os.replace(temp_path, destination)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise InstallError(f"Failed to copy {source} to {destination}: {e}") from e

    try:
        source.unlink()
    except OSError as e:
        # Scratch cleanup removes it later
        logger.warning(f"Installed, but failed to remove {source}: {e}")


__all__ = [
    "IS_WINDOWS",
    "is_relative_to",
    "extract_archive",
    "safe_rmtree",
    "scratch_directory",
    "select_install_strategy",
    "install_binary",
]
