"""
Find the executable inside an extracted release archive.

Archives are not guaranteed to place the executable at their root, so the
extracted tree is walked depth-first. Resolution is a pure function over the
ordered entry list:

1. The first entry named exactly ``expected_name`` wins.
2. Otherwise, entries that merely look like the tool (see
   ``is_likely_binary``) are collected across the whole tree; exactly one
   such candidate is accepted, zero or several are reported as a
   ``LocatorError`` listing what was found.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

from binkeeper.core.exceptions import LocatorError
from binkeeper.core.filesystem import IS_WINDOWS

logger = logging.getLogger(__name__)

# Cap on file paths included in error messages
MAX_LISTED_FILES = 20


def default_base_name(expected_name: str) -> str:
    """
    Derive the heuristic prefix from an executable name.

    Example:
        >>> default_base_name('typmark-cli.exe')
        'typmark'
    """
    stem = expected_name[:-4] if expected_name.lower().endswith(".exe") else expected_name
    return stem.split("-", 1)[0]


def scan_tree(root: Path) -> List[Path]:
    """
    List files and symbolic links under root, depth-first.

    Within each directory, its own entries (sorted by name) come before the
    contents of its subdirectories. Symbolic links are reported, never
    traversed, and no directory is visited twice.
    """
    entries: List[Path] = []
    visited = set()

    def walk(directory: Path) -> None:
        real = os.path.realpath(directory)
        if real in visited:
            return
        visited.add(real)

        try:
            with os.scandir(directory) as it:
                children = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Cannot list {directory}: {e}")
            return

        subdirs = []
        for child in children:
            if child.is_symlink() or child.is_file(follow_symlinks=False):
                entries.append(Path(child.path))
            elif child.is_dir(follow_symlinks=False):
                subdirs.append(Path(child.path))

        for subdir in subdirs:
            walk(subdir)

    walk(Path(root))
    return entries


def is_likely_binary(entry_name: str, base_name: str, is_windows: bool) -> bool:
    """Check whether a file name looks like the tool's executable."""
    if is_windows:
        lowered = entry_name.lower()
        return lowered.startswith(base_name.lower()) and lowered.endswith(".exe")
    return entry_name.startswith(base_name)


def select_binary(
    entries: Sequence[Path],
    expected_name: str,
    base_name: str,
    is_windows: bool,
) -> Optional[Path]:
    """
    Apply the exact-match-first, unique-fallback-otherwise rule.

    Returns:
        Chosen path, or None when nothing (or more than one thing) matches
    """
    for entry in entries:
        if entry.name == expected_name:
            return entry

    candidates = likely_candidates(entries, base_name, is_windows)
    if len(candidates) == 1:
        return candidates[0]
    return None


def likely_candidates(
    entries: Sequence[Path], base_name: str, is_windows: bool
) -> List[Path]:
    return [e for e in entries if is_likely_binary(e.name, base_name, is_windows)]


def locate_binary(
    root: Path,
    expected_name: str,
    base_name: Optional[str] = None,
    is_windows: Optional[bool] = None,
) -> Path:
    """
    Locate the executable in an extracted tree.

    Args:
        root: Extraction directory
        expected_name: Exact executable filename (e.g. 'typmark-cli')
        base_name: Prefix used by the fallback heuristic (derived from
            expected_name if None)
        is_windows: Override platform detection (for tests)

    Returns:
        Path to the executable

    Raises:
        LocatorError: If no unambiguous executable exists; carries the
            candidate paths and a bounded listing of the files examined
    """
    if is_windows is None:
        is_windows = IS_WINDOWS
    if base_name is None:
        base_name = default_base_name(expected_name)

    entries = scan_tree(root)
    found = select_binary(entries, expected_name, base_name, is_windows)
    if found is not None:
        logger.debug(f"Located executable: {found}")
        return found

    candidates = likely_candidates(entries, base_name, is_windows)
    listing = [str(p) for p in entries[:MAX_LISTED_FILES]]
    if candidates:
        raise LocatorError(
            f"Extracted executable '{expected_name}' is ambiguous.",
            candidates=[str(p) for p in candidates],
            files=listing,
        )
    raise LocatorError(
        f"Extracted executable '{expected_name}' not found.", files=listing
    )


__all__ = [
    "MAX_LISTED_FILES",
    "default_base_name",
    "scan_tree",
    "is_likely_binary",
    "select_binary",
    "locate_binary",
]
