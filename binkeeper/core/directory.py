"""
Directory management for BinKeeper.

Directory Structure:
    Storage (~/.binkeeper/ or %USERPROFILE%\\.binkeeper\\ by default):
        - <tool executable>  : The managed executable
        - lock/              : Install mutex files
        - tmp-<ms>-<rand>/   : Scratch space for one install attempt (transient)
"""

import os
from pathlib import Path

from binkeeper.core.exceptions import ConfigurationError


def get_global_cache_dir() -> Path:
    """
    Get the platform-specific default storage directory.

    Returns:
        Path: The default storage directory path.
            - Windows: %USERPROFILE%\\.binkeeper
            - Linux/macOS: ~/.binkeeper/

    Raises:
        ConfigurationError: If USERPROFILE is not set on Windows
    """
    if os.name == "nt":  # Windows
        user_profile = os.environ.get("USERPROFILE")
        if not user_profile:
            raise ConfigurationError(
                "USERPROFILE environment variable is not set. "
                "Cannot determine storage directory."
            )
        return Path(user_profile) / ".binkeeper"
    else:  # Linux/macOS
        return Path.home() / ".binkeeper"


def ensure_storage_dir(path: Path) -> Path:
    """
    Create the storage directory if it doesn't exist.

    Raises:
        ConfigurationError: If the directory cannot be created
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot create storage directory {path}: {e}"
        ) from e
    return path
