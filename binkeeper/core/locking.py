"""
Install serialization for BinKeeper.

Only one install may write a given destination path at a time. Locks are
``filelock`` locks keyed by a digest of the resolved destination, stored
in the storage directory's ``lock/`` folder.

Two lock objects on the same file conflict even inside a single process, so
concurrent ``ensure``/``update`` calls in one process are serialized.
Exclusion between separate processes is a side effect of the file lock, not
a guarantee (network filesystems in particular may not honor it).

Usage:
    from binkeeper.core.locking import LockManager

    lock_manager = LockManager(storage_dir / "lock")
    with lock_manager.install_lock(destination, timeout=300):
        install_binary(source, destination)
"""

import hashlib
import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

logger = logging.getLogger(__name__)


class LockManager:
    """
    Manages install locks for managed executables.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Path):
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def lock_path_for(self, destination: Path) -> Path:
        """Get the lock file path for a destination executable."""
        resolved = str(Path(destination).resolve())
        digest = hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]
        return self.lock_dir / f"install-{Path(destination).name}-{digest}.lock"

    @contextmanager
    def install_lock(self, destination: Path, timeout: float = 300):
        """
        Acquire the install lock for a destination path.

        Args:
            destination: Managed executable path
            timeout: Maximum wait time in seconds (default: 300 for long downloads)

        Raises:
            LockTimeout: If lock can't be acquired within timeout
        """
        lock_path = self.lock_path_for(destination)
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired install lock: {lock_path}")
                yield
                logger.debug(f"Released install lock: {lock_path}")
        except LockTimeout as e:
            logger.error(
                f"Could not acquire install lock for {destination} after {timeout}s. "
                "Another install of this executable may be running."
            )
            raise LockTimeout(str(lock_path)) from e


__all__ = [
    "LockManager",
    "LockTimeout",
]
