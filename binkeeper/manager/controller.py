"""
Managed executable lifecycle.

This module orchestrates the full lifecycle of the managed tool:
1. Resolve the executable path (explicit override or managed storage)
2. Check whether it already exists
3. Decide, by policy and version comparison, whether to fetch or update
4. Fetch latest release -> select asset -> download -> extract -> locate
   -> install, all inside a scratch directory that is always removed

Only a complete, located, executable artifact is ever moved to the managed
path, so a failed install leaves any previous executable untouched.

Example:
    >>> from binkeeper.config import load_config
    >>> manager = CliManager(load_config())
    >>> artifact = manager.ensure()
    >>> subprocess.run([str(artifact.path), "--render"], input=text, ...)
"""

import logging
import subprocess
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import requests

from binkeeper.config.parser import ManagerConfig
from binkeeper.core.directory import ensure_storage_dir
from binkeeper.core.download import DownloadProgress, download_file
from binkeeper.core.exceptions import (
    AssetNotFoundError,
    BinKeeperError,
    ConfigurationError,
    InstallError,
)
from binkeeper.core.filesystem import extract_archive, install_binary, scratch_directory
from binkeeper.core.locking import LockManager, LockTimeout
from binkeeper.core.platform import (
    PlatformInfo,
    PlatformTarget,
    detect_platform,
    resolve_platform,
)
from binkeeper.core.version import normalize_version, versions_match
from binkeeper.manager.locator import locate_binary
from binkeeper.manager.releases import (
    AssetDescriptor,
    ReleaseDescriptor,
    fetch_latest_release,
    select_asset,
)

logger = logging.getLogger(__name__)

VERSION_QUERY_TIMEOUT = 10


class LifecycleState(Enum):
    """States of one ensure()/update() run."""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    PRESENT = "present"
    MISSING = "missing"
    UP_TO_DATE = "up_to_date"
    UPDATE_OFFERED = "update_offered"
    INSTALLING = "installing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ManagedArtifact:
    """
    The executable consumers invoke.

    Attributes:
        path: Absolute filesystem location
        managed: True if BinKeeper owns its lifecycle, False if the path was
            configured explicitly
    """

    path: Path
    managed: bool


@dataclass
class UpdateInfo:
    """Information about an available update."""

    current_version: str
    """Locally installed version ('' when unknown)"""

    latest_version: str
    """Latest published version (normalized)"""

    release: ReleaseDescriptor
    """Release the update would install"""


def query_version(
    executable: Path, version_arg: str = "--version", timeout: int = VERSION_QUERY_TIMEOUT
) -> str:
    """
    Ask an executable for its version.

    The first non-empty stdout line is used, whatever the exit code; if it
    holds several words (e.g. 'typmark-cli 0.3.1') the last one is taken.

    Returns:
        Normalized version, or '' when the tool can't be run or prints nothing
    """
    try:
        result = subprocess.run(
            [str(executable), version_arg],
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Could not query version of {executable}: {e}")
        return ""

    if result.returncode != 0:
        logger.debug(
            f"{executable} {version_arg} exited with code {result.returncode}"
        )

    for line in result.stdout.splitlines():
        words = line.split()
        if words:
            return normalize_version(words[-1])
    return ""


class CliManager:
    """
    Lifecycle controller for one managed executable.

    Construct once per session and share it; concurrent ensure()/update()
    calls for the same destination are serialized by an install lock.

    Attributes:
        config: Manager configuration
        state: Current lifecycle state
    """

    def __init__(
        self,
        config: ManagerConfig,
        platform: Optional[PlatformInfo] = None,
        decide_update: Optional[Callable[[str, str], bool]] = None,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
        cancel_event: Optional[threading.Event] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the manager.

        Args:
            config: Manager configuration
            platform: Platform override (auto-detected if None)
            decide_update: Called with (current, latest) in 'prompt' mode;
                returns True to accept the update. Without it updates are
                declined.
            progress_callback: Optional download progress callback
            cancel_event: Optional cancellation signal honored at every
                network boundary
            session: Optional requests session for all HTTP calls
        """
        self.config = config
        self.platform = platform or detect_platform()
        self.decide_update = decide_update
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event
        self.session = session
        self.state = LifecycleState.UNRESOLVED
        self._artifact: Optional[ManagedArtifact] = None
        self._target: Optional[PlatformTarget] = None
        self._lock_manager: Optional[LockManager] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self) -> ManagedArtifact:
        """
        Resolve the executable path without touching the network.

        An explicit cli_path short-circuits to an unmanaged artifact. The
        managed path lives in the storage directory, which is created here.

        Raises:
            ConfigurationError: If the platform is unsupported or storage
                can't be created
        """
        if self._artifact is not None:
            return self._artifact

        if self.config.has_explicit_path:
            artifact = ManagedArtifact(
                path=Path(self.config.cli_path.strip()), managed=False
            )
        else:
            self._target = resolve_platform(self.config.tool.name, self.platform)
            storage = ensure_storage_dir(self.config.resolved_storage_dir())
            artifact = ManagedArtifact(
                path=(storage / self._target.binary_name).absolute(), managed=True
            )
            try:
                self._lock_manager = LockManager(storage / "lock")
            except OSError as e:
                raise ConfigurationError(
                    f"Cannot create lock directory in {storage}: {e}"
                ) from e

        self._artifact = artifact
        self._transition(LifecycleState.RESOLVED)
        return artifact

    def ensure(self) -> ManagedArtifact:
        """
        Guarantee a usable executable exists and return it.

        - Explicit path: returned as-is, never installed or updated.
        - Managed and missing: the latest release is installed.
        - Managed, present, auto_update off: returned without network calls.
        - Managed, present, auto_update on: local and latest versions are
          compared; a difference is offered (prompt mode) or applied (auto
          mode). Declining leaves the existing executable in place.

        Raises:
            BinKeeperError: On any stage failure (state becomes FAILED)
        """
        try:
            artifact = self.resolve()
            if not artifact.managed:
                logger.debug(f"Using configured executable: {artifact.path}")
                self._transition(LifecycleState.READY)
                return artifact

            with self._install_lock(artifact):
                self._ensure_managed(artifact)
        except BinKeeperError as e:
            self._fail(e)
            raise

        self._transition(LifecycleState.READY)
        return artifact

    def update(self) -> ManagedArtifact:
        """
        Install the latest release into the managed path, regardless of policy.

        Raises:
            ConfigurationError: If an explicit cli_path is configured
            BinKeeperError: On any stage failure
        """
        try:
            artifact = self.resolve()
            if not artifact.managed:
                raise ConfigurationError(
                    f"Executable {artifact.path} is configured explicitly and "
                    "is not managed; clear cli_path to enable updates"
                )
            with self._install_lock(artifact):
                self._install(artifact, self._fetch_release())
        except BinKeeperError as e:
            self._fail(e)
            raise

        self._transition(LifecycleState.READY)
        return artifact

    def check_for_update(self) -> Optional[UpdateInfo]:
        """
        Compare the local version with the latest release.

        Returns:
            UpdateInfo if versions differ (or the local one is unknown),
            None if up to date
        """
        artifact = self.resolve()
        release = self._fetch_release()
        return self._compare(artifact, release)

    def local_version(self) -> str:
        """Version reported by the resolved executable ('' if unknown)."""
        artifact = self.resolve()
        return query_version(
            artifact.path, self.config.tool.version_arg, VERSION_QUERY_TIMEOUT
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _ensure_managed(self, artifact: ManagedArtifact) -> None:
        if not artifact.path.exists():
            self._transition(LifecycleState.MISSING)
            logger.info(f"{self.config.tool.name} not found, installing latest release")
            self._install(artifact, self._fetch_release())
            return

        self._transition(LifecycleState.PRESENT)
        if not self.config.auto_update:
            return

        update = self._compare(artifact, self._fetch_release())
        if update is None:
            self._transition(LifecycleState.UP_TO_DATE)
            return

        self._transition(LifecycleState.UPDATE_OFFERED)
        if self._accept_update(update):
            self._install(artifact, update.release)
        else:
            logger.warning(
                f"{self.config.tool.name} update {update.latest_version} declined; "
                f"keeping {update.current_version or 'existing version'}"
            )

    def _compare(
        self, artifact: ManagedArtifact, release: ReleaseDescriptor
    ) -> Optional[UpdateInfo]:
        current = query_version(
            artifact.path, self.config.tool.version_arg, VERSION_QUERY_TIMEOUT
        )
        latest = normalize_version(release.tag)
        if not current:
            logger.warning("Local version unknown, treating as outdated")
        if versions_match(current, latest):
            logger.debug(f"{self.config.tool.name} {current} is up to date")
            return None
        logger.info(
            f"{self.config.tool.name} update available: "
            f"{current or 'unknown'} -> {latest}"
        )
        return UpdateInfo(current_version=current, latest_version=latest, release=release)

    def _accept_update(self, update: UpdateInfo) -> bool:
        if self.config.update_mode == "auto":
            return True
        if self.decide_update is None:
            return False
        return bool(self.decide_update(update.current_version, update.latest_version))

    def _fetch_release(self) -> ReleaseDescriptor:
        tool = self.config.tool
        return fetch_latest_release(
            tool.releases_url,
            user_agent=tool.user_agent,
            timeout=self.config.timeout,
            session=self.session,
            cancel_event=self.cancel_event,
        )

    def _select(self, release: ReleaseDescriptor) -> AssetDescriptor:
        target = self._target or resolve_platform(self.config.tool.name, self.platform)
        asset = select_asset(release, target)
        if asset is None:
            raise AssetNotFoundError(
                release.tag, target.asset_suffix, release.asset_names()
            )
        return asset

    def _install(self, artifact: ManagedArtifact, release: ReleaseDescriptor) -> None:
        """Download, extract, locate and install one release."""
        self._transition(LifecycleState.INSTALLING)
        asset = self._select(release)
        tool = self.config.tool
        expected_name = artifact.path.name

        with scratch_directory(artifact.path.parent) as scratch:
            archive_path = scratch / Path(asset.name).name
            extract_dir = scratch / "extract"

            logger.info(f"Downloading {asset.name} ({release.tag})")
            download_file(
                asset.download_url,
                archive_path,
                user_agent=tool.user_agent,
                progress_callback=self.progress_callback,
                timeout=self.config.timeout,
                session=self.session,
                cancel_event=self.cancel_event,
            )

            extract_archive(archive_path, extract_dir)
            located = locate_binary(
                extract_dir,
                expected_name,
                base_name=tool.base_name,
                is_windows=self.platform.is_windows,
            )
            install_binary(located, artifact.path, is_windows=self.platform.is_windows)

        logger.info(
            f"Installed {tool.name} {normalize_version(release.tag)} at {artifact.path}"
        )

    @contextmanager
    def _install_lock(self, artifact: ManagedArtifact):
        try:
            with self._lock_manager.install_lock(artifact.path):
                yield
        except LockTimeout as e:
            raise InstallError(
                f"Another install of {artifact.path} is still running ({e})"
            ) from e
        except OSError as e:
            # LockTimeout is itself an OSError; it is handled above
            raise InstallError(f"Install of {artifact.path} failed: {e}") from e

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _transition(self, state: LifecycleState) -> None:
        logger.debug(f"State: {self.state.value} -> {state.value}")
        self.state = state

    def _fail(self, error: BinKeeperError) -> None:
        logger.error(error.describe())
        self._transition(LifecycleState.FAILED)


__all__ = [
    "LifecycleState",
    "ManagedArtifact",
    "UpdateInfo",
    "CliManager",
    "query_version",
]
