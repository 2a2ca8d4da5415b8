"""
Managed executable lifecycle for BinKeeper.

This package resolves releases, locates executables in extracted archives,
and drives the install/update pipeline.
"""

from .releases import (
    AssetDescriptor,
    ReleaseDescriptor,
    fetch_latest_release,
    select_asset,
)
from .locator import locate_binary
from .controller import (
    CliManager,
    LifecycleState,
    ManagedArtifact,
    UpdateInfo,
    query_version,
)

__all__ = [
    "AssetDescriptor",
    "ReleaseDescriptor",
    "fetch_latest_release",
    "select_asset",
    "locate_binary",
    "CliManager",
    "LifecycleState",
    "ManagedArtifact",
    "UpdateInfo",
    "query_version",
]
