"""
Release metadata lookup.

Queries a GitHub-style "latest release" endpoint and picks the asset that
matches the current platform.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional

import requests
from requests.exceptions import RequestException

from binkeeper.core.download import DEFAULT_USER_AGENT, check_cancelled
from binkeeper.core.exceptions import (
    MalformedResponseError,
    NetworkError,
    RemoteError,
)
from binkeeper.core.platform import PlatformTarget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetDescriptor:
    """One downloadable file belonging to a release."""

    name: str
    download_url: str

    @classmethod
    def from_api_response(cls, data: Any) -> "AssetDescriptor":
        """
        Build from a release API asset entry.

        Raises:
            MalformedResponseError: If name or browser_download_url is missing
        """
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Release asset is not an object: {data!r}")

        name = data.get("name")
        url = data.get("browser_download_url")
        if not isinstance(name, str) or not isinstance(url, str):
            raise MalformedResponseError(
                "Release asset missing 'name' or 'browser_download_url'"
            )
        return cls(name=name, download_url=url)


@dataclass(frozen=True)
class ReleaseDescriptor:
    """One published release: its raw tag and its assets in API order."""

    tag: str
    assets: List[AssetDescriptor] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: Any) -> "ReleaseDescriptor":
        """
        Build from a release API payload.

        Raises:
            MalformedResponseError: If tag_name or assets is missing or mistyped
        """
        if not isinstance(data, dict):
            raise MalformedResponseError("Release metadata is not a JSON object")

        tag = data.get("tag_name")
        if not isinstance(tag, str):
            raise MalformedResponseError("Release metadata missing 'tag_name'")

        assets = data.get("assets", [])
        if not isinstance(assets, list):
            raise MalformedResponseError("Release metadata 'assets' is not a list")

        return cls(
            tag=tag, assets=[AssetDescriptor.from_api_response(a) for a in assets]
        )

    def asset_names(self) -> List[str]:
        return [asset.name for asset in self.assets]


def fetch_latest_release(
    releases_url: str,
    user_agent: str = DEFAULT_USER_AGENT,
    timeout: int = 30,
    session: Optional[requests.Session] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ReleaseDescriptor:
    """
    Fetch the latest published release.

    Args:
        releases_url: Release metadata endpoint
        user_agent: User-Agent header value
        timeout: Request timeout in seconds
        session: Optional requests session
        cancel_event: Optional cancellation signal checked before the request

    Returns:
        ReleaseDescriptor for the latest release

    Raises:
        NetworkError: On transport failure
        RemoteError: On a non-2xx status
        MalformedResponseError: If the payload cannot be decoded
    """
    check_cancelled(cancel_event)
    headers = {
        "User-Agent": user_agent,
        "Accept": "application/vnd.github+json",
    }
    http = session or requests

    logger.info(f"Fetching latest release from {releases_url}")

    try:
        response = http.get(releases_url, headers=headers, timeout=timeout)
    except RequestException as e:
        raise NetworkError(f"Failed to fetch releases: {e}") from e

    if not 200 <= response.status_code < 300:
        raise RemoteError(
            f"Failed to fetch releases: HTTP {response.status_code}",
            status_code=response.status_code,
        )

    try:
        data = response.json()
    except ValueError as e:
        raise MalformedResponseError(f"Release metadata is not valid JSON: {e}") from e

    release = ReleaseDescriptor.from_api_response(data)
    logger.debug(f"Latest release {release.tag} with {len(release.assets)} assets")
    return release


def select_asset(
    release: ReleaseDescriptor, target: PlatformTarget
) -> Optional[AssetDescriptor]:
    """
    Pick the first asset whose name contains the platform suffix.

    Returns:
        Matching asset, or None if the release ships nothing for this platform
    """
    for asset in release.assets:
        if target.asset_suffix in asset.name:
            return asset
    return None


__all__ = [
    "AssetDescriptor",
    "ReleaseDescriptor",
    "fetch_latest_release",
    "select_asset",
]
