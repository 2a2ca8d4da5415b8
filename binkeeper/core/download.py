"""
Network download manager with redirect handling and progress tracking.

This module provides streaming downloads with:
- Manual HTTP redirect following (bounded hop count)
- Destination opened only once the terminal resource is reached
- Progress reporting (bytes, percentage, speed, ETA)
- Cooperative cancellation between chunks

Failures are never retried here; the caller decides whether to re-run the
whole pipeline.
"""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urljoin

import requests
from requests.exceptions import RequestException

from binkeeper.core.exceptions import DownloadError, OperationCancelled

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
MAX_REDIRECTS = 5
CHUNK_SIZE = 8192
DEFAULT_USER_AGENT = "binkeeper"


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining

    def __str__(self) -> str:
        """Format progress for display."""
        return format_progress(self)


def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    """Raise OperationCancelled if the cancellation signal is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("Operation cancelled by caller")


def download_file(
    url: str,
    destination: Path,
    user_agent: str = DEFAULT_USER_AGENT,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    timeout: int = 30,
    max_redirects: int = MAX_REDIRECTS,
    session: Optional[requests.Session] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Path:
    """
    Download a remote resource to a local file, following redirects.

    Redirects (301, 302, 303, 307, 308) are followed by reissuing the request
    to the ``Location`` header, up to ``max_redirects`` hops. The destination
    is created fresh only after the terminal resource answers with a success
    status, so no intermediate hop can leak bytes into it.

    Args:
        url: URL to download from
        destination: Local path to save file
        user_agent: User-Agent header value
        progress_callback: Optional callback for progress updates
        timeout: Request timeout in seconds
        max_redirects: Maximum number of redirect hops to follow
        session: Optional requests session (a new one is used if None)
        cancel_event: Optional event; when set the download is abandoned

    Returns:
        Path to downloaded file

    Raises:
        DownloadError: On transport failure, non-success status, missing
            redirect location or too many redirects
        OperationCancelled: If cancel_event is set
        ValueError: If URL or destination is invalid

    Example:
        >>> download_file("https://example.com/tool.tar.gz", Path("tool.tar.gz"))
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DownloadError(f"Cannot create download directory: {e}") from e

    headers = {
        "User-Agent": user_agent,
        "Accept": "application/octet-stream",
    }
    http = session or requests.Session()

    try:
        response = _resolve_redirects(
            http, url, headers, timeout, max_redirects, cancel_event
        )
        with response:
            _stream_to_file(response, destination, progress_callback, cancel_event)
    finally:
        if session is None:
            http.close()

    logger.info(f"Download complete: {destination}")
    return destination


def _resolve_redirects(
    http: requests.Session,
    url: str,
    headers: Dict[str, str],
    timeout: int,
    max_redirects: int,
    cancel_event: Optional[threading.Event],
) -> requests.Response:
    """
    Follow redirects until a terminal response is reached.

    Returns:
        Open streaming response with a success status
    """
    current_url = url
    redirects_left = max_redirects

    while True:
        check_cancelled(cancel_event)
        logger.debug(f"GET {current_url}")
        try:
            response = http.get(
                current_url,
                headers=headers,
                stream=True,
                timeout=timeout,
                allow_redirects=False,
            )
        except RequestException as e:
            raise DownloadError(f"Download failed: {e}") from e

        status = response.status_code

        if status in REDIRECT_STATUSES:
            location = response.headers.get("Location")
            response.close()
            if not location:
                raise DownloadError(f"Download redirect missing location: {status}")
            if redirects_left <= 0:
                raise DownloadError(
                    f"Download redirect limit exceeded ({max_redirects} hops)"
                )
            redirects_left -= 1
            current_url = urljoin(current_url, location)
            logger.debug(f"Redirect {status} -> {current_url}")
            continue

        if not 200 <= status < 300:
            response.close()
            raise DownloadError(f"Download failed: HTTP {status} for {current_url}")

        return response


def _stream_to_file(
    response: requests.Response,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    cancel_event: Optional[threading.Event],
) -> None:
    """
    Copy response bytes to destination as they arrive.

    The destination is truncated on open and removed if the copy fails.
    """
    total_size = _content_length(response)

    downloaded = 0
    start_time = time.time()
    last_progress_time = start_time

    try:
        with open(destination, "wb") as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                check_cancelled(cancel_event)
                if not chunk:
                    continue
                f.write(chunk)
                downloaded += len(chunk)

                # Report progress (max once per 0.5 seconds to avoid spam)
                current_time = time.time()
                if progress_callback and (
                    current_time - last_progress_time >= 0.5
                    or downloaded == total_size
                ):
                    progress_callback(
                        _make_progress(downloaded, total_size, current_time - start_time)
                    )
                    last_progress_time = current_time
    except (RequestException, OSError) as e:
        logger.error(f"Error during download: {e}")
        destination.unlink(missing_ok=True)
        raise DownloadError(f"Download interrupted: {e}") from e
    except OperationCancelled:
        destination.unlink(missing_ok=True)
        raise


def _content_length(response: requests.Response) -> int:
    """Declared body size, or 0 when absent or unparsable."""
    try:
        return max(int(response.headers.get("content-length", 0)), 0)
    except ValueError:
        logger.debug(
            f"Ignoring invalid content-length: {response.headers.get('content-length')}"
        )
        return 0


def _make_progress(downloaded: int, total_size: int, elapsed: float) -> DownloadProgress:
    speed = downloaded / elapsed if elapsed > 0 else 0
    remaining = total_size - downloaded if total_size > 0 else 0
    eta = remaining / speed if speed > 0 else 0

    return DownloadProgress(
        bytes_downloaded=downloaded,
        total_bytes=total_size if total_size > 0 else downloaded,
        percentage=(downloaded / total_size * 100) if total_size > 0 else 0,
        speed_bps=speed,
        eta_seconds=eta,
    )


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0 and progress.percentage > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s "
            f"ETA: {progress.eta_seconds:.0f}s"
        )
    else:
        # Unknown total size
        return f"{mb_downloaded:.1f} MB " f"at {speed_mbps:.1f} MB/s"
