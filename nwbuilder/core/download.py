"""
Network download manager with progress tracking.

This module provides the streaming download used to fetch NW.js runtime
archives:
- HTTP/HTTPS downloads with TLS verification
- Progress reporting (bytes, percentage, speed, ETA)
- Optional bounded retry with exponential backoff (off by default)
- Timeout handling
- Removal of the partial file when a download fails
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.exceptions import RequestException, HTTPError

from nwbuilder.core.exceptions import DownloadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


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


def download_file(
    url: str,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    timeout: int = 30,
    max_retries: int = 1,
    session: Optional[requests.Session] = None,
) -> Path:
    """
    Download file from URL to destination.

    Any file already present at ``destination`` is overwritten. A failed
    download never leaves a partial file behind.

    Args:
        url: URL to download from
        destination: Local path to save file
        progress_callback: Optional callback for progress updates
        timeout: Request timeout in seconds
        max_retries: Total number of attempts (1 means no retry)
        session: Optional requests session to issue the request with

    Returns:
        Path to downloaded file

    Raises:
        DownloadError: If the download fails (carries the URL and status code)
        ValueError: If URL or destination is invalid

    Example:
        >>> from nwbuilder.core.download import download_file
        >>> url = "https://dl.nwjs.io/v0.82.0/nwjs-v0.82.0-linux-x64.tar.gz"
        >>> download_file(url, Path("cache/nwjs-v0.82.0-linux-x64.tar.gz.download"))
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    for attempt in range(max_retries):
        try:
            return _download_with_progress(
                url=url,
                destination=destination,
                progress_callback=progress_callback,
                timeout=timeout,
                session=session,
            )
        except RequestException as e:
            destination.unlink(missing_ok=True)
            if attempt == max_retries - 1:
                status_code = None
                if isinstance(e, HTTPError) and e.response is not None:
                    status_code = e.response.status_code
                raise DownloadError(url, str(e), status_code=status_code) from e

            backoff_seconds = 2**attempt
            logger.warning(
                f"Download attempt {attempt + 1} failed: {e}. "
                f"Retrying in {backoff_seconds}s..."
            )
            time.sleep(backoff_seconds)
        except OSError as e:
            destination.unlink(missing_ok=True)
            raise DownloadError(url, f"could not write {destination}: {e}") from e

    # max_retries >= 1 guarantees the loop returns or raises
    raise DownloadError(url, "download failed for unknown reason")


def _download_with_progress(
    url: str,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    timeout: int,
    session: Optional[requests.Session],
) -> Path:
    """
    Perform download with streaming and progress updates.

    This is an internal function called by download_file().

    Raises:
        RequestException: If HTTP request fails
        OSError: If the destination cannot be written
    """
    logger.info(f"Downloading from {url}")

    http = session or requests
    response = http.get(url, stream=True, timeout=timeout, allow_redirects=True)
    response.raise_for_status()

    content_length = response.headers.get("content-length")
    total_size = int(content_length) if content_length else 0

    downloaded = 0
    start_time = time.time()
    last_progress_time = start_time

    with open(destination, "wb") as f:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            f.write(chunk)
            downloaded += len(chunk)

            # Report progress (max once per 0.5 seconds to avoid spam)
            current_time = time.time()
            if progress_callback and (
                current_time - last_progress_time >= 0.5 or downloaded == total_size
            ):
                elapsed = current_time - start_time
                speed = downloaded / elapsed if elapsed > 0 else 0
                remaining = total_size - downloaded if total_size > 0 else 0
                eta = remaining / speed if speed > 0 else 0

                progress_callback(
                    DownloadProgress(
                        bytes_downloaded=downloaded,
                        total_bytes=total_size if total_size > 0 else downloaded,
                        percentage=(downloaded / total_size * 100)
                        if total_size > 0
                        else 0,
                        speed_bps=speed,
                        eta_seconds=eta,
                    )
                )
                last_progress_time = current_time

    logger.info(f"Download complete: {destination}")
    return destination


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

    if progress.total_bytes > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s "
            f"ETA: {progress.eta_seconds:.0f}s"
        )
    else:
        # Unknown total size
        return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"
