"""
Runtime acquisition: download, extract, remove.

Populates a cache entry that the CacheManager reported as absent. Stages run
strictly in order and each one only starts after the previous succeeded:

1. Download the archive to ``<key>.<ext>.download`` in the cache directory.
2. Extract it into ``.<key>.staging``, write the completion marker and
   rename the runtime root to ``<key>``.
3. Delete the transient archive (failure here is only logged).

Any failure in stages 1 and 2 removes the transient archive and staging
directory before the error propagates, so the cache never holds a directory
that looks populated but is not.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests

from nwbuilder.core.download import DownloadProgress, download_file
from nwbuilder.core.exceptions import CacheIOError, NwBuilderError
from nwbuilder.core.filesystem import directory_size, extract_archive, safe_rmtree
from nwbuilder.runtime.cache import CacheManager, cache_key
from nwbuilder.runtime.manifest import ReleaseInfo, archive_format
from nwbuilder.runtime.options import Options

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionProgress:
    """Unified progress information for download and extraction."""

    phase: str
    """Current phase: 'downloading', 'extracting', 'complete'"""

    percentage: float
    """Overall progress percentage (0-100)"""

    current: int
    """Bytes downloaded or members extracted so far"""

    total: int
    """Total bytes or members"""


@dataclass
class AcquisitionResult:
    """Result of populating one cache entry."""

    key: str
    path: Path
    url: str
    download_time: float
    extraction_time: float
    total_size_bytes: int


def archive_url(download_url: str, version: str, filename: str) -> str:
    """
    URL of a runtime archive.

    Example:
        >>> archive_url("https://dl.nwjs.io", "0.82.0", "nwjs-v0.82.0-linux-x64.tar.gz")
        'https://dl.nwjs.io/v0.82.0/nwjs-v0.82.0-linux-x64.tar.gz'
    """
    return f"{download_url.rstrip('/')}/v{version}/{filename}"


class AcquisitionPipeline:
    """
    Downloads and extracts NW.js runtimes into the cache.

    Example:
        >>> pipeline = AcquisitionPipeline(CacheManager(Path("cache")))
        >>> result = pipeline.acquire(options, "0.82.0", release)
        >>> print(result.path)
        cache/nwjs-v0.82.0-linux-x64
    """

    def __init__(
        self,
        cache: CacheManager,
        timeout: int = 30,
        progress_callback: Optional[Callable[[AcquisitionProgress], None]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.cache = cache
        self.timeout = timeout
        self.progress_callback = progress_callback
        self.session = session

    def acquire(
        self, options: Options, version: str, release: ReleaseInfo
    ) -> AcquisitionResult:
        """
        Populate the cache entry for the options' flavor/platform/arch.

        The caller holds the key's lock and has already removed any entry it
        wants replaced.

        Raises:
            DownloadError: If the archive cannot be downloaded
            ArchiveExtractionError: If the archive cannot be extracted
            CacheIOError: If cache directories cannot be written or removed
        """
        key = cache_key(options.flavor, version, options.platform, options.arch)
        entry = self.cache.entry_path(key)
        if self.cache.is_populated(key):
            raise CacheIOError(f"Cache entry is already populated: {entry}", entry)

        # Restart from scratch: nothing from an interrupted run is reused
        self.cache.discard_partial(key)

        filename = release.archive_name(options.flavor, options.platform, options.arch)
        url = archive_url(options.download_url, version, filename)
        archive = self.cache.archive_path(key, options.platform)
        staging = self.cache.staging_path(key)

        try:
            download_time = self._download(url, archive)
            extraction_time = self._extract(
                archive, staging, entry, archive_format(options.platform),
                {"key": key, "version": version, "url": url},
            )
        except (NwBuilderError, OSError) as e:
            logger.debug(f"Acquisition of {key} failed, cleaning up: {e}")
            self._cleanup_on_error(archive, staging)
            if isinstance(e, OSError):
                raise CacheIOError(f"Failed to populate {entry}: {e}", entry) from e
            raise
        finally:
            if staging.exists():
                self._remove_quietly(staging)

        self._remove_archive(archive)

        total_size = directory_size(entry)
        self._report("complete", 100.0, total_size, total_size)

        return AcquisitionResult(
            key=key,
            path=entry,
            url=url,
            download_time=download_time,
            extraction_time=extraction_time,
            total_size_bytes=total_size,
        )

    def _download(self, url: str, archive: Path) -> float:
        """Stage 1. Returns seconds spent."""
        start = time.time()

        def download_progress(dp: DownloadProgress):
            """Report download as 0-50% of the whole acquisition."""
            self._report(
                "downloading", dp.percentage * 0.5, dp.bytes_downloaded, dp.total_bytes
            )

        download_file(
            url=url,
            destination=archive,
            progress_callback=download_progress if self.progress_callback else None,
            timeout=self.timeout,
            session=self.session,
        )
        elapsed = time.time() - start
        logger.info(f"Download complete in {elapsed:.2f}s")
        return elapsed

    def _extract(
        self, archive: Path, staging: Path, entry: Path, fmt: str, metadata: dict
    ) -> float:
        """Stage 2. Returns seconds spent."""
        start = time.time()
        logger.info(f"Extracting to: {entry}")

        def extraction_progress(current: int, total: int):
            """Report extraction as 50-100% of the whole acquisition."""
            pct = (current / total * 100) if total > 0 else 0
            self._report("extracting", 50.0 + pct * 0.5, current, total)

        extract_archive(
            archive_path=archive,
            destination=staging,
            archive_format=fmt,
            progress_callback=extraction_progress if self.progress_callback else None,
        )

        root = self._normalize_root_directory(staging)
        self.cache.mark_populated(root, metadata)
        root.rename(entry)

        elapsed = time.time() - start
        logger.info(f"Extraction complete in {elapsed:.2f}s")
        return elapsed

    def _normalize_root_directory(self, extract_dir: Path) -> Path:
        """
        Find the runtime root inside the extraction directory.

        Upstream archives wrap everything in one folder named after the
        build; archives without a wrapper folder use the directory itself.
        """
        items = list(extract_dir.iterdir())

        if len(items) == 1 and items[0].is_dir() and not items[0].is_symlink():
            return items[0]

        return extract_dir

    def _remove_archive(self, archive: Path) -> None:
        """Stage 3. The entry is already valid, so failure is not fatal."""
        try:
            archive.unlink(missing_ok=True)
            logger.debug(f"Removed archive: {archive}")
        except OSError as e:
            logger.warning(f"Failed to remove downloaded archive {archive}: {e}")

    def _cleanup_on_error(self, archive: Path, staging: Path) -> None:
        logger.info("Cleaning up after error...")
        try:
            archive.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove archive: {e}")
        self._remove_quietly(staging)

    def _remove_quietly(self, path: Path) -> None:
        try:
            safe_rmtree(path, require_prefix=self.cache.cache_dir)
        except CacheIOError as e:
            logger.warning(f"Failed to remove temporary directory: {e}")

    def _report(self, phase: str, percentage: float, current: int, total: int) -> None:
        if self.progress_callback:
            self.progress_callback(
                AcquisitionProgress(
                    phase=phase, percentage=percentage, current=current, total=total
                )
            )


__all__ = [
    "AcquisitionProgress",
    "AcquisitionResult",
    "AcquisitionPipeline",
    "archive_url",
]
