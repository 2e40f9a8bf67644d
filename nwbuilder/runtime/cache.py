"""
Runtime cache management.

Cache layout (inside the configured cache directory):

    manifest.json                              cached release manifest
    .locks/<key>.lock                          per-key advisory locks
    <key>.<ext>.download                       transient archive (populating)
    .<key>.staging/                            transient extraction (populating)
    <key>/                                     final entry
    <key>/.nwbuilder-complete                  completion marker

An entry is populated only when the final directory holds the completion
marker. The marker is written into the staging directory before it is
renamed into place, so the final name never refers to a half-extracted
runtime. A final directory without a marker (left by an older tool or an
interrupted run) is treated as absent.
"""

import json
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from nwbuilder.core.exceptions import CacheIOError
from nwbuilder.core.filesystem import atomic_write, ensure_directory, safe_rmtree
from nwbuilder.core.locking import LockManager
from nwbuilder.runtime.manifest import archive_format

logger = logging.getLogger(__name__)

COMPLETION_MARKER = ".nwbuilder-complete"
LOCK_DIR_NAME = ".locks"


def cache_key(flavor: str, version: str, platform: str, arch: str) -> str:
    """
    Deterministic cache key for a runtime build.

    Matches the root folder name inside the upstream archive.

    Example:
        >>> cache_key("sdk", "0.82.0", "osx", "x64")
        'nwjs-sdk-v0.82.0-osx-x64'
    """
    flavor_suffix = "-sdk" if flavor == "sdk" else ""
    return f"nwjs{flavor_suffix}-v{version}-{platform}-{arch}"


class CacheManager:
    """
    Tracks runtime cache entries on disk.

    Attributes:
        cache_dir: Root of the cache
        lock_manager: Per-key locks stored under ``cache_dir/.locks``
    """

    def __init__(self, cache_dir: Path, lock_manager: Optional[LockManager] = None):
        self.cache_dir = Path(cache_dir)
        ensure_directory(self.cache_dir)
        self.lock_manager = lock_manager or LockManager(self.cache_dir / LOCK_DIR_NAME)

    def entry_path(self, key: str) -> Path:
        return self.cache_dir / key

    def archive_path(self, key: str, platform: str) -> Path:
        """Transient archive location for a key."""
        return self.cache_dir / f"{key}.{archive_format(platform)}.download"

    def staging_path(self, key: str) -> Path:
        """Transient extraction directory for a key."""
        return self.cache_dir / f".{key}.staging"

    def marker_path(self, key: str) -> Path:
        return self.entry_path(key) / COMPLETION_MARKER

    def is_populated(self, key: str) -> bool:
        """True only for a complete entry (directory plus marker)."""
        return self.entry_path(key).is_dir() and self.marker_path(key).is_file()

    def has_partial(self, key: str) -> bool:
        """True when leftovers of an interrupted acquisition exist."""
        entry = self.entry_path(key)
        return (
            (entry.exists() and not self.is_populated(key))
            or self.staging_path(key).exists()
            or any(self.cache_dir.glob(f"{key}.*.download"))
        )

    def read_marker(self, key: str) -> Optional[Dict[str, Any]]:
        """Metadata recorded when the entry was populated, if any."""
        try:
            return json.loads(self.marker_path(key).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

    @staticmethod
    def mark_populated(directory: Path, metadata: Dict[str, Any]) -> None:
        """
        Write the completion marker into ``directory``.

        Raises:
            CacheIOError: If the marker cannot be written
        """
        payload = dict(metadata)
        payload.setdefault("completed_at", time.time())
        try:
            atomic_write(directory / COMPLETION_MARKER, json.dumps(payload, indent=2))
        except OSError as e:
            raise CacheIOError(
                f"Failed to write completion marker in {directory}: {e}", directory
            ) from e

    def invalidate(self, key: str) -> None:
        """
        Remove an entry recursively.

        Raises:
            CacheIOError: If removal fails
        """
        entry = self.entry_path(key)
        if entry.exists() or entry.is_symlink():
            logger.info(f"Removing cached runtime: {entry}")
            safe_rmtree(entry, require_prefix=self.cache_dir)

    def discard_partial(self, key: str) -> None:
        """
        Remove everything an interrupted acquisition may have left behind.

        Removes transient archives, the staging directory and a final
        directory lacking the completion marker. A populated entry is kept.

        Raises:
            CacheIOError: If removal fails
        """
        for archive in self.cache_dir.glob(f"{key}.*.download"):
            logger.debug(f"Removing leftover archive: {archive}")
            try:
                archive.unlink()
            except OSError as e:
                raise CacheIOError(f"Failed to remove '{archive}': {e}", archive) from e

        staging = self.staging_path(key)
        if staging.exists():
            logger.debug(f"Removing leftover staging directory: {staging}")
            safe_rmtree(staging, require_prefix=self.cache_dir)

        entry = self.entry_path(key)
        if entry.exists() and not self.is_populated(key):
            logger.info(f"Removing incomplete cache entry: {entry}")
            safe_rmtree(entry, require_prefix=self.cache_dir)

    @staticmethod
    def ensure_directory(path: Path) -> Path:
        """
        Create a directory (e.g. the output directory) if absent.

        Raises:
            CacheIOError: If the directory cannot be created
        """
        return ensure_directory(path)

    @contextmanager
    def lock(self, key: str, timeout: float = 600):
        """Hold the advisory lock for one key."""
        with self.lock_manager.runtime_lock(key, timeout=timeout):
            yield


__all__ = [
    "COMPLETION_MARKER",
    "cache_key",
    "CacheManager",
]
