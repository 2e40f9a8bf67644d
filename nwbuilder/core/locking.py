"""
Concurrent access control for the runtime cache.

Parallel invocations (for example CI jobs sharing a cache directory) may ask
for the same runtime at the same time. Each cache key gets its own lock file
so at most one process downloads and extracts a given runtime, while
requests for different keys never wait on each other.

Usage:
    from nwbuilder.core.locking import LockManager

    lock_manager = LockManager(Path("cache") / ".locks")
    with lock_manager.runtime_lock("nwjs-v0.82.0-linux-x64", timeout=600):
        # Check, invalidate or populate the cache entry
        pass
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

from nwbuilder.core.exceptions import CacheIOError, CacheLockTimeout

logger = logging.getLogger(__name__)


class LockManager:
    """
    Manages per-key file locks.

    Uses the ``filelock`` library for cross-platform, cross-process locking.
    The operating system releases the lock when a process dies, so a crashed
    run never blocks the next one.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Path):
        """
        Initialize lock manager.

        Args:
            lock_dir: Directory for lock files

        Raises:
            CacheIOError: If the lock directory cannot be created
        """
        self.lock_dir = Path(lock_dir)
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(
                f"Failed to create lock directory '{self.lock_dir}': {e}",
                self.lock_dir,
            ) from e

    def lock_path(self, key: str) -> Path:
        """Return the lock file path for a cache key."""
        safe_key = key.replace("/", "-").replace("\\", "-").replace(":", "-")
        return self.lock_dir / f"{safe_key}.lock"

    @contextmanager
    def runtime_lock(self, key: str, timeout: float = 600):
        """
        Acquire the lock for one cache key.

        Args:
            key: Cache key (e.g. 'nwjs-sdk-v0.82.0-osx-x64')
            timeout: Maximum wait time in seconds (default: 600 for slow downloads)

        Yields:
            None

        Raises:
            CacheLockTimeout: If lock can't be acquired within timeout
        """
        lock_path = self.lock_path(key)
        lock = FileLock(lock_path, timeout=timeout)

        try:
            lock.acquire()
        except LockTimeout as e:
            raise CacheLockTimeout(key, timeout, lock_path) from e

        try:
            logger.debug(f"Acquired cache lock: {lock_path}")
            yield
        finally:
            lock.release()
            logger.debug(f"Released cache lock: {lock_path}")


__all__ = [
    "LockManager",
    "LockTimeout",
]
