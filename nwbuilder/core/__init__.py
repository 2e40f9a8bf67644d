"""
Core functionality for nwbuilder.

This package contains the foundational modules the runtime layer depends on:
errors, downloads, archive handling, locking and platform detection.
"""

from .exceptions import (
    NwBuilderError,
    ConfigurationError,
    MissingManifestFieldError,
    OverrideTypeError,
    InvalidOptionError,
    NoSourceFilesError,
    ResolutionError,
    VersionNotFoundError,
    UnsupportedCombinationError,
    NetworkError,
    ManifestUnreachableError,
    DownloadError,
    CacheIOError,
    ArchiveExtractionError,
    UnsupportedArchiveFormat,
    InsecureArchiveError,
    CacheLockTimeout,
    DispatchError,
)

from .locking import LockManager

from .platform import (
    HostPlatform,
    detect_platform,
    clear_platform_cache,
)

__all__ = [
    "NwBuilderError",
    "ConfigurationError",
    "MissingManifestFieldError",
    "OverrideTypeError",
    "InvalidOptionError",
    "NoSourceFilesError",
    "ResolutionError",
    "VersionNotFoundError",
    "UnsupportedCombinationError",
    "NetworkError",
    "ManifestUnreachableError",
    "DownloadError",
    "CacheIOError",
    "ArchiveExtractionError",
    "UnsupportedArchiveFormat",
    "InsecureArchiveError",
    "CacheLockTimeout",
    "DispatchError",
    "LockManager",
    "HostPlatform",
    "detect_platform",
    "clear_platform_cache",
]
