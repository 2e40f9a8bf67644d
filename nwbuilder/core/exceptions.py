"""
Centralized exception hierarchy for nwbuilder.

Every error raised by the core belongs to one of five kinds:
configuration, resolution, network, io and dispatch. The kind is available
as the ``kind`` attribute so front-ends can pick exit codes or retry
behaviour without matching on class names.
"""

from typing import Iterable, Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class NwBuilderError(Exception):
    """Base exception for all nwbuilder errors."""

    kind = "internal"


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(NwBuilderError):
    """Invalid or incomplete options or project manifest."""

    kind = "configuration"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class MissingManifestFieldError(ConfigurationError):
    """Raised when package.json lacks a required field."""

    def __init__(self, field: str):
        super().__init__(f"{field} property is missing from package.json", field)


class OverrideTypeError(ConfigurationError):
    """Raised when the nwbuild override in package.json is not an object."""

    def __init__(self, field: str, actual_type: str):
        self.actual_type = actual_type
        super().__init__(
            f"{field} property in the package.json is of type {actual_type}. "
            "Expected type object.",
            field,
        )


class InvalidOptionError(ConfigurationError):
    """Raised when an option has a value outside its allowed set."""

    def __init__(self, field: str, value, allowed: Iterable[str]):
        self.value = value
        self.allowed = tuple(allowed)
        super().__init__(
            f"Invalid value for {field}: {value!r}. "
            f"Expected one of: {', '.join(self.allowed)}",
            field,
        )


class NoSourceFilesError(ConfigurationError):
    """Raised when the source glob patterns match no files."""

    def __init__(self, patterns: str):
        self.patterns = patterns
        super().__init__(f"The globbing pattern {patterns} is invalid.", "srcDir")


# ============================================================================
# Resolution Exceptions
# ============================================================================


class ResolutionError(NwBuilderError):
    """Base exception for version and availability resolution errors."""

    kind = "resolution"


class VersionNotFoundError(ResolutionError):
    """Raised when a version is not listed in the manifest."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"NW.js version {version} is not listed in the manifest")


class UnsupportedCombinationError(ResolutionError):
    """Raised when a flavor/platform/arch tuple is unavailable for a version."""

    def __init__(
        self,
        version: str,
        flavor: str,
        platform: str,
        arch: str,
        available: Iterable[str] = (),
    ):
        self.version = version
        self.flavor = flavor
        self.platform = platform
        self.arch = arch
        self.available = tuple(available)
        msg = f"NW.js v{version} has no {flavor} build for {platform}-{arch}"
        if self.available:
            msg += f". Available {flavor} builds: {', '.join(self.available)}"
        else:
            msg += f". The {flavor} flavor is not published for this version"
        super().__init__(msg)


# ============================================================================
# Network Exceptions
# ============================================================================


class NetworkError(NwBuilderError):
    """Base exception for network failures. These may succeed on retry."""

    kind = "network"

    def __init__(self, message: str, url: str):
        self.url = url
        super().__init__(message)


class ManifestUnreachableError(NetworkError):
    """Raised when the version manifest cannot be fetched or parsed."""

    def __init__(self, url: str, reason: str):
        self.reason = reason
        super().__init__(f"Could not load manifest from {url}: {reason}", url)


class DownloadError(NetworkError):
    """Raised when a runtime archive download fails."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Download failed for {url}: {reason}", url)


# ============================================================================
# I/O Exceptions
# ============================================================================


class CacheIOError(NwBuilderError):
    """Raised when a cache or output directory cannot be created or removed."""

    kind = "io"

    def __init__(self, message: str, path=None):
        self.path = path
        super().__init__(message)


class ArchiveExtractionError(CacheIOError):
    """Raised when an archive is corrupt, unreadable or unsafe."""

    pass


class UnsupportedArchiveFormat(ArchiveExtractionError):
    """Archive format is not supported."""

    pass


class InsecureArchiveError(ArchiveExtractionError):
    """Archive contains paths escaping the extraction directory."""

    pass


class CacheLockTimeout(CacheIOError):
    """Raised when the lock for a cache key cannot be acquired in time."""

    def __init__(self, key: str, timeout: float, path=None):
        self.key = key
        self.timeout = timeout
        super().__init__(
            f"Could not acquire cache lock for {key} after {timeout}s. "
            "Another process may be downloading this runtime.",
            path,
        )


# ============================================================================
# Dispatch Exceptions
# ============================================================================


class DispatchError(NwBuilderError):
    """Raised when the packager or launcher fails."""

    kind = "dispatch"

    def __init__(self, message: str, mode: Optional[str] = None):
        self.mode = mode
        super().__init__(message)


ERROR_KINDS = ("configuration", "resolution", "network", "io", "dispatch")


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
    "ERROR_KINDS",
]
