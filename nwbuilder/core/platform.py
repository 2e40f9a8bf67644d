"""
Platform detection for nwbuilder.

NW.js names its builds with its own platform and architecture identifiers
('linux', 'osx', 'win' and 'ia32', 'x64', 'arm64'). This module maps the
host onto those names so the platform and arch options can default to the
machine nwbuilder runs on.

Usage:
    from nwbuilder.core.platform import detect_platform

    host = detect_platform()
    print(host.platform_string())  # e.g. 'linux-x64'
"""

import functools
import platform
from dataclasses import dataclass

SUPPORTED_PLATFORMS = ("linux", "osx", "win")
SUPPORTED_ARCHS = ("ia32", "x64", "arm64")

_PLATFORM_MAP = {
    "linux": "linux",
    "darwin": "osx",
    "windows": "win",
}

_ARCH_MAP = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "i386": "ia32",
    "i686": "ia32",
    "x86": "ia32",
    "aarch64": "arm64",
    "arm64": "arm64",
}


@dataclass(frozen=True)
class HostPlatform:
    """
    Host platform in NW.js naming.

    Attributes:
        platform: 'linux', 'osx' or 'win'
        arch: 'ia32', 'x64' or 'arm64'
    """

    platform: str
    arch: str

    def platform_string(self) -> str:
        """
        Get the NW.js platform string.

        Example:
            >>> HostPlatform('osx', 'arm64').platform_string()
            'osx-arm64'
        """
        return f"{self.platform}-{self.arch}"

    def __str__(self) -> str:
        return self.platform_string()


@functools.lru_cache(maxsize=1)
def detect_platform() -> HostPlatform:
    """
    Detect the host platform.

    This function is cached - it only runs detection once per process.

    Raises:
        RuntimeError: If the operating system has no NW.js builds
    """
    return HostPlatform(platform=_detect_os(), arch=_detect_architecture())


def _detect_os() -> str:
    system = platform.system().lower()
    try:
        return _PLATFORM_MAP[system]
    except KeyError:
        raise RuntimeError(f"Unsupported operating system: {system}") from None


def _detect_architecture() -> str:
    """Normalize the machine name; unknown machines are returned as-is."""
    machine = platform.machine().lower()
    return _ARCH_MAP.get(machine, machine)


def clear_platform_cache():
    """Clear the cached detection result (used by tests)."""
    detect_platform.cache_clear()


__all__ = [
    "SUPPORTED_PLATFORMS",
    "SUPPORTED_ARCHS",
    "HostPlatform",
    "detect_platform",
    "clear_platform_cache",
]
