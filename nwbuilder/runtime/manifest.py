"""
NW.js release manifest and version resolution.

The manifest is the JSON document published at ``manifestUrl``
(https://nwjs.io/versions by default). It lists every released version with
the platform/arch builds and flavors available for it:

    {
      "latest": "v0.82.0",
      "stable": "v0.82.0",
      "lts": "v0.14.7",
      "versions": [
        {
          "version": "v0.82.0",
          "date": "2023/10/30",
          "files": ["win-x64", "win-ia32", "linux-x64", "linux-ia32", "osx-x64"],
          "flavors": ["normal", "sdk"],
          "components": {"node": "21.1.0", "chromium": "119.0.6045.105"}
        }
      ]
    }

``files`` may also map flavors to their own lists
(``{"normal": [...], "sdk": [...]}``) when the flavors are not published for
the same set of builds.

Resolution happens in two separate steps: an alias or concrete specifier is
turned into a listed version (``ManifestResolver.resolve_version``), then the
requested flavor/platform/arch is checked against that version's builds
(``validate_release``).
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

import requests
from packaging.version import InvalidVersion, Version
from requests.exceptions import RequestException

from nwbuilder.core.exceptions import (
    CacheIOError,
    ManifestUnreachableError,
    UnsupportedCombinationError,
    VersionNotFoundError,
)
from nwbuilder.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

MANIFEST_CACHE_NAME = "manifest.json"
DEFAULT_ARCHIVE_TEMPLATE = "nwjs{flavor_suffix}-v{version}-{platform}-{arch}.{ext}"

_NUMERIC_CORE = re.compile(r"^\d+(\.\d+)*")


def strip_v(version: str) -> str:
    """Drop the leading 'v' NW.js puts on version strings."""
    return version[1:] if version.startswith("v") else version


def version_key(version: str) -> Version:
    """
    Sort key for NW.js version strings.

    Versions that are not valid PEP 440 (e.g. '0.82.0-sdk-only') sort by
    their numeric core.

    Example:
        >>> version_key("v0.82.0") > version_key("0.81.3")
        True
    """
    text = strip_v(version)
    try:
        return Version(text)
    except InvalidVersion:
        match = _NUMERIC_CORE.match(text)
        return Version(match.group(0)) if match else Version("0")


def archive_format(platform: str) -> str:
    """Upstream ships linux builds as tar.gz and osx/win builds as zip."""
    return "tar.gz" if platform == "linux" else "zip"


@dataclass(frozen=True)
class ReleaseInfo:
    """Builds published for one concrete NW.js version."""

    version: str
    """Concrete version without the leading 'v' (e.g. '0.82.0')"""

    normal: FrozenSet[Tuple[str, str]]
    """(platform, arch) pairs with a normal build"""

    sdk: FrozenSet[Tuple[str, str]]
    """(platform, arch) pairs with an sdk build"""

    date: Optional[str] = None
    stable: bool = False
    components: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({}), compare=False
    )
    archive_template: str = DEFAULT_ARCHIVE_TEMPLATE

    @classmethod
    def from_entry(cls, entry: Dict[str, Any]) -> "ReleaseInfo":
        """
        Build from one element of the manifest's ``versions`` list.

        Raises:
            ValueError: If the entry has no version string
        """
        raw_version = entry.get("version")
        if not isinstance(raw_version, str) or not raw_version:
            raise ValueError(f"Manifest entry without version: {entry!r}")

        files = entry.get("files") or []
        flavors = entry.get("flavors") or ["normal"]

        if isinstance(files, dict):
            normal = _parse_targets(files.get("normal", []))
            sdk = _parse_targets(files.get("sdk", []))
        else:
            targets = _parse_targets(files)
            normal = targets if "normal" in flavors else frozenset()
            sdk = targets if "sdk" in flavors else frozenset()

        return cls(
            version=strip_v(raw_version),
            normal=normal,
            sdk=sdk,
            date=entry.get("date"),
            stable=entry.get("stable") is True,
            components=MappingProxyType(dict(entry.get("components") or {})),
            archive_template=entry.get("archive_template", DEFAULT_ARCHIVE_TEMPLATE),
        )

    def targets(self, flavor: str) -> FrozenSet[Tuple[str, str]]:
        """(platform, arch) pairs published for a flavor."""
        return self.sdk if flavor == "sdk" else self.normal

    def is_available(self, flavor: str, platform: str, arch: str) -> bool:
        return (platform, arch) in self.targets(flavor)

    def archive_name(self, flavor: str, platform: str, arch: str) -> str:
        """
        File name of the archive for one build.

        Example:
            >>> info.archive_name("sdk", "osx", "x64")
            'nwjs-sdk-v0.82.0-osx-x64.zip'
        """
        return self.archive_template.format(
            flavor_suffix="-sdk" if flavor == "sdk" else "",
            version=self.version,
            platform=platform,
            arch=arch,
            ext=archive_format(platform),
        )


def _parse_targets(files: List[str]) -> FrozenSet[Tuple[str, str]]:
    targets = set()
    for item in files:
        if not isinstance(item, str) or "-" not in item:
            logger.debug(f"Skipping malformed manifest file entry: {item!r}")
            continue
        platform, arch = item.rsplit("-", 1)
        targets.add((platform, arch))
    return frozenset(targets)


def validate_release(release: ReleaseInfo, flavor: str, platform: str, arch: str) -> None:
    """
    Check that a build exists for the requested tuple.

    Raises:
        UnsupportedCombinationError: Naming the tuple and listing what exists
    """
    if release.is_available(flavor, platform, arch):
        return

    available = sorted(f"{p}-{a}" for p, a in release.targets(flavor))
    raise UnsupportedCombinationError(release.version, flavor, platform, arch, available)


class ManifestResolver:
    """
    Fetches the NW.js manifest and resolves versions against it.

    The manifest is cached as ``<cache_dir>/manifest.json`` and only
    re-fetched once the copy is older than ``ttl`` seconds. When the network
    is down, a stale copy is used rather than failing.

    Example:
        >>> resolver = ManifestResolver("https://nwjs.io/versions", Path("cache"))
        >>> version, release = resolver.resolve("stable")
        >>> release.archive_name("normal", "linux", "x64")
        'nwjs-v0.82.0-linux-x64.tar.gz'
    """

    def __init__(
        self,
        manifest_url: str,
        cache_dir: Path,
        ttl: int = 24 * 60 * 60,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        self.manifest_url = manifest_url
        self.cache_dir = Path(cache_dir)
        self.manifest_path = self.cache_dir / MANIFEST_CACHE_NAME
        self.ttl = ttl
        self.timeout = timeout
        self.session = session
        self._manifest: Optional[Dict[str, Any]] = None

    def load_manifest(self) -> Dict[str, Any]:
        """
        Get the manifest, from the local copy when fresh.

        Raises:
            ManifestUnreachableError: If it cannot be fetched and no local
                copy exists
            CacheIOError: If the fetched manifest cannot be cached
        """
        if self._manifest is not None:
            return self._manifest

        cached = self._read_cached()
        if cached is not None and self._is_fresh():
            logger.debug(f"Using cached manifest: {self.manifest_path}")
            self._manifest = cached
            return cached

        try:
            manifest = self._fetch()
        except ManifestUnreachableError as e:
            if cached is None:
                raise
            logger.warning(f"{e}. Using cached copy from {self.manifest_path}")
            self._manifest = cached
            return cached

        try:
            atomic_write(self.manifest_path, json.dumps(manifest, indent=2))
        except OSError as e:
            raise CacheIOError(
                f"Failed to cache manifest at {self.manifest_path}: {e}",
                self.manifest_path,
            ) from e

        self._manifest = manifest
        return manifest

    def _is_fresh(self) -> bool:
        age = time.time() - self.manifest_path.stat().st_mtime
        return age < self.ttl

    def _read_cached(self) -> Optional[Dict[str, Any]]:
        if not self.manifest_path.is_file():
            return None
        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
            _check_manifest(data)
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unusable cached manifest: {e}")
            return None
        return data

    def _fetch(self) -> Dict[str, Any]:
        logger.info(f"Fetching manifest from {self.manifest_url}")
        http = self.session or requests
        try:
            response = http.get(self.manifest_url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except RequestException as e:
            raise ManifestUnreachableError(self.manifest_url, str(e)) from e
        except ValueError as e:
            raise ManifestUnreachableError(
                self.manifest_url, f"response is not valid JSON: {e}"
            ) from e

        try:
            _check_manifest(data)
        except ValueError as e:
            raise ManifestUnreachableError(self.manifest_url, str(e)) from e
        return data

    def releases(self) -> List[ReleaseInfo]:
        """All parseable releases, newest first."""
        releases = []
        for entry in self.load_manifest()["versions"]:
            try:
                releases.append(ReleaseInfo.from_entry(entry))
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug(f"Skipping malformed manifest entry: {e}")
        releases.sort(key=lambda r: version_key(r.version), reverse=True)
        return releases

    def list_versions(self) -> List[str]:
        """
        List all versions in the manifest, newest first.

        Example:
            >>> resolver.list_versions()
            ['0.82.0', '0.81.0', '0.80.0']
        """
        return [r.version for r in self.releases()]

    def resolve_version(self, specifier: str) -> str:
        """
        Resolve an alias or concrete specifier to a listed version.

        - 'latest': newest listed version, whatever its builds
        - 'stable': newest version flagged stable, else the manifest's
          top-level 'stable' pointer
        - 'lts': the manifest's top-level 'lts' pointer
        - anything else must be listed exactly ('v' prefix optional)

        Raises:
            VersionNotFoundError: If the specifier matches no listed version
            ManifestUnreachableError: If the manifest cannot be loaded
        """
        releases = self.releases()
        listed = [r.version for r in releases]

        if specifier == "latest":
            if not listed:
                raise VersionNotFoundError(specifier)
            return listed[0]

        if specifier == "stable":
            flagged = [r.version for r in releases if r.stable]
            if flagged:
                return flagged[0]
            return self._follow_pointer(specifier, listed)

        if specifier == "lts":
            return self._follow_pointer(specifier, listed)

        version = strip_v(specifier)
        if version not in listed:
            raise VersionNotFoundError(version)
        return version

    def _follow_pointer(self, alias: str, listed: List[str]) -> str:
        pointer = self.load_manifest().get(alias)
        if not isinstance(pointer, str) or strip_v(pointer) not in listed:
            raise VersionNotFoundError(alias)
        return strip_v(pointer)

    def release_info(self, version: str) -> ReleaseInfo:
        """
        Get the ReleaseInfo for a concrete version.

        Raises:
            VersionNotFoundError: If the version is not listed
        """
        version = strip_v(version)
        for release in self.releases():
            if release.version == version:
                return release
        raise VersionNotFoundError(version)

    def resolve(self, specifier: str) -> Tuple[str, ReleaseInfo]:
        """Resolve a specifier and return the version with its ReleaseInfo."""
        version = self.resolve_version(specifier)
        logger.debug(f"Resolved NW.js version {specifier} -> {version}")
        return version, self.release_info(version)


def _check_manifest(data: Any) -> None:
    if not isinstance(data, dict):
        raise ValueError("manifest is not a JSON object")
    if not isinstance(data.get("versions"), list):
        raise ValueError("manifest has no 'versions' list")


__all__ = [
    "MANIFEST_CACHE_NAME",
    "ReleaseInfo",
    "ManifestResolver",
    "validate_release",
    "version_key",
    "archive_format",
    "strip_v",
]
