"""
Option resolution for nwbuilder.

Options come from three layers, lowest precedence first:

1. defaults (host platform/arch, ./cache, dl.nwjs.io, ...)
2. user options (API keyword dict, CLI flags, YAML config)
3. the ``nwbuild`` object in the application's package.json

``resolve_options`` merges them into a frozen ``Options`` value. It performs
no I/O; version aliases such as 'latest' are passed through untouched and
resolved later against the manifest.
"""

import glob
import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from nwbuilder.core.exceptions import (
    ConfigurationError,
    InvalidOptionError,
    MissingManifestFieldError,
    NoSourceFilesError,
    OverrideTypeError,
)
from nwbuilder.core.platform import SUPPORTED_ARCHS, SUPPORTED_PLATFORMS, detect_platform

logger = logging.getLogger(__name__)

MODES = ("run", "build")
FLAVORS = ("normal", "sdk")
VERSION_ALIASES = ("latest", "stable", "lts")

PROJECT_MANIFEST_NAME = "package.json"
OVERRIDE_FIELD = "nwbuild"
ENTRY_POINT_FIELD = "main"

DEFAULT_DOWNLOAD_URL = "https://dl.nwjs.io"
DEFAULT_MANIFEST_URL = "https://nwjs.io/versions"
DEFAULT_MANIFEST_TTL = 24 * 60 * 60

# package.json and the JS tooling use camelCase keys
_CAMEL_CASE_ALIASES = {
    "srcDir": "src_dir",
    "outDir": "out_dir",
    "cacheDir": "cache_dir",
    "downloadUrl": "download_url",
    "manifestUrl": "manifest_url",
    "manifestTtl": "manifest_ttl",
}


@dataclass(frozen=True)
class Options:
    """Resolved configuration for one invocation."""

    src_dir: str
    mode: str
    version: str
    flavor: str
    platform: str
    arch: str
    out_dir: Path
    cache_dir: Path
    download_url: str
    manifest_url: str
    cache: bool = True
    zip: bool = False
    argv: Tuple[str, ...] = ()
    app: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    manifest_ttl: int = DEFAULT_MANIFEST_TTL

    @property
    def patterns(self) -> List[str]:
        """Source glob patterns (``src_dir`` is space separated)."""
        return self.src_dir.split()

    @property
    def version_is_alias(self) -> bool:
        return self.version in VERSION_ALIASES


@dataclass(frozen=True)
class ProjectManifest:
    """
    The application's package.json.

    Attributes:
        data: Parsed JSON object
        path: File the manifest was read from, if any
    """

    data: Dict[str, Any]
    path: Optional[Path] = None

    @property
    def name(self) -> Optional[str]:
        return self.data.get("name")

    @property
    def main(self) -> Optional[str]:
        return self.data.get(ENTRY_POINT_FIELD)

    @property
    def has_override(self) -> bool:
        return OVERRIDE_FIELD in self.data

    def validate(self) -> None:
        """
        Check the fields NW.js requires of every application.

        Raises:
            MissingManifestFieldError: If name or main is missing or not a string
        """
        for required in ("name", ENTRY_POINT_FIELD):
            if not isinstance(self.data.get(required), str):
                raise MissingManifestFieldError(required)

    def override(self) -> Dict[str, Any]:
        """
        Get the ``nwbuild`` override object.

        Returns:
            The override mapping, or an empty dict when the field is absent

        Raises:
            OverrideTypeError: If the field exists but is not a JSON object
        """
        if not self.has_override:
            logger.debug(f"{OVERRIDE_FIELD} property is not defined in package.json")
            return {}

        value = self.data[OVERRIDE_FIELD]
        if not isinstance(value, dict):
            raise OverrideTypeError(OVERRIDE_FIELD, json_type_name(value))
        return value


def json_type_name(value: Any) -> str:
    """Name a parsed JSON value's type the way JSON describes it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def default_options() -> Dict[str, Any]:
    """
    Build the fixed default option layer.

    Platform and arch are absent here; ``resolve_options`` fills them from
    the host only when no other layer supplies them.
    """
    return {
        "src_dir": "./**/*",
        "mode": "build",
        "version": "latest",
        "flavor": "normal",
        "out_dir": "./out",
        "cache_dir": "./cache",
        "download_url": DEFAULT_DOWNLOAD_URL,
        "manifest_url": DEFAULT_MANIFEST_URL,
        "cache": True,
        "zip": False,
        "argv": [],
        "app": {},
        "manifest_ttl": DEFAULT_MANIFEST_TTL,
    }


def host_defaults() -> Dict[str, str]:
    """
    Platform and arch of the machine nwbuilder runs on.

    Raises:
        ConfigurationError: If the host OS has no NW.js builds
    """
    try:
        host = detect_platform()
    except RuntimeError as e:
        raise ConfigurationError(
            f"{e}; set platform and arch explicitly", "platform"
        ) from e
    return {"platform": host.platform, "arch": host.arch}


def normalize_keys(options: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map camelCase keys onto Options field names and drop unknown keys.

    Keys whose value is None are treated as not supplied.
    """
    known = {f.name for f in fields(Options)}
    normalized = {}
    for key, value in options.items():
        name = _CAMEL_CASE_ALIASES.get(key, key)
        if name not in known:
            logger.debug(f"Ignoring unknown option: {key}")
            continue
        if value is None:
            continue
        normalized[name] = value
    return normalized


def resolve_options(
    user_options: Optional[Mapping[str, Any]] = None,
    project_manifest: Optional[ProjectManifest] = None,
    defaults: Optional[Mapping[str, Any]] = None,
) -> Options:
    """
    Merge defaults, user options and the package.json override.

    Args:
        user_options: Options supplied by the caller (camelCase or snake_case)
        project_manifest: Parsed package.json; its ``nwbuild`` object wins
            over user options field by field
        defaults: Default layer (``default_options()`` when omitted)

    Returns:
        Validated, frozen Options

    Raises:
        MissingManifestFieldError: If package.json lacks name or main
        OverrideTypeError: If the nwbuild field is not an object
        InvalidOptionError: If an option is outside its allowed values

    Example:
        >>> opts = resolve_options({"version": "0.82.0", "flavor": "sdk"})
        >>> opts.cache_dir
        PosixPath('cache')
    """
    override: Dict[str, Any] = {}
    if project_manifest is not None:
        project_manifest.validate()
        override = project_manifest.override()

    merged = normalize_keys(defaults if defaults is not None else default_options())
    merged.update(normalize_keys(user_options or {}))
    merged.update(normalize_keys(override))

    if "platform" not in merged or "arch" not in merged:
        for name, value in host_defaults().items():
            merged.setdefault(name, value)

    app = dict(merged.get("app") or {})
    if project_manifest is not None:
        app.setdefault("name", project_manifest.name)

    return Options(
        src_dir=_as_patterns(merged.get("src_dir")),
        mode=_choice("mode", merged.get("mode"), MODES),
        version=_normalize_version(merged.get("version")),
        flavor=_choice("flavor", merged.get("flavor"), FLAVORS),
        platform=_choice("platform", merged.get("platform"), SUPPORTED_PLATFORMS),
        arch=_choice("arch", merged.get("arch"), SUPPORTED_ARCHS),
        out_dir=Path(_as_str("out_dir", merged.get("out_dir"))),
        cache_dir=Path(_as_str("cache_dir", merged.get("cache_dir"))),
        download_url=_as_str("download_url", merged.get("download_url")).rstrip("/"),
        manifest_url=_as_str("manifest_url", merged.get("manifest_url")),
        cache=_as_bool("cache", merged.get("cache", True)),
        zip=_as_bool("zip", merged.get("zip", False)),
        argv=tuple(str(a) for a in merged.get("argv") or ()),
        app=MappingProxyType(app),
        manifest_ttl=_as_int("manifest_ttl", merged.get("manifest_ttl", DEFAULT_MANIFEST_TTL)),
    )


def _as_str(name: str, value: Any) -> str:
    if isinstance(value, Path):
        value = str(value)
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"Option {name} must be a non-empty string", name)
    return value


def _as_patterns(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = " ".join(str(v) for v in value)
    return _as_str("src_dir", value)


def _choice(name: str, value: Any, allowed: Iterable[str]) -> str:
    allowed = tuple(allowed)
    if value not in allowed:
        raise InvalidOptionError(name, value, allowed)
    return value


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise InvalidOptionError(name, value, ("true", "false"))


def _as_int(name: str, value: Any) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Option {name} must be an integer", name) from None
    if result < 0:
        raise ConfigurationError(f"Option {name} must not be negative", name)
    return result


def _normalize_version(value: Any) -> str:
    version = _as_str("version", value).strip()
    if version in VERSION_ALIASES:
        return version
    return version[1:] if version.startswith("v") else version


# ============================================================================
# Source files and package.json
# ============================================================================


def _is_within(path: Path, roots: List[Path]) -> bool:
    resolved = path.resolve()
    return any(resolved.is_relative_to(root) for root in roots)


def exclude_files(files: Iterable[Path], directories: Iterable[Path]) -> List[Path]:
    """Drop files located below any of ``directories``."""
    roots = [Path(d).resolve() for d in directories]
    return [f for f in files if not _is_within(f, roots)]


def collect_source_files(
    patterns: Iterable[str], exclude: Iterable[Path] = ()
) -> List[Path]:
    """
    Expand source glob patterns into a list of files.

    Matched directories contribute every file below them.

    Args:
        patterns: Glob patterns, ``**`` matches recursively
        exclude: Directories whose contents are never application files,
            such as the runtime cache and the build output

    Raises:
        NoSourceFilesError: If the patterns match no files
    """
    patterns = list(patterns)
    excluded = [Path(d).resolve() for d in exclude]
    files: List[Path] = []
    seen = set()

    for pattern in patterns:
        for match in sorted(glob.glob(pattern, recursive=True)):
            path = Path(match)
            if excluded and _is_within(path, excluded):
                continue
            candidates = (
                sorted(p for p in path.rglob("*") if p.is_file())
                if path.is_dir()
                else [path]
            )
            if path.is_dir() and excluded:
                candidates = exclude_files(candidates, excluded)
            for candidate in candidates:
                if candidate not in seen:
                    seen.add(candidate)
                    files.append(candidate)

    if not files:
        raise NoSourceFilesError(" ".join(patterns))

    logger.debug(f"Matched {len(files)} source files")
    return files


def load_project_manifest(files: Iterable[Path]) -> ProjectManifest:
    """
    Read the first package.json among the matched source files.

    Raises:
        ConfigurationError: If no package.json was matched, or it is not
            a JSON object
    """
    for path in files:
        if path.name != PROJECT_MANIFEST_NAME:
            continue
        logger.debug(f"Reading project manifest: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Could not read {path}: {e}", PROJECT_MANIFEST_NAME
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{path} must contain a JSON object, found {json_type_name(data)}",
                PROJECT_MANIFEST_NAME,
            )
        return ProjectManifest(data=data, path=path)

    raise ConfigurationError(
        "package.json not found in srcDir file glob patterns.", PROJECT_MANIFEST_NAME
    )


__all__ = [
    "MODES",
    "FLAVORS",
    "VERSION_ALIASES",
    "Options",
    "ProjectManifest",
    "default_options",
    "host_defaults",
    "normalize_keys",
    "resolve_options",
    "collect_source_files",
    "exclude_files",
    "load_project_manifest",
    "json_type_name",
]
