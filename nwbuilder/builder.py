"""
Top-level orchestration.

``nwbuild()`` is the single entry point: it reads the application's
package.json, resolves options and the runtime version, makes sure the
runtime is cached and hands it to the Packager or Launcher. It is also the
error boundary: failures are logged once here and returned, not raised.
"""

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import requests

from nwbuilder.collaborators import CopyPackager, NwLauncher
from nwbuilder.core.exceptions import NwBuilderError
from nwbuilder.runtime.acquisition import AcquisitionPipeline, AcquisitionProgress
from nwbuilder.runtime.cache import CacheManager, cache_key
from nwbuilder.runtime.dispatch import Dispatcher, Launcher, Packager
from nwbuilder.runtime.manifest import ManifestResolver, ReleaseInfo, validate_release
from nwbuilder.runtime.options import (
    Options,
    collect_source_files,
    default_options,
    exclude_files,
    load_project_manifest,
    normalize_keys,
    resolve_options,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 600


@dataclass(frozen=True)
class PreparedRuntime:
    """A runtime that is present in the cache and ready for dispatch."""

    options: Options
    """Resolved options, with ``version`` replaced by the concrete version"""

    version: str
    release: ReleaseInfo
    key: str
    path: Path

    was_cached: bool
    """True when the entry was already populated and no download happened"""


def prepare_runtime(
    options: Options,
    session: Optional[requests.Session] = None,
    progress_callback: Optional[Callable[[AcquisitionProgress], None]] = None,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> PreparedRuntime:
    """
    Resolve the version and make sure its runtime is cached.

    Args:
        options: Resolved options
        session: Optional requests session for manifest and archive downloads
        progress_callback: Optional acquisition progress callback
        lock_timeout: Seconds to wait for another process holding the key

    Returns:
        PreparedRuntime describing the populated cache entry

    Raises:
        NwBuilderError: Any resolution, network or io error
    """
    cache = CacheManager(options.cache_dir)
    resolver = ManifestResolver(
        options.manifest_url,
        options.cache_dir,
        ttl=options.manifest_ttl,
        session=session,
    )

    version, release = resolver.resolve(options.version)
    validate_release(release, options.flavor, options.platform, options.arch)
    options = dataclasses.replace(options, version=version)

    key = cache_key(options.flavor, version, options.platform, options.arch)
    cache.ensure_directory(options.out_dir)

    with cache.lock(key, timeout=lock_timeout):
        if not options.cache and cache.entry_path(key).exists():
            logger.debug("Remove cached NW binary")
            cache.invalidate(key)

        # Checked under the lock: another process may have just finished
        was_cached = cache.is_populated(key)
        if was_cached:
            logger.info(f"Using cached NW.js runtime: {cache.entry_path(key)}")
        else:
            logger.info(f"Downloading NW.js v{version} ({options.flavor}, "
                        f"{options.platform}-{options.arch})")
            pipeline = AcquisitionPipeline(
                cache, progress_callback=progress_callback, session=session
            )
            pipeline.acquire(options, version, release)

    return PreparedRuntime(
        options=options,
        version=version,
        release=release,
        key=key,
        path=cache.entry_path(key),
        was_cached=was_cached,
    )


def nwbuild(
    options: Optional[Mapping[str, Any]] = None,
    *,
    packager: Optional[Packager] = None,
    launcher: Optional[Launcher] = None,
    session: Optional[requests.Session] = None,
    progress_callback: Optional[Callable[[AcquisitionProgress], None]] = None,
) -> Optional[NwBuilderError]:
    """
    Prepare an NW.js runtime and build or run the application with it.

    Args:
        options: User options, camelCase or snake_case keys
        packager: Build mode collaborator (CopyPackager by default)
        launcher: Run mode collaborator (NwLauncher by default)
        session: Optional requests session
        progress_callback: Optional acquisition progress callback

    Returns:
        None on success, otherwise the error that stopped the run

    Example:
        >>> error = nwbuild({"srcDir": "./app/*", "mode": "build", "version": "0.82.0"})
        >>> if error:
        ...     print(error.kind, error)
    """
    try:
        user_options = dict(options or {})
        defaults = default_options()

        layer = {**defaults, **normalize_keys(user_options)}
        patterns = layer["src_dir"]
        if isinstance(patterns, (list, tuple)):
            patterns = " ".join(str(p) for p in patterns)
        generated = [
            layer[name] for name in ("cache_dir", "out_dir")
            if isinstance(layer.get(name), (str, Path))
        ]

        # package.json is checked before anything touches the network
        files = collect_source_files(str(patterns).split(), exclude=generated)
        project_manifest = load_project_manifest(files)

        resolved = resolve_options(user_options, project_manifest, defaults)
        # The nwbuild override may have moved either directory
        files = exclude_files(files, (resolved.cache_dir, resolved.out_dir))
        prepared = prepare_runtime(
            resolved, session=session, progress_callback=progress_callback
        )

        dispatcher = Dispatcher(packager or CopyPackager(), launcher or NwLauncher())
        dispatcher.dispatch(prepared.options, prepared.path, prepared.release, files)
    except NwBuilderError as e:
        logger.error(f"{e}")
        return e
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        error = NwBuilderError(f"Unexpected error: {e}")
        error.__cause__ = e
        return error

    return None


__all__ = ["nwbuild", "prepare_runtime", "PreparedRuntime"]
