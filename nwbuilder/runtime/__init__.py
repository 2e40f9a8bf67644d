"""
Runtime preparation: options, manifest, cache, acquisition and dispatch.
"""

from .options import Options, ProjectManifest, resolve_options
from .manifest import ManifestResolver, ReleaseInfo, validate_release
from .cache import CacheManager, cache_key
from .acquisition import AcquisitionPipeline, AcquisitionProgress, AcquisitionResult
from .dispatch import Dispatcher, Launcher, Packager

__all__ = [
    "Options",
    "ProjectManifest",
    "resolve_options",
    "ManifestResolver",
    "ReleaseInfo",
    "validate_release",
    "CacheManager",
    "cache_key",
    "AcquisitionPipeline",
    "AcquisitionProgress",
    "AcquisitionResult",
    "Dispatcher",
    "Launcher",
    "Packager",
]
