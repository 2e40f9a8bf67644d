"""
nwbuilder: prepare NW.js runtimes for building and running applications.

Example:
    >>> from nwbuilder import nwbuild
    >>> error = nwbuild({"srcDir": "./app/*", "mode": "build", "version": "stable"})
"""

from nwbuilder.builder import PreparedRuntime, nwbuild, prepare_runtime
from nwbuilder.core.exceptions import (
    ERROR_KINDS,
    CacheIOError,
    ConfigurationError,
    DispatchError,
    NetworkError,
    NwBuilderError,
    ResolutionError,
)
from nwbuilder.runtime.dispatch import Launcher, Packager
from nwbuilder.runtime.options import Options, resolve_options

__all__ = [
    "nwbuild",
    "prepare_runtime",
    "PreparedRuntime",
    "Options",
    "resolve_options",
    "Packager",
    "Launcher",
    "NwBuilderError",
    "ConfigurationError",
    "ResolutionError",
    "NetworkError",
    "CacheIOError",
    "DispatchError",
    "ERROR_KINDS",
]
