"""
Mode dispatch for a prepared runtime.

This module defines the interfaces the core uses to hand a populated runtime
directory to whatever builds or runs the application. The core never looks
inside the runtime itself; Packager and Launcher implementations do.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from nwbuilder.core.exceptions import DispatchError, NwBuilderError
from nwbuilder.runtime.manifest import ReleaseInfo
from nwbuilder.runtime.options import Options

logger = logging.getLogger(__name__)


class Packager(ABC):
    """
    Abstract interface for build mode.

    A Packager combines the runtime with the application files and writes
    the result to the output directory.
    """

    @abstractmethod
    def package(
        self,
        files: List[Path],
        runtime_dir: Path,
        out_dir: Path,
        platform: str,
        zip: bool,
        release: ReleaseInfo,
        app: Mapping[str, Any],
    ) -> Optional[Path]:
        """
        Assemble the application bundle.

        Args:
            files: Application source files
            runtime_dir: Populated cache entry for the runtime
            out_dir: Output directory (already created)
            platform: Target platform ("linux", "osx", "win")
            zip: Whether to compress the output
            release: Release metadata of the runtime version
            app: Application metadata (name, version, ...)

        Returns:
            Path to the produced bundle, if any
        """
        pass


class Launcher(ABC):
    """Abstract interface for run mode."""

    @abstractmethod
    def launch(
        self,
        src_dir: str,
        runtime_dir: Path,
        platform: str,
        argv: Sequence[str],
    ) -> Optional[int]:
        """
        Run the application with the runtime.

        Args:
            src_dir: Source glob patterns of the application
            runtime_dir: Populated cache entry for the runtime
            platform: Platform the runtime was built for
            argv: Extra arguments passed through to the application

        Returns:
            Exit code of the application, if it was waited for
        """
        pass


class Dispatcher:
    """
    Routes a prepared runtime to the Packager or Launcher by mode.

    Example:
        >>> dispatcher = Dispatcher(CopyPackager(), NwLauncher())
        >>> dispatcher.dispatch(options, runtime_dir, release, files)
    """

    def __init__(self, packager: Packager, launcher: Launcher):
        self.packager = packager
        self.launcher = launcher

    def dispatch(
        self,
        options: Options,
        runtime_dir: Path,
        release: ReleaseInfo,
        files: List[Path],
    ) -> Any:
        """
        Invoke exactly one collaborator for ``options.mode``.

        Returns:
            Whatever the collaborator returned

        Raises:
            DispatchError: If the mode is unknown or the collaborator fails
                with an error that is not an NwBuilderError
        """
        mode = options.mode
        try:
            if mode == "build":
                logger.info(f"Packaging {len(files)} files into {options.out_dir}")
                return self.packager.package(
                    files,
                    runtime_dir,
                    options.out_dir,
                    options.platform,
                    options.zip,
                    release,
                    options.app,
                )
            if mode == "run":
                logger.info(f"Launching application with {runtime_dir}")
                return self.launcher.launch(
                    options.src_dir, runtime_dir, options.platform, options.argv
                )
        except NwBuilderError:
            raise
        except Exception as e:
            raise DispatchError(f"{mode} failed: {e}", mode) from e

        raise DispatchError(f"Unknown mode: {mode}", mode)


__all__ = [
    "Packager",
    "Launcher",
    "Dispatcher",
]
