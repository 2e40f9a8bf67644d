"""
Default Launcher: runs the application with the cached NW.js executable.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from nwbuilder.core.exceptions import DispatchError
from nwbuilder.runtime.dispatch import Launcher

logger = logging.getLogger(__name__)

_MAGIC = re.compile(r"[*?[]")

EXECUTABLES = {
    "linux": "nw",
    "osx": "nwjs.app/Contents/MacOS/nwjs",
    "win": "nw.exe",
}


def executable_path(runtime_dir: Path, platform: str) -> Path:
    """
    Path of the NW.js executable inside a runtime directory.

    Example:
        >>> executable_path(Path("cache/nwjs-v0.82.0-osx-x64"), "osx")
        PosixPath('cache/nwjs-v0.82.0-osx-x64/nwjs.app/Contents/MacOS/nwjs')
    """
    try:
        return Path(runtime_dir) / EXECUTABLES[platform]
    except KeyError:
        raise DispatchError(f"Unsupported platform: {platform}", "run") from None


def source_root(src_dir: str) -> Path:
    """
    Directory NW.js should load the application from.

    Uses the first source pattern, cut at its first wildcard component.

    Example:
        >>> source_root("./app/**/* ./assets/*")
        PosixPath('app')
    """
    patterns = src_dir.split()
    if not patterns:
        raise DispatchError("No source directory to launch", "run")

    parts = []
    for part in Path(patterns[0]).parts:
        if _MAGIC.search(part):
            break
        parts.append(part)

    root = Path(*parts) if parts else Path(".")
    # A pattern naming a file (e.g. ./app/package.json) points at its folder
    if root.is_file():
        root = root.parent
    return root


class NwLauncher(Launcher):
    """
    Spawns ``nw <source dir> [argv...]`` and waits for it to exit.

    Attributes:
        wait: Block until the application exits (default True)
    """

    def __init__(self, wait: bool = True):
        self.wait = wait

    def launch(
        self,
        src_dir: str,
        runtime_dir: Path,
        platform: str,
        argv: Sequence[str],
    ) -> Optional[int]:
        exe = executable_path(runtime_dir, platform)
        if not exe.is_file():
            raise DispatchError(f"NW.js executable not found: {exe}", "run")

        command = [str(exe), str(source_root(src_dir)), *argv]
        logger.debug(f"Running: {' '.join(command)}")

        try:
            if not self.wait:
                subprocess.Popen(command)
                return None
            result = subprocess.run(command, check=False)
        except OSError as e:
            raise DispatchError(f"Failed to start {exe}: {e}", "run") from e

        if result.returncode != 0:
            logger.warning(f"NW.js exited with code {result.returncode}")
        return result.returncode


__all__ = ["EXECUTABLES", "NwLauncher", "executable_path", "source_root"]
