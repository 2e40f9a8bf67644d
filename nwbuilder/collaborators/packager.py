"""
Default Packager: copies the runtime and the application into outDir.

Layout produced in ``out_dir``:

    linux, win:  <runtime files>, package.nw/<app files>
    osx:         <runtime files>, nwjs.app/Contents/Resources/app.nw/<app files>

Platform specific bundle assembly (icons, version resources, Info.plist,
desktop entries) is not performed.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Any, List, Mapping, Optional

from nwbuilder.core.exceptions import DispatchError
from nwbuilder.runtime.cache import COMPLETION_MARKER
from nwbuilder.runtime.dispatch import Packager
from nwbuilder.runtime.manifest import ReleaseInfo

logger = logging.getLogger(__name__)

APP_DIRS = {
    "linux": Path("package.nw"),
    "osx": Path("nwjs.app/Contents/Resources/app.nw"),
    "win": Path("package.nw"),
}


def app_dir(out_dir: Path, platform: str) -> Path:
    try:
        return Path(out_dir) / APP_DIRS[platform]
    except KeyError:
        raise DispatchError(f"Unsupported platform: {platform}", "build") from None


def common_root(files: List[Path]) -> Path:
    """Deepest directory containing every file."""
    parents = [str(Path(f).resolve().parent) for f in files]
    return Path(os.path.commonpath(parents))


class CopyPackager(Packager):
    """Copies the runtime and application files, then optionally zips."""

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
        out_dir = Path(out_dir)
        target = app_dir(out_dir, platform)

        logger.info(f"Copying NW.js v{release.version} runtime to {out_dir}")
        try:
            shutil.copytree(
                runtime_dir,
                out_dir,
                symlinks=True,
                dirs_exist_ok=True,
                ignore=shutil.ignore_patterns(COMPLETION_MARKER),
            )

            root = common_root(files)
            target.mkdir(parents=True, exist_ok=True)
            for file in files:
                source = Path(file).resolve()
                destination = target / source.relative_to(root)
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, destination)
            logger.debug(f"Copied {len(files)} application files to {target}")

            if zip:
                archive = shutil.make_archive(str(out_dir), "zip", root_dir=out_dir)
                logger.info(f"Created archive: {archive}")
                return Path(archive)
        except OSError as e:
            name = app.get("name") or "application"
            raise DispatchError(f"Failed to package {name}: {e}", "build") from e

        return out_dir


__all__ = ["APP_DIRS", "CopyPackager", "app_dir", "common_root"]
