"""
Cross-platform file system utilities for nwbuilder.

This module provides the file operations the runtime cache relies on:
- Archive extraction (zip, tar.gz) with unix permissions and symlinks
- Safe file operations (atomic writes, guarded recursive deletion)
- Directory helpers

All extraction validates member paths so an archive can never write outside
its destination directory.
"""

import os
import shutil
import stat
import sys
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Optional, Union

from nwbuilder.core.exceptions import (
    ArchiveExtractionError,
    CacheIOError,
    InsecureArchiveError,
    UnsupportedArchiveFormat,
)

IS_WINDOWS = os.name == "nt"
IS_UNIX = not IS_WINDOWS

ARCHIVE_FORMATS = ("zip", "tar.gz")


# ============================================================================
# Archive Extraction
# ============================================================================


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not member_path.is_relative_to(destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked.",
            destination,
        )


def detect_archive_format(archive_path: Union[str, Path]) -> str:
    """
    Detect archive format from the file name.

    Returns:
        'zip' or 'tar.gz'

    Raises:
        UnsupportedArchiveFormat: If the extension is not recognized
    """
    name = Path(archive_path).name.lower()
    if name.endswith(".zip"):
        return "zip"
    if name.endswith((".tar.gz", ".tgz")):
        return "tar.gz"
    raise UnsupportedArchiveFormat(
        f"Unsupported archive format: {archive_path}. Supported: .zip, .tar.gz",
        archive_path,
    )


def extract_archive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    archive_format: Optional[str] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> None:
    """
    Extract an archive to a destination directory.

    NW.js publishes linux runtimes as tar.gz and osx/win runtimes as zip.
    The format is taken from ``archive_format`` when given, otherwise from
    the file name.

    Args:
        archive_path: Path to the archive file
        destination: Directory to extract to
        archive_format: 'zip' or 'tar.gz'
        progress_callback: Optional callback(current, total) for progress

    Raises:
        UnsupportedArchiveFormat: If archive format is not recognized
        InsecureArchiveError: If archive contains malicious paths
        ArchiveExtractionError: If extraction fails

    Example:
        >>> extract_archive('nw.tar.gz', 'cache/.nwjs-v0.82.0-linux-x64.staging')
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ArchiveExtractionError(f"Archive not found: {archive_path}", archive_path)

    fmt = archive_format or detect_archive_format(archive_path)
    if fmt not in ARCHIVE_FORMATS:
        raise UnsupportedArchiveFormat(
            f"Unsupported archive format: {fmt}. Supported: {', '.join(ARCHIVE_FORMATS)}",
            archive_path,
        )

    try:
        destination.mkdir(parents=True, exist_ok=True)
        if fmt == "zip":
            _extract_zip(archive_path, destination, progress_callback)
        else:
            _extract_tar(archive_path, destination, "r:gz", progress_callback)
    except ArchiveExtractionError:
        raise
    except (zipfile.BadZipFile, tarfile.TarError, EOFError, OSError) as e:
        raise ArchiveExtractionError(
            f"Failed to extract {archive_path}: {e}", archive_path
        ) from e


def _extract_zip(
    archive_path: Path,
    destination: Path,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> None:
    """Extract a ZIP archive, restoring unix modes and symlinks."""
    with zipfile.ZipFile(archive_path, "r") as zf:
        members = zf.infolist()
        total = len(members)

        # Validate all paths first
        for member in members:
            _validate_archive_path(member.filename, destination)

        for i, member in enumerate(members):
            mode = member.external_attr >> 16
            if IS_UNIX and stat.S_ISLNK(mode):
                _extract_zip_symlink(zf, member, destination)
            else:
                extracted = zf.extract(member, destination)
                if IS_UNIX and mode and not member.is_dir():
                    os.chmod(extracted, stat.S_IMODE(mode))
            if progress_callback:
                progress_callback(i + 1, total)


def _extract_zip_symlink(
    zf: zipfile.ZipFile, member: zipfile.ZipInfo, destination: Path
) -> None:
    """Recreate a symlink stored in a zip member (target is the member body)."""
    link_path = destination / member.filename.rstrip("/")
    link_target = zf.read(member).decode("utf-8")

    root = Path(os.path.abspath(destination))
    resolved = os.path.abspath(os.path.join(link_path.parent, link_target))
    if not Path(resolved).is_relative_to(root):
        raise InsecureArchiveError(
            f"Archive symlink '{member.filename}' points outside the archive: "
            f"{link_target}",
            destination,
        )

    link_path.parent.mkdir(parents=True, exist_ok=True)
    if link_path.is_symlink() or link_path.exists():
        link_path.unlink()
    os.symlink(link_target, link_path)


def _extract_tar(
    archive_path: Path,
    destination: Path,
    mode: str,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> None:
    """Extract a tar archive with specified compression."""
    with tarfile.open(archive_path, mode) as tar:
        members = tar.getmembers()
        total = len(members)

        # Validate all paths first
        for member in members:
            _validate_archive_path(member.name, destination)

        # Extract with filter for security (Python 3.12+)
        # For older Python, we've already validated paths above
        if sys.version_info >= (3, 12):
            tar.extractall(destination, filter="data")
        else:
            tar.extractall(destination)

        if progress_callback:
            progress_callback(total, total)


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    The file is never observable in a partially-written state.

    Example:
        >>> atomic_write('cache/manifest.json', '{"versions": []}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in same directory keeps the rename on one filesystem
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Symlinks inside the tree are removed, never followed.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        CacheIOError: If deletion fails

    Example:
        >>> safe_rmtree('cache/nwjs-v0.82.0-linux-x64', require_prefix='cache')
    """
    path = Path(path).absolute()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if not path.resolve().is_relative_to(require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists() and not path.is_symlink():
        return  # Already gone, nothing to do

    try:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
        elif IS_WINDOWS:

            def handle_remove_readonly(func, failed_path, exc_info):
                """Error handler for Windows read-only files."""
                if not os.access(failed_path, os.W_OK):
                    os.chmod(failed_path, stat.S_IWRITE)
                    func(failed_path)
                else:
                    raise

            shutil.rmtree(path, onerror=handle_remove_readonly)
        else:
            shutil.rmtree(path)

    except OSError as e:
        raise CacheIOError(f"Failed to remove '{path}': {e}", path) from e


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists (idempotent).

    Raises:
        CacheIOError: If the directory cannot be created
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CacheIOError(f"Failed to create directory '{path}': {e}", path) from e
    return path


def directory_size(path: Union[str, Path]) -> int:
    """Calculate total size of regular files under a directory in bytes."""
    path = Path(path)
    return sum(
        item.stat().st_size
        for item in path.rglob("*")
        if item.is_file() and not item.is_symlink()
    )


__all__ = [
    "ARCHIVE_FORMATS",
    "detect_archive_format",
    "extract_archive",
    "atomic_write",
    "safe_rmtree",
    "ensure_directory",
    "directory_size",
]
