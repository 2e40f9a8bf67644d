"""
Tests for filesystem module.

Covers archive extraction (zip permissions and symlinks, tar.gz, traversal
protection), atomic writes and guarded deletion.
"""

import os
import stat
import tarfile
import io
import zipfile

import pytest

from nwbuilder.core.exceptions import (
    ArchiveExtractionError,
    CacheIOError,
    InsecureArchiveError,
    UnsupportedArchiveFormat,
)
from nwbuilder.core.filesystem import (
    atomic_write,
    detect_archive_format,
    directory_size,
    ensure_directory,
    extract_archive,
    safe_rmtree,
)

unix_only = pytest.mark.skipif(os.name == "nt", reason="unix permissions and symlinks")


def _zip_entry(zf, name, data, mode):
    info = zipfile.ZipInfo(name)
    info.external_attr = mode << 16
    zf.writestr(info, data)


class TestDetectArchiveFormat:
    """Test archive format detection."""

    def test_zip(self):
        assert detect_archive_format("nwjs-v0.82.0-win-x64.zip") == "zip"

    def test_tar_gz(self):
        assert detect_archive_format("nwjs-v0.82.0-linux-x64.tar.gz") == "tar.gz"
        assert detect_archive_format("runtime.tgz") == "tar.gz"

    def test_unsupported(self):
        with pytest.raises(UnsupportedArchiveFormat):
            detect_archive_format("runtime.7z")


class TestExtractZip:
    """Test zip extraction."""

    def test_extracts_files(self, tmp_path):
        """Test regular files are extracted under the destination."""
        archive = tmp_path / "a.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            _zip_entry(zf, "root/nw.exe", b"MZ", stat.S_IFREG | 0o644)
            _zip_entry(zf, "root/locales/en.pak", b"pak", stat.S_IFREG | 0o644)

        extract_archive(archive, tmp_path / "out")

        assert (tmp_path / "out" / "root" / "nw.exe").read_bytes() == b"MZ"
        assert (tmp_path / "out" / "root" / "locales" / "en.pak").exists()

    @unix_only
    def test_restores_executable_bit(self, tmp_path):
        """Test unix modes stored in the zip are applied."""
        archive = tmp_path / "a.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            _zip_entry(zf, "root/nwjs", b"#!/bin/sh", stat.S_IFREG | 0o755)
            _zip_entry(zf, "root/data.bin", b"data", stat.S_IFREG | 0o644)

        extract_archive(archive, tmp_path / "out", archive_format="zip")

        assert os.access(tmp_path / "out" / "root" / "nwjs", os.X_OK)
        assert not os.access(tmp_path / "out" / "root" / "data.bin", os.X_OK)

    @unix_only
    def test_restores_symlinks(self, tmp_path):
        """Test symlink members (osx framework layout) become symlinks."""
        archive = tmp_path / "a.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            _zip_entry(zf, "root/Versions/A/lib", b"binary", stat.S_IFREG | 0o755)
            _zip_entry(zf, "root/Versions/Current", b"A", stat.S_IFLNK | 0o777)

        extract_archive(archive, tmp_path / "out")

        link = tmp_path / "out" / "root" / "Versions" / "Current"
        assert link.is_symlink()
        assert os.readlink(link) == "A"
        assert (link / "lib").read_bytes() == b"binary"

    @unix_only
    def test_symlinks_with_dotdot_destination(self, tmp_path):
        """Test a destination spelled with '..' still accepts inner links."""
        archive = tmp_path / "a.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            _zip_entry(zf, "root/Versions/A/lib", b"binary", stat.S_IFREG | 0o755)
            _zip_entry(zf, "root/Versions/Current", b"A", stat.S_IFLNK | 0o777)
        (tmp_path / "work").mkdir()

        extract_archive(archive, tmp_path / "work" / ".." / "out")

        link = tmp_path / "out" / "root" / "Versions" / "Current"
        assert link.is_symlink()
        assert (link / "lib").read_bytes() == b"binary"

    @unix_only
    def test_rejects_symlink_escaping_archive(self, tmp_path):
        """Test a symlink pointing outside the destination is blocked."""
        archive = tmp_path / "a.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            _zip_entry(zf, "root/evil", b"../../../etc/passwd", stat.S_IFLNK | 0o777)

        with pytest.raises(InsecureArchiveError):
            extract_archive(archive, tmp_path / "out")

    def test_rejects_path_traversal(self, tmp_path):
        """Test members with ../ are blocked before anything is written."""
        archive = tmp_path / "a.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("../evil.txt", b"evil")

        with pytest.raises(InsecureArchiveError):
            extract_archive(archive, tmp_path / "out")

        assert not (tmp_path / "evil.txt").exists()

    def test_corrupt_zip(self, tmp_path):
        """Test a corrupt archive raises ArchiveExtractionError."""
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"this is not a zip file")

        with pytest.raises(ArchiveExtractionError) as exc_info:
            extract_archive(archive, tmp_path / "out")

        assert exc_info.value.kind == "io"

    def test_progress_callback(self, tmp_path):
        """Test progress reports every member."""
        archive = tmp_path / "a.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("a.txt", b"a")
            zf.writestr("b.txt", b"b")
        calls = []

        extract_archive(archive, tmp_path / "out", progress_callback=lambda c, t: calls.append((c, t)))

        assert calls == [(1, 2), (2, 2)]


class TestExtractTar:
    """Test tar.gz extraction."""

    def test_extracts_tar_gz(self, tmp_path):
        """Test tar.gz contents are extracted."""
        archive = tmp_path / "a.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("root/nw")
            info.size = 4
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(b"exec"))

        extract_archive(archive, tmp_path / "out")

        assert (tmp_path / "out" / "root" / "nw").read_bytes() == b"exec"

    def test_rejects_path_traversal(self, tmp_path):
        """Test tar members escaping the destination are blocked."""
        archive = tmp_path / "a.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("../evil.txt")
            info.size = 4
            tar.addfile(info, io.BytesIO(b"evil"))

        with pytest.raises(InsecureArchiveError):
            extract_archive(archive, tmp_path / "out")

    def test_corrupt_tar_gz(self, tmp_path):
        """Test a corrupt tar.gz raises ArchiveExtractionError."""
        archive = tmp_path / "broken.tar.gz"
        archive.write_bytes(b"garbage")

        with pytest.raises(ArchiveExtractionError):
            extract_archive(archive, tmp_path / "out")

    def test_missing_archive(self, tmp_path):
        with pytest.raises(ArchiveExtractionError, match="not found"):
            extract_archive(tmp_path / "missing.tar.gz", tmp_path / "out")


class TestAtomicWrite:
    """Test atomic_write."""

    def test_writes_text(self, tmp_path):
        target = tmp_path / "sub" / "manifest.json"
        atomic_write(target, '{"versions": []}')

        assert target.read_text() == '{"versions": []}'

    def test_replaces_and_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "manifest.json"
        target.write_text("old")

        atomic_write(target, b"new")

        assert target.read_bytes() == b"new"
        assert [p.name for p in tmp_path.iterdir()] == ["manifest.json"]


class TestSafeRmtree:
    """Test safe_rmtree."""

    def test_removes_tree(self, tmp_path):
        tree = tmp_path / "cache" / "entry"
        (tree / "nested").mkdir(parents=True)
        (tree / "nested" / "file").write_text("x")

        safe_rmtree(tree, require_prefix=tmp_path / "cache")

        assert not tree.exists()

    def test_missing_path_is_noop(self, tmp_path):
        safe_rmtree(tmp_path / "missing")

    def test_refuses_outside_prefix(self, tmp_path):
        other = tmp_path / "other"
        other.mkdir()

        with pytest.raises(ValueError, match="not under required prefix"):
            safe_rmtree(other, require_prefix=tmp_path / "cache")

        assert other.exists()

    @unix_only
    def test_does_not_follow_symlinks(self, tmp_path):
        """Test a symlink inside the tree is removed, not its target."""
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "keep.txt").write_text("keep")
        tree = tmp_path / "tree"
        tree.mkdir()
        (tree / "link").symlink_to(outside)

        safe_rmtree(tree)

        assert not tree.exists()
        assert (outside / "keep.txt").exists()

    def test_failure_raises_cache_io_error(self, tmp_path, monkeypatch):
        tree = tmp_path / "tree"
        tree.mkdir()

        def fail(*args, **kwargs):
            raise PermissionError("denied")

        monkeypatch.setattr("nwbuilder.core.filesystem.shutil.rmtree", fail)

        with pytest.raises(CacheIOError) as exc_info:
            safe_rmtree(tree)

        assert exc_info.value.path == tree.absolute()


class TestDirectoryHelpers:
    """Test ensure_directory and directory_size."""

    def test_ensure_directory_idempotent(self, tmp_path):
        target = tmp_path / "out" / "nested"

        assert ensure_directory(target) == target
        assert ensure_directory(target) == target
        assert target.is_dir()

    def test_ensure_directory_over_file(self, tmp_path):
        blocker = tmp_path / "out"
        blocker.write_text("file")

        with pytest.raises(CacheIOError):
            ensure_directory(blocker / "nested")

    def test_directory_size(self, tmp_path):
        (tmp_path / "a").write_bytes(b"12345")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b").write_bytes(b"123")

        assert directory_size(tmp_path) == 8
