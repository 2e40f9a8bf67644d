"""
Tests for the release manifest, version resolution and tuple validation.
"""

import json
import os
import time

import pytest
import requests
import responses

from nwbuilder.core.exceptions import (
    ManifestUnreachableError,
    UnsupportedCombinationError,
    VersionNotFoundError,
)
from nwbuilder.runtime.manifest import (
    ManifestResolver,
    ReleaseInfo,
    archive_format,
    validate_release,
    version_key,
)
from tests.fixtures.runtimes import MANIFEST_URL, make_manifest


@pytest.fixture
def resolver(tmp_path):
    return ManifestResolver(MANIFEST_URL, tmp_path / "cache")


def serve(manifest, status=200):
    responses.add(responses.GET, MANIFEST_URL, json=manifest, status=status)


class TestVersionKey:
    """Test version ordering."""

    def test_numeric_ordering(self):
        assert version_key("0.82.0") > version_key("0.9.0")
        assert version_key("v0.82.0") == version_key("0.82.0")

    def test_non_pep440_uses_numeric_core(self):
        assert version_key("0.82.0-sdk-only") > version_key("0.81.0")


class TestReleaseInfo:
    """Test ReleaseInfo parsing."""

    def test_files_list_with_flavors(self):
        info = ReleaseInfo.from_entry(
            {"version": "v0.82.0", "files": ["linux-x64", "osx-arm64"], "flavors": ["normal", "sdk"]}
        )

        assert info.version == "0.82.0"
        assert info.is_available("sdk", "osx", "arm64")
        assert info.is_available("normal", "linux", "x64")
        assert not info.is_available("normal", "win", "x64")

    def test_files_per_flavor(self):
        info = ReleaseInfo.from_entry(
            {"version": "v0.82.0", "files": {"normal": ["win-x64"], "sdk": ["linux-x64"]}}
        )

        assert info.is_available("normal", "win", "x64")
        assert not info.is_available("sdk", "win", "x64")
        assert info.is_available("sdk", "linux", "x64")

    def test_missing_flavors_means_normal_only(self):
        info = ReleaseInfo.from_entry({"version": "v0.14.7", "files": ["linux-x64"]})
        assert info.sdk == frozenset()

    def test_requires_version(self):
        with pytest.raises(ValueError):
            ReleaseInfo.from_entry({"files": []})

    @pytest.mark.parametrize(
        "flavor,platform,arch,expected",
        [
            ("normal", "linux", "x64", "nwjs-v0.82.0-linux-x64.tar.gz"),
            ("sdk", "osx", "arm64", "nwjs-sdk-v0.82.0-osx-arm64.zip"),
            ("normal", "win", "ia32", "nwjs-v0.82.0-win-ia32.zip"),
        ],
    )
    def test_archive_name(self, flavor, platform, arch, expected):
        info = ReleaseInfo.from_entry(
            {"version": "v0.82.0", "files": ["linux-x64"], "flavors": ["normal", "sdk"]}
        )
        assert info.archive_name(flavor, platform, arch) == expected

    def test_archive_format(self):
        assert archive_format("linux") == "tar.gz"
        assert archive_format("osx") == "zip"
        assert archive_format("win") == "zip"


class TestValidateRelease:
    """Test the flavor/platform/arch check."""

    def test_every_listed_tuple_accepted(self):
        manifest = make_manifest()
        for entry in manifest["versions"]:
            info = ReleaseInfo.from_entry(entry)
            for flavor in entry["flavors"]:
                for target in entry["files"]:
                    platform, arch = target.split("-")
                    validate_release(info, flavor, platform, arch)
                    name = info.archive_name(flavor, platform, arch)
                    assert f"-v{info.version}-{platform}-{arch}." in name
                    assert name.startswith("nwjs-sdk-" if flavor == "sdk" else "nwjs-v")

    def test_unlisted_arch(self):
        info = ReleaseInfo.from_entry(make_manifest()["versions"][1])

        with pytest.raises(UnsupportedCombinationError) as exc_info:
            validate_release(info, "normal", "osx", "arm64")

        error = exc_info.value
        assert (error.version, error.flavor, error.platform, error.arch) == (
            "0.81.0", "normal", "osx", "arm64",
        )
        assert "osx-x64" in error.available

    def test_unpublished_flavor(self):
        info = ReleaseInfo.from_entry(make_manifest()["versions"][2])

        with pytest.raises(UnsupportedCombinationError, match="sdk flavor"):
            validate_release(info, "sdk", "linux", "x64")


class TestLoadManifest:
    """Test fetching and caching of the manifest."""

    @responses.activate
    def test_fetch_and_cache(self, resolver):
        serve(make_manifest())

        data = resolver.load_manifest()

        assert data["latest"] == "v0.82.0"
        assert resolver.manifest_path.exists()
        assert json.loads(resolver.manifest_path.read_text())["lts"] == "v0.14.7"

    @responses.activate
    def test_fresh_cache_skips_network(self, resolver):
        resolver.manifest_path.parent.mkdir(parents=True)
        resolver.manifest_path.write_text(json.dumps(make_manifest()))

        resolver.load_manifest()

        assert len(responses.calls) == 0

    @responses.activate
    def test_expired_cache_refetched(self, resolver):
        resolver.manifest_path.parent.mkdir(parents=True)
        resolver.manifest_path.write_text(json.dumps(make_manifest(latest="v0.1.0")))
        old = time.time() - 2 * resolver.ttl
        os.utime(resolver.manifest_path, (old, old))
        serve(make_manifest())

        data = resolver.load_manifest()

        assert data["latest"] == "v0.82.0"
        assert len(responses.calls) == 1

    @responses.activate
    def test_offline_uses_stale_copy(self, resolver):
        resolver.manifest_path.parent.mkdir(parents=True)
        resolver.manifest_path.write_text(json.dumps(make_manifest()))
        old = time.time() - 2 * resolver.ttl
        os.utime(resolver.manifest_path, (old, old))
        responses.add(
            responses.GET, MANIFEST_URL, body=requests.exceptions.ConnectionError("offline")
        )

        assert resolver.resolve_version("latest") == "0.82.0"

    @responses.activate
    def test_unreachable_without_cache(self, resolver):
        responses.add(responses.GET, MANIFEST_URL, status=503)

        with pytest.raises(ManifestUnreachableError) as exc_info:
            resolver.load_manifest()

        assert exc_info.value.url == MANIFEST_URL
        assert exc_info.value.kind == "network"

    @responses.activate
    def test_invalid_json(self, resolver):
        responses.add(responses.GET, MANIFEST_URL, body="<html>", status=200)

        with pytest.raises(ManifestUnreachableError, match="not valid JSON"):
            resolver.load_manifest()

    @responses.activate
    def test_missing_versions_list(self, resolver):
        serve({"latest": "v0.82.0"})

        with pytest.raises(ManifestUnreachableError, match="versions"):
            resolver.load_manifest()

    @responses.activate
    def test_loaded_once_per_resolver(self, resolver):
        serve(make_manifest())

        resolver.resolve("latest")
        resolver.resolve("stable")

        assert len(responses.calls) == 1


class TestResolveVersion:
    """Test alias and concrete version resolution."""

    @responses.activate
    def test_latest_is_newest_listed(self, resolver):
        serve(make_manifest())
        assert resolver.resolve_version("latest") == "0.82.0"

    @responses.activate
    def test_latest_ignores_pointer_and_order(self, resolver):
        """Test 'latest' picks the highest version, even if not first."""
        serve(
            make_manifest(
                versions=[
                    {"version": "v0.80.0", "files": ["linux-x64"]},
                    {"version": "v0.81.0", "files": ["linux-x64"]},
                    {"version": "v0.82.0-sdk-only", "files": ["linux-x64"], "flavors": ["sdk"]},
                ],
                latest="v0.81.0",
            )
        )
        assert resolver.resolve_version("latest") == "0.82.0-sdk-only"

    @responses.activate
    def test_stable_pointer(self, resolver):
        serve(make_manifest())
        assert resolver.resolve_version("stable") == "0.81.0"

    @responses.activate
    def test_stable_prefers_flagged_entries(self, resolver):
        versions = make_manifest()["versions"]
        versions[2]["stable"] = True
        serve(make_manifest(versions=versions))

        assert resolver.resolve_version("stable") == "0.14.7"

    @responses.activate
    def test_lts(self, resolver):
        serve(make_manifest())
        assert resolver.resolve_version("lts") == "0.14.7"

    @responses.activate
    def test_alias_pointer_missing(self, resolver):
        manifest = make_manifest()
        del manifest["lts"]
        serve(manifest)

        with pytest.raises(VersionNotFoundError):
            resolver.resolve_version("lts")

    @responses.activate
    def test_concrete_version(self, resolver):
        serve(make_manifest())

        assert resolver.resolve_version("0.81.0") == "0.81.0"
        assert resolver.resolve_version("v0.81.0") == "0.81.0"

    @responses.activate
    def test_unknown_version(self, resolver):
        serve(make_manifest())

        with pytest.raises(VersionNotFoundError) as exc_info:
            resolver.resolve_version("0.99.0")

        assert exc_info.value.kind == "resolution"

    @responses.activate
    def test_resolve_returns_release(self, resolver):
        serve(make_manifest())

        version, release = resolver.resolve("latest")

        assert version == release.version == "0.82.0"
        assert release.components["node"] == "21.1.0"
        with pytest.raises(TypeError):
            release.components["node"] = "0.0.0"

    @responses.activate
    def test_list_versions_newest_first(self, resolver):
        serve(make_manifest())
        assert resolver.list_versions() == ["0.82.0", "0.81.0", "0.14.7"]

    @responses.activate
    def test_malformed_entries_skipped(self, resolver):
        versions = make_manifest()["versions"] + [{"files": ["linux-x64"]}, "garbage"]
        serve(make_manifest(versions=versions))

        assert resolver.list_versions() == ["0.82.0", "0.81.0", "0.14.7"]


@pytest.mark.integration
class TestPublishedManifest:
    """Resolve against the real nwjs.io manifest."""

    def test_resolve_stable(self, tmp_path):
        resolver = ManifestResolver(MANIFEST_URL, tmp_path)

        version, release = resolver.resolve("stable")

        assert version
        assert release.normal
