"""Test fixtures for nwbuilder tests.

- runtimes: version manifests, fake NW.js runtime archives, Options helpers
- projects: NW.js application directories with a package.json

Import fixtures in your tests using:
    from tests.fixtures.runtimes import make_manifest, build_runtime_archive
    from tests.fixtures.projects import nw_app
"""

__all__ = [
    "runtimes",
    "projects",
]
