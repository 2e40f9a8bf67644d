"""
Pytest configuration and shared fixtures for nwbuilder tests.
"""

import logging

import pytest

# Import test fixtures to make them available to all tests
# ruff: noqa: F401
from tests.fixtures.runtimes import manifest_data, archive_factory
from tests.fixtures.projects import nw_app
from nwbuilder.core.platform import clear_platform_cache


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests that require network access",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --integration flag is provided."""
    if not config.getoption("--integration"):
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (requires --integration)",
    )


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_platform_cache():
    """Host detection is cached per process; start each test clean."""
    clear_platform_cache()
    yield
    clear_platform_cache()


@pytest.fixture
def quiet_logging():
    """Restore root logging after tests that reconfigure it."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
