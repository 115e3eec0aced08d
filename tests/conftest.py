"""Shared pytest configuration and fixtures for the go-cache-prune test suite."""

import shutil
import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "toolchain: mark test as requiring a Go toolchain on PATH"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "linux: mark test as requiring inotify"
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-toolchain",
        action="store_true",
        default=False,
        help="Run tests that build Go code with the real toolchain",
    )


def pytest_collection_modifyitems(config, items):
    """Skip toolchain tests unless --run-toolchain is given and go is installed."""
    if not (config.getoption("--run-toolchain") and shutil.which("go")):
        reason = "Need --run-toolchain option and a go binary on PATH to run"
        skip_toolchain = pytest.mark.skip(reason=reason)
        for item in items:
            if "toolchain" in item.keywords:
                item.add_marker(skip_toolchain)

    if not sys.platform.startswith("linux"):
        skip_linux = pytest.mark.skip(reason="inotify is only available on Linux")
        for item in items:
            if "linux" in item.keywords:
                item.add_marker(skip_linux)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def test_data_dir() -> Path:
    """Return the test fixtures directory."""
    return PROJECT_ROOT / "tests" / "infrastructure" / "fixtures"


@pytest.fixture
def module_cache(tmp_path):
    """Empty module cache root."""
    from go_cache_prune.pruning.models import CacheKind, CacheRoot

    path = tmp_path / "pkg" / "mod"
    path.mkdir(parents=True)
    return CacheRoot(str(path), CacheKind.MODULE)


@pytest.fixture
def build_cache(tmp_path):
    """Empty build cache root."""
    from go_cache_prune.pruning.models import CacheKind, CacheRoot

    path = tmp_path / "go-build"
    path.mkdir()
    return CacheRoot(str(path), CacheKind.BUILD)


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def fake_backend_factory():
    """Factory producing in-memory watch backends, one per cache root."""
    from tests.infrastructure.mocks.watch_mocks import FakeBackendFactory
    return FakeBackendFactory()
