"""Unit test fixtures for isolated, fast test execution.

This conftest provides fixtures specifically for unit tests that:
- Run in complete isolation (no go binary, no inotify)
- Execute quickly
- Use the in-memory watch backend for all watching

The root conftest provides:
- project_root, test_data_dir
- module_cache, build_cache roots under tmp_path
- fake_backend_factory

This file provides:
- isolated_env (private TMPDIR and PID file location)
- populated cache trees
- a RunContext factory
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from tests.infrastructure.helpers import make_build_entry, make_unit, make_writable


# =============================================================================
# Isolated Environment Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point TMPDIR and the PID file at a private directory.

    Returns:
        The private temporary directory
    """
    private_tmp = tmp_path / "tmp"
    private_tmp.mkdir()
    monkeypatch.setenv("TMPDIR", str(private_tmp))
    monkeypatch.delenv("GO_CACHE_PRUNE_PID_FILE", raising=False)
    monkeypatch.setattr("tempfile.tempdir", None)
    return private_tmp


# =============================================================================
# Cache Tree Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def populated_module_cache(module_cache):
    """Module cache with five units D1..D5 plus download metadata.

    Returns:
        (CacheRoot, list of the five unit paths in order)
    """
    root = Path(module_cache.path)
    units = [
        make_unit(root, "github.com/acme/d1", "v1.0.0"),
        make_unit(root, "github.com/acme/d2", "v0.0.0-20210101000000-abcdef123456"),
        make_unit(root, "golang.org/x/d3", "v2.0.0+incompatible"),
        make_unit(root, "example.com/d4"),
        make_unit(root, "example.com/nested/d5", "v1.2.3-rc.1"),
    ]
    download = root / "cache" / "download" / "github.com" / "acme" / "d1" / "@v"
    download.mkdir(parents=True)
    (download / "v1.0.0.zip").write_text("zip")
    yield module_cache, [str(unit) for unit in units]
    make_writable(root)


@pytest.fixture(scope="function")
def populated_build_cache(build_cache):
    """Build cache with a handful of hash-sharded files.

    Returns:
        (CacheRoot, list of file paths)
    """
    root = Path(build_cache.path)
    files = [
        make_build_entry(root, "0a1b2c3d", "-a"),
        make_build_entry(root, "0a9f8e7d", "-d"),
        make_build_entry(root, "ff00ee11", "-a"),
        make_build_entry(root, "ff00ee11", "-d"),
    ]
    (root / "README").write_text("This directory holds cached build artifacts.\n")
    files.append(root / "README")
    return build_cache, [str(path) for path in files]


# =============================================================================
# Context Factory Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def run_context_factory(fake_backend_factory) -> Callable[..., "RunContext"]:
    """Factory for RunContexts wired to the fake watch backend.

    Example:
        def test_abort(run_context_factory):
            ctx = run_context_factory(dry_run=True)
    """
    from go_cache_prune.core.config import PruneConfig
    from go_cache_prune.core.run_context import RunContext

    def factory(**config_values) -> RunContext:
        config = PruneConfig(**config_values)
        return RunContext(config=config, backend_factory=fake_backend_factory)

    return factory
