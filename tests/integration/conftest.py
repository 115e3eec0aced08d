"""Integration test fixtures for multi-component testing.

This conftest provides fixtures specifically for integration tests that:
- Watch real directories through inotify
- Build the fixture Go modules with the real toolchain
- Run a watch session and a prune walker back to back

The root conftest provides:
- project_root, test_data_dir
- module_cache, build_cache roots under tmp_path

This file provides:
- a Go environment pointing every cache at tmp_path
- a helper that runs go commands
- a helper that watches a cache around an action and then prunes it
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Awaitable, Callable, Dict

import pytest

from tests.infrastructure.helpers import wait_until

SETTLE_SECONDS = 0.5


# =============================================================================
# Toolchain Fixtures
# =============================================================================

@pytest.fixture
def go_environment(tmp_path: Path, build_cache, module_cache) -> Dict[str, str]:
    """Environment for go commands that only touches tmp_path caches."""
    env = dict(os.environ)
    env.update({
        "GOCACHE": build_cache.path,
        "GOMODCACHE": module_cache.path,
        "GOFLAGS": "-modcacherw",
        "GOTOOLCHAIN": "local",
        "GOWORK": "off",
        "GOPATH": str(tmp_path / "gopath"),
    })
    return env


@pytest.fixture
def run_go(go_environment) -> Callable[..., Awaitable[str]]:
    """Run a go command and return its combined output.

    Example:
        out = await run_go(first_module, "build", "-v", "-o", str(tmp_path))
    """
    async def runner(workdir: Path, *args: str) -> str:
        process = await asyncio.create_subprocess_exec(
            "go", *args,
            cwd=str(workdir),
            env=go_environment,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        stdout, _ = await process.communicate()
        output = stdout.decode("utf-8", errors="replace")
        if process.returncode != 0:
            pytest.fail(f"go {' '.join(args)} failed with code {process.returncode}:\n{output}")
        return output

    return runner


# =============================================================================
# Watch-then-prune Helpers
# =============================================================================

@pytest.fixture
def watch_then_prune():
    """Watch ``root`` with the inotify backend while ``action`` runs, then prune.

    Returns:
        async callable (root, action) -> PruneTally
    """
    from go_cache_prune.pruning.prune_walker import prune
    from go_cache_prune.pruning.watch_session import WatchSession

    async def runner(root, action: Callable[[], Awaitable[None]]):
        stop = asyncio.Event()
        session = WatchSession(root)
        task = asyncio.create_task(session.run(stop))
        await wait_until(lambda: session.ready.is_set() or task.done())

        await action()
        await asyncio.sleep(SETTLE_SECONDS)

        stop.set()
        usage = await asyncio.wait_for(task, timeout=10.0)
        return await asyncio.to_thread(prune, root, usage)

    return runner
