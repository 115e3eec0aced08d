"""Query the Go toolchain for its configured cache locations."""

from __future__ import annotations

import asyncio

from go_cache_prune.core.errors import ToolchainError
from go_cache_prune.core.logging_utils import get_module_logger

logger = get_module_logger(__name__)

GO_BINARY = "go"
GO_ENV_TIMEOUT = 30.0
GOMODCACHE = "GOMODCACHE"
GOCACHE = "GOCACHE"


async def go_env(name: str, *, go: str = GO_BINARY, timeout: float = GO_ENV_TIMEOUT) -> str:
    """Return ``go env NAME`` with the trailing newline removed.

    Raises:
        ToolchainError: the binary is missing, exits non-zero, times out
            or prints nothing.
    """
    cmd = [go, "env", name]
    logger.debug("running %s", " ".join(cmd))
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ToolchainError(f"getting {name}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise ToolchainError(f"getting {name}: go env timed out after {timeout:.0f}s") from None

    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise ToolchainError(
            f"getting {name}: go env exited with code {process.returncode}: {detail[:500]}"
        )

    value = stdout.decode("utf-8", errors="replace").rstrip("\r\n")
    if not value:
        raise ToolchainError(f"getting {name}: go env printed nothing")
    return value


__all__ = ["go_env", "GO_BINARY", "GOMODCACHE", "GOCACHE"]
