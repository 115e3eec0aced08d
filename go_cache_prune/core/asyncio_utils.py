"""Asyncio helpers for fanning work out per cache root."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Mapping, Optional, TypeVar

from .logging_utils import LoggerLike, ensure_structured_logger

K = TypeVar("K")


def create_named_task(
    coro: Awaitable[Any],
    *,
    name: str,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> asyncio.Task[Any]:
    if loop is None:
        loop = asyncio.get_running_loop()
    return loop.create_task(coro, name=name)


async def gather_with_logging(
    coros: Mapping[K, Awaitable[Any]],
    operation_name: str,
    *,
    logger: LoggerLike = None,
) -> dict[K, Any]:
    """Run ``coros`` concurrently and wait for every one of them.

    Failures do not cancel the siblings: each key maps to either its
    result or the exception it raised, and every failure is logged.
    Cancellation of the caller still propagates.
    """
    log = ensure_structured_logger(logger, fallback_name="asyncio")
    if not coros:
        log.debug("%s: no tasks to gather", operation_name)
        return {}

    keys = list(coros)
    tasks = [create_named_task(coros[key], name=f"{operation_name}:{key}") for key in keys]
    log.debug("%s: gathering %d tasks", operation_name, len(tasks))
    results = await asyncio.gather(*tasks, return_exceptions=True)

    outcome: dict[K, Any] = {}
    error_count = 0
    for key, result in zip(keys, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            error_count += 1
            log.error("%s: %s failed: %s", operation_name, key, result)
        outcome[key] = result

    if error_count:
        log.warning("%s: completed with %d/%d errors", operation_name, error_count, len(tasks))
    else:
        log.debug("%s: all tasks completed successfully", operation_name)
    return outcome


__all__ = ["create_named_task", "gather_with_logging"]
