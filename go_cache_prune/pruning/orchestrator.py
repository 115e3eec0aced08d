"""
Session Orchestrator - Watch every cache, then prune every cache.

Both phases fan out one task per cache root and join on a barrier
before the next phase starts. Watch sessions have released all their
watches by the time the barrier passes, so the prune walkers never race
watch installation on the same paths.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from go_cache_prune.core.asyncio_utils import gather_with_logging
from go_cache_prune.core.errors import WatchFailedError
from go_cache_prune.core.logging_utils import LoggerLike, ensure_structured_logger
from go_cache_prune.core.run_context import RunContext, RunPhase
from go_cache_prune.pruning.models import CacheKind, CacheRoot, PruneTally, UsageSet
from go_cache_prune.pruning.prune_walker import PruneWalker
from go_cache_prune.pruning.watch_session import WatchSession


class RunOutcome(Enum):
    PRUNED = "pruned"
    NOTHING_TO_DO = "nothing_to_do"
    ABORTED = "aborted"


@dataclass
class RunResult:
    outcome: RunOutcome
    usage: dict[CacheKind, UsageSet] = field(default_factory=dict)
    tallies: dict[CacheKind, PruneTally] = field(default_factory=dict)

    @property
    def deleted(self) -> int:
        return sum(tally.deleted for tally in self.tallies.values())


async def watch_caches(
    ctx: RunContext,
    roots: list[CacheRoot],
    *,
    logger: LoggerLike = None,
) -> dict[CacheKind, UsageSet]:
    """Watch every root until ``ctx.prune_event`` is set.

    When one session fails the others are told to stop, and every
    failure is re-raised together once all backends are closed.
    """
    log = ensure_structured_logger(logger, fallback_name="Orchestrator")
    ctx.enter_phase(RunPhase.WATCHING)

    async def _watch(root: CacheRoot) -> UsageSet:
        session = WatchSession(
            root,
            backend_factory=ctx.backend_factory,
        )
        try:
            return await session.run(ctx.prune_event)
        except Exception:
            # Let the other sessions wind down instead of waiting forever.
            ctx.prune_event.set()
            raise

    results = await gather_with_logging(
        {root.kind: _watch(root) for root in roots},
        "watching caches",
        logger=log,
    )

    failures = {
        kind.label: result for kind, result in results.items() if isinstance(result, BaseException)
    }
    if failures:
        raise WatchFailedError(failures)
    return dict(results)


async def prune_caches(
    ctx: RunContext,
    roots: list[CacheRoot],
    usage: dict[CacheKind, UsageSet],
    *,
    logger: LoggerLike = None,
) -> dict[CacheKind, PruneTally]:
    """Prune every root concurrently. Not cancellable once started."""
    log = ensure_structured_logger(logger, fallback_name="Orchestrator")
    ctx.enter_phase(RunPhase.PRUNING)

    def _prune(root: CacheRoot) -> PruneTally:
        walker = PruneWalker(
            root,
            usage[root.kind],
            dry_run=ctx.config.dry_run,
        )
        return walker.run()

    coros = {root.kind: asyncio.to_thread(_prune, root) for root in roots}
    # Pruning runs to completion even if the caller is cancelled.
    results = await asyncio.shield(gather_with_logging(coros, "pruning caches", logger=log))

    tallies: dict[CacheKind, PruneTally] = {}
    for kind, result in results.items():
        if isinstance(result, BaseException):
            tally = PruneTally(kind=kind, dry_run=ctx.config.dry_run)
            tally.record_error(f"pruning {kind.label}: {result}")
            tallies[kind] = tally
        else:
            tallies[kind] = result
    return tallies


async def run_cycle(
    ctx: RunContext,
    roots: list[CacheRoot],
    *,
    logger: LoggerLike = None,
) -> RunResult:
    """Watch, decide, prune.

    Raises:
        WatchFailedError: a watch session failed; nothing is pruned
    """
    log = ensure_structured_logger(logger, fallback_name="Orchestrator")

    try:
        usage = await watch_caches(ctx, roots, logger=log)
    except WatchFailedError:
        ctx.enter_phase(RunPhase.ABORTED)
        raise

    if ctx.aborted:
        log.info("signal received, shutting down without pruning caches")
        ctx.enter_phase(RunPhase.ABORTED)
        return RunResult(RunOutcome.ABORTED, usage=usage)

    if not any(len(used) for used in usage.values()):
        log.info("no cached files were used, nothing to do")
        ctx.enter_phase(RunPhase.COMPLETE)
        return RunResult(RunOutcome.NOTHING_TO_DO, usage=usage)

    tallies = await prune_caches(ctx, roots, usage, logger=log)
    ctx.enter_phase(RunPhase.COMPLETE)
    return RunResult(RunOutcome.PRUNED, usage=usage, tallies=tallies)


def summarize(result: RunResult) -> list[str]:
    lines = [tally.describe() for tally in result.tallies.values()]
    for tally in result.tallies.values():
        if tally.errors:
            lines.append(f"{tally.kind.label}: {len(tally.errors)} entries could not be pruned")
    return lines


__all__ = [
    "RunOutcome",
    "RunResult",
    "watch_caches",
    "prune_caches",
    "run_cycle",
    "summarize",
]
