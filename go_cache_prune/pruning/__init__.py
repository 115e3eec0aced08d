"""Use tracking and differential pruning for the Go caches."""

from .classifier import classify, iter_units, owning_unit
from .models import CacheEvent, CacheKind, CacheRoot, EventMask, PruneTally, UsageSet, WatchDescriptor
from .orchestrator import RunOutcome, RunResult, prune_caches, run_cycle, watch_caches
from .prune_walker import PruneWalker, prune
from .watch_session import WatchSession, watch

__all__ = [
    "CacheEvent",
    "CacheKind",
    "CacheRoot",
    "EventMask",
    "PruneTally",
    "UsageSet",
    "WatchDescriptor",
    "classify",
    "iter_units",
    "owning_unit",
    "PruneWalker",
    "prune",
    "WatchSession",
    "watch",
    "RunOutcome",
    "RunResult",
    "prune_caches",
    "run_cycle",
    "watch_caches",
]
