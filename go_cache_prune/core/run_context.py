"""
Run Context - Explicit state for one watch-then-prune run.

Built once at startup and passed by reference to the orchestrator, the
watch sessions and the prune walkers. It owns the two cancellation
events that drive the run:

- ``abort_event``: the process lifetime; once set nothing is pruned.
- ``prune_event``: ends the watch phase and starts pruning.

Aborting also ends the watch phase, so sessions only ever wait on
``prune_event``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from go_cache_prune.core.logging_utils import StructuredLogger, get_module_logger

if TYPE_CHECKING:
    from go_cache_prune.core.config import PruneConfig
    from go_cache_prune.pruning.watch_session import BackendFactory


class RunPhase(Enum):
    """Phases of one run."""
    STARTING = "starting"
    WATCHING = "watching"
    PRUNING = "pruning"
    ABORTED = "aborted"
    COMPLETE = "complete"


@dataclass
class RunContext:
    config: "PruneConfig"
    backend_factory: Optional["BackendFactory"] = None
    abort_event: asyncio.Event = field(default_factory=asyncio.Event)
    prune_event: asyncio.Event = field(default_factory=asyncio.Event)
    phase: RunPhase = RunPhase.STARTING
    logger: StructuredLogger = field(default_factory=lambda: get_module_logger("RunContext"))

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()

    def request_prune(self, source: str = "unknown") -> None:
        """End the watch phase; caches are pruned afterwards."""
        if self.prune_event.is_set():
            self.logger.debug("prune already requested (ignoring request from %s)", source)
            return
        self.logger.info("prune requested by %s", source)
        self.prune_event.set()

    def request_abort(self, source: str = "unknown") -> None:
        """Stop the run without pruning."""
        if self.abort_event.is_set():
            self.logger.debug("abort already requested (ignoring request from %s)", source)
            return
        self.logger.info("abort requested by %s", source)
        self.abort_event.set()
        self.prune_event.set()

    def enter_phase(self, phase: RunPhase) -> None:
        if phase is self.phase:
            return
        self.logger.debug("phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase


__all__ = ["RunContext", "RunPhase"]
