"""Exception hierarchy for fatal go-cache-prune failures."""

from __future__ import annotations


class CachePruneError(Exception):
    """Base class for errors that abort a run."""


class ConfigError(CachePruneError):
    """Invalid combination of options or unreadable configuration."""


class ToolchainError(CachePruneError):
    """The Go toolchain could not be queried."""


class InstanceGuardError(CachePruneError):
    """PID file handling or signalling a running instance failed."""


class WatchSetupError(CachePruneError):
    """Creating the watcher or walking the cache before watching failed."""


class WatchFailedError(CachePruneError):
    """One or more watch sessions failed."""

    def __init__(self, failures: dict[str, BaseException]) -> None:
        self.failures = dict(failures)
        details = "; ".join(f"watching {label}: {exc}" for label, exc in self.failures.items())
        super().__init__(details or "watching caches failed")


__all__ = [
    "CachePruneError",
    "ConfigError",
    "ToolchainError",
    "InstanceGuardError",
    "WatchSetupError",
    "WatchFailedError",
]
