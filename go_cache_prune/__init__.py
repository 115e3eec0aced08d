"""Prune unused entries from the Go module and build caches."""

from __future__ import annotations

from importlib import metadata

from .app.master import main, run

try:
    __version__ = metadata.version("go-cache-prune")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


__all__ = ["__version__", "main", "run"]
