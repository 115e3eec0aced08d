"""Centralized path constants for go-cache-prune."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional

PID_FILE_NAME = "go-cache-prune.pid"
PID_FILE_ENV = "GO_CACHE_PRUNE_PID_FILE"


def default_pid_file() -> Path:
    return Path(tempfile.gettempdir()) / PID_FILE_NAME


def pid_file_from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    """PID file named by ``GO_CACHE_PRUNE_PID_FILE``, if set and non-empty."""
    env = os.environ if environ is None else environ
    override = env.get(PID_FILE_ENV, "").strip()
    if not override:
        return None
    return Path(override).expanduser()


__all__ = ["PID_FILE_NAME", "PID_FILE_ENV", "default_pid_file", "pid_file_from_env"]
