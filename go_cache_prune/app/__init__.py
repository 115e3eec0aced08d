"""Application entrypoints for go-cache-prune."""

from .master import main, parse_args, run, run_prune, run_signal_mode

__all__ = ["main", "parse_args", "run", "run_prune", "run_signal_mode"]
