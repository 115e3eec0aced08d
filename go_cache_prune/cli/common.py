from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from go_cache_prune.core.run_context import RunContext


LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

ABORT_SIGNALS = (signal.SIGINT, signal.SIGTERM)
PRUNE_SIGNALS = (signal.SIGHUP,)


def add_common_cli_arguments(parser: argparse.ArgumentParser, *, include_config: bool = True) -> None:
    """Logging and config-file flags shared by every entry point.

    Defaults are ``None`` so unset flags never override the config file.
    """
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="enable debug logging",
    )

    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS.keys()),
        default=None,
        help="Logging verbosity (default: info)",
    )

    parser.add_argument(
        "-l",
        "--log-file",
        dest="log_file",
        type=str,
        default=None,
        help='path to log to, or "stdout"/"stderr" (default: stdout)',
    )

    if include_config:
        parser.add_argument(
            "--config",
            type=Path,
            default=None,
            help="optional key = value configuration file; command-line flags win",
        )


def install_exception_handlers(
    logger: logging.Logger,
    loop: Optional[asyncio.AbstractEventLoop] = None
) -> None:
    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = handle_exception

    if loop is not None:
        def handle_asyncio_exception(loop, context):
            exception = context.get('exception')
            message = context.get('message', 'Unhandled asyncio exception')
            if exception:
                logger.error("Asyncio exception: %s", message, exc_info=exception)
            else:
                logger.error("Asyncio error: %s, context: %s", message, context)

        loop.set_exception_handler(handle_asyncio_exception)


def install_signal_handlers(ctx: RunContext, loop: asyncio.AbstractEventLoop) -> list[int]:
    """Route SIGINT/SIGTERM to an abort and SIGHUP to a prune request.

    Returns the signals that were installed so they can be removed again.
    """
    installed: list[int] = []

    for sig in ABORT_SIGNALS:
        with contextlib.suppress(NotImplementedError, ValueError):
            loop.add_signal_handler(sig, ctx.request_abort, signal.Signals(sig).name)
            installed.append(sig)

    for sig in PRUNE_SIGNALS:
        with contextlib.suppress(NotImplementedError, ValueError):
            loop.add_signal_handler(sig, ctx.request_prune, signal.Signals(sig).name)
            installed.append(sig)

    return installed


def remove_signal_handlers(loop: asyncio.AbstractEventLoop, signals: list[int]) -> None:
    for sig in signals:
        with contextlib.suppress(NotImplementedError, ValueError):
            loop.remove_signal_handler(sig)


def log_startup(logger: logging.Logger, name: str, version: str, **extra_info) -> None:
    logger.info("=" * 60)
    logger.info("starting %s at version %s", name, version)
    for key, value in extra_info.items():
        display_key = key.replace('_', ' ')
        logger.info("%s: %s", display_key, value)
    logger.info("=" * 60)


def log_shutdown(logger: logging.Logger, name: str, exit_code: int) -> None:
    logger.info("=" * 60)
    logger.info("%s stopped (exit code %d)", name, exit_code)
    logger.info("=" * 60)
