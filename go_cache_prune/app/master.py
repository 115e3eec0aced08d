import argparse
import asyncio
import contextlib
import platform
import sys
from importlib import metadata
from typing import Optional

from go_cache_prune.cli.common import (
    add_common_cli_arguments,
    install_exception_handlers,
    install_signal_handlers,
    log_shutdown,
    log_startup,
    remove_signal_handlers,
)
from go_cache_prune.core.config import PruneConfig, load_config, resolve_cache_roots
from go_cache_prune.core.errors import CachePruneError, ConfigError
from go_cache_prune.core.instance_guard import (
    PidFileGuard,
    ensure_not_running,
    signal_running_instance,
)
from go_cache_prune.core.logging_config import configure_logging
from go_cache_prune.core.logging_utils import get_module_logger
from go_cache_prune.core.run_context import RunContext
from go_cache_prune.pruning.orchestrator import RunOutcome, run_cycle, summarize
from go_cache_prune.pruning.watch_session import BackendFactory


logger = get_module_logger(__name__)

PROJECT_NAME = "Go Cache Prune"
DISTRIBUTION = "go-cache-prune"
PROJECT_URL = "https://github.com/capnspacehook/go-cache-prune"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NOTHING_TO_DO = 2

SUPPRESSED_LOGGERS = ("watchdog", "asyncio")

_DESCRIPTION = "Prune unused files in Go module and build caches"
_EPILOG = f"For more information, see {PROJECT_URL}."


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Every flag defaults to ``None`` so that config file values survive
    unless the flag is actually given.
    """
    parser = argparse.ArgumentParser(
        prog=DISTRIBUTION,
        description=_DESCRIPTION,
        epilog=_EPILOG,
    )

    add_common_cli_arguments(parser)

    parser.add_argument(
        "--mod-cache",
        type=str,
        default=None,
        help="path to Go module cache (default: go env GOMODCACHE)",
    )
    parser.add_argument(
        "--build-cache",
        type=str,
        default=None,
        help="path to Go build cache (default: go env GOCACHE)",
    )
    parser.add_argument(
        "--only-mod-cache",
        action="store_true",
        default=None,
        help="only prune the module cache, and not the build cache",
    )
    parser.add_argument(
        "--only-build-cache",
        action="store_true",
        default=None,
        help="only prune the build cache, and not the module cache",
    )
    parser.add_argument(
        "--no-pid-file",
        action="store_true",
        default=None,
        help="don't create a PID file",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="log what would be pruned without deleting anything",
    )
    parser.add_argument(
        "--signal",
        action="store_true",
        default=False,
        help="signal a running go-cache-prune to start pruning",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="print version and build information and exit",
    )

    return parser.parse_args(argv)


def _distribution_version(name: str) -> str:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return "(not installed)"


def format_version_info() -> str:
    lines = [
        f"{PROJECT_NAME} {_distribution_version(DISTRIBUTION)}",
        "",
        f"Python: {platform.python_implementation()} {platform.python_version()}",
        f"Platform: {platform.system()} {platform.machine()}",
        "",
        "Dependencies:",
    ]
    for dependency in ("watchdog", "psutil", "aiofiles"):
        lines.append(f"  {dependency} {_distribution_version(dependency)}")
    return "\n".join(lines)


async def run_signal_mode(config: PruneConfig) -> int:
    """Ask the running instance to prune and wait until it has finished."""
    try:
        pid = await signal_running_instance(config.pid_file)
    except CachePruneError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    logger.info("go-cache-prune process %d finished", pid)
    return EXIT_OK


async def run_prune(
    config: PruneConfig,
    *,
    backend_factory: Optional[BackendFactory] = None,
) -> int:
    """Watch the caches until told to prune, then prune them.

    Exit codes: 0 pruned, 1 fatal error, 2 nothing to do or aborted.
    """
    ctx = RunContext(config=config, backend_factory=backend_factory)
    loop = asyncio.get_running_loop()
    installed = install_signal_handlers(ctx, loop)

    try:
        with contextlib.ExitStack() as stack:
            if config.no_pid_file:
                ensure_not_running(config.pid_file)
            else:
                stack.enter_context(PidFileGuard(config.pid_file))

            roots = await resolve_cache_roots(config)
            log_startup(
                logger,
                PROJECT_NAME,
                _distribution_version(DISTRIBUTION),
                caches=", ".join(f"{root.kind.label} {root.path}" for root in roots),
                pid_file="disabled" if config.no_pid_file else config.pid_file,
                dry_run=config.dry_run,
            )

            result = await run_cycle(ctx, roots)
    except CachePruneError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    finally:
        remove_signal_handlers(loop, installed)

    if result.outcome is not RunOutcome.PRUNED:
        return EXIT_NOTHING_TO_DO

    for line in summarize(result):
        logger.info("%s", line)
    return EXIT_OK


async def main(
    argv: Optional[list[str]] = None,
    *,
    backend_factory: Optional[BackendFactory] = None,
) -> int:
    """
    Main entry point for go-cache-prune.

    Supports two modes:
    - default: watch the caches until SIGHUP, then prune them
    - --signal: send SIGHUP to the running instance and wait for it

    SIGINT or SIGTERM during the watch phase stops the run without
    pruning anything.
    """
    args = parse_args(argv)

    if args.version:
        print(format_version_info())
        return EXIT_OK

    try:
        config = await load_config(args)
    except ConfigError as exc:
        configure_logging("info", force=True, target="stderr")
        logger.error("%s", exc)
        return EXIT_FAILURE

    try:
        configure_logging(
            config.log_level,
            force=True,
            target=config.log_file,
            suppressed_loggers=SUPPRESSED_LOGGERS,
        )
    except OSError as exc:
        print(f"error creating logger: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    install_exception_handlers(logger.logger, asyncio.get_running_loop())

    if args.signal:
        return await run_signal_mode(config)

    exit_code = await run_prune(config, backend_factory=backend_factory)
    log_shutdown(logger, PROJECT_NAME, exit_code)
    return exit_code


def run(argv: Optional[list[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
