"""
Configuration for one go-cache-prune run.

Values are layered, later layers winning:

1. ``PruneConfig`` defaults
2. an optional ``key = value`` config file
3. ``GO_CACHE_PRUNE_PID_FILE`` from the environment
4. command-line flags
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import aiofiles

from go_cache_prune.core.errors import ConfigError
from go_cache_prune.core.logging_utils import get_module_logger
from go_cache_prune.core.paths import default_pid_file, pid_file_from_env
from go_cache_prune.core.toolchain import GO_BINARY, GOCACHE, GOMODCACHE, go_env
from go_cache_prune.pruning.models import CacheKind, CacheRoot

logger = get_module_logger(__name__)

LOG_LEVEL_NAMES = ("critical", "error", "warning", "info", "debug")
_TRUE_VALUES = ("true", "yes", "on", "1")
_FALSE_VALUES = ("false", "no", "off", "0", "")


@dataclass(slots=True)
class PruneConfig:
    mod_cache: Optional[Path] = None
    build_cache: Optional[Path] = None
    only_mod_cache: bool = False
    only_build_cache: bool = False
    log_level: str = "info"
    log_file: str = "stdout"
    pid_file: Path = field(default_factory=default_pid_file)
    no_pid_file: bool = False
    dry_run: bool = False
    go: str = GO_BINARY

    @property
    def prune_module_cache(self) -> bool:
        return not self.only_build_cache

    @property
    def prune_build_cache(self) -> bool:
        return not self.only_mod_cache

    def validate(self) -> None:
        """Reject contradictory cache selections.

        Raises:
            ConfigError: on the first contradiction found
        """
        if self.only_mod_cache and self.only_build_cache:
            raise ConfigError("--only-mod-cache and --only-build-cache are mutually exclusive")
        if self.only_build_cache and self.mod_cache is not None:
            raise ConfigError("--mod-cache must be unset when --only-build-cache is set")
        if self.only_mod_cache and self.build_cache is not None:
            raise ConfigError("--build-cache must be unset when --only-mod-cache is set")
        if self.log_level not in LOG_LEVEL_NAMES:
            raise ConfigError(
                f"unknown log level {self.log_level!r} (expected one of {', '.join(LOG_LEVEL_NAMES)})"
            )

    def update_from_mapping(self, values: Mapping[str, str], *, source: str = "config") -> None:
        """Apply string values read from a config file."""
        known = {f.name: f for f in fields(self)}
        for key, raw in values.items():
            if key not in known:
                logger.warning("%s: ignoring unknown key %r", source, key)
                continue
            value = _parse_value(key, raw, _field_kind(self, key), source)
            if value is None and key == "pid_file":
                continue
            setattr(self, key, value)

    def apply_args(self, args: Any) -> None:
        """Apply flags that were given on the command line.

        Flags left at ``None`` keep the value from earlier layers.
        """
        for key in ("mod_cache", "build_cache", "log_file", "log_level"):
            value = getattr(args, key, None)
            if value is not None:
                setattr(self, key, Path(value) if key.endswith("_cache") else str(value))
        for key in ("only_mod_cache", "only_build_cache", "no_pid_file", "dry_run"):
            if getattr(args, key, None):
                setattr(self, key, True)
        if getattr(args, "debug", False):
            self.log_level = "debug"

    def cache_roots(self) -> list[CacheRoot]:
        """Return the enabled cache roots; paths must already be resolved."""
        roots: list[CacheRoot] = []
        if self.prune_module_cache:
            if self.mod_cache is None:
                raise ConfigError("module cache path has not been resolved")
            roots.append(CacheRoot(str(self.mod_cache), CacheKind.MODULE))
        if self.prune_build_cache:
            if self.build_cache is None:
                raise ConfigError("build cache path has not been resolved")
            roots.append(CacheRoot(str(self.build_cache), CacheKind.BUILD))
        return roots

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _field_kind(config: PruneConfig, key: str) -> type:
    current = getattr(config, key)
    if isinstance(current, bool):
        return bool
    if key in ("mod_cache", "build_cache", "pid_file"):
        return Path
    return str


def _parse_value(key: str, value: str, target_type: type, source: str) -> Any:
    if target_type is bool:
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(f"{source}: {key} must be a boolean, got {value!r}")
    if target_type is Path:
        text = value.strip()
        return Path(text).expanduser() if text else None
    return value.strip()


def parse_config_lines(lines: Iterable[str]) -> dict[str, str]:
    """Parse ``key = value`` lines; ``#`` starts a comment, quotes are stripped."""
    config: dict[str, str] = {}

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()

        if (value.startswith('"') and value.endswith('"') and len(value) >= 2) or (
            value.startswith("'") and value.endswith("'") and len(value) >= 2
        ):
            value = value[1:-1]
        elif "#" in value:
            value = value.split("#", 1)[0].strip()

        config[key] = value

    return config


async def read_config_async(config_path: Path) -> dict[str, str]:
    """Read and parse a config file without blocking the event loop.

    Raises:
        ConfigError: the file does not exist or cannot be read
    """
    if not await asyncio.to_thread(config_path.is_file):
        raise ConfigError(f"config file {config_path} does not exist")
    try:
        lines: list[str] = []
        async with aiofiles.open(config_path, "r", encoding="utf-8") as f:
            async for line in f:
                lines.append(line)
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"reading config file {config_path}: {exc}") from exc
    return parse_config_lines(lines)


async def load_config(
    args: Any = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> PruneConfig:
    """Build a validated ``PruneConfig`` from every configuration layer."""
    config = PruneConfig()

    config_path = getattr(args, "config", None)
    if config_path is not None:
        values = await read_config_async(Path(config_path))
        config.update_from_mapping(values, source=str(config_path))
        logger.debug("loaded %d settings from %s", len(values), config_path)

    env_pid_file = pid_file_from_env(environ)
    if env_pid_file is not None:
        config.pid_file = env_pid_file

    if args is not None:
        config.apply_args(args)

    config.validate()
    return config


async def resolve_cache_roots(config: PruneConfig) -> list[CacheRoot]:
    """Fill in unset cache paths from ``go env`` and return the enabled roots."""
    if config.prune_module_cache and config.mod_cache is None:
        config.mod_cache = Path(await go_env(GOMODCACHE, go=config.go))
    if config.prune_build_cache and config.build_cache is None:
        config.build_cache = Path(await go_env(GOCACHE, go=config.go))

    if config.mod_cache is not None:
        config.mod_cache = Path(os.path.abspath(config.mod_cache))
    if config.build_cache is not None:
        config.build_cache = Path(os.path.abspath(config.build_cache))

    roots = config.cache_roots()
    for root in roots:
        logger.debug("%s: %s", root.kind.label, root.path)
    return roots


__all__ = [
    "PruneConfig",
    "LOG_LEVEL_NAMES",
    "parse_config_lines",
    "read_config_async",
    "load_config",
    "resolve_cache_roots",
]
