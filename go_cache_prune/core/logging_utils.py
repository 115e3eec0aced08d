"""Component-prefixed loggers under the go_cache_prune namespace."""

from __future__ import annotations

import logging
from typing import Optional, Union

LOGGER_NAMESPACE = "go_cache_prune"
DEFAULT_COMPONENT = "Core"


def _namespaced(name: Optional[str]) -> str:
    if not name:
        return LOGGER_NAMESPACE
    if name.startswith(LOGGER_NAMESPACE):
        return name
    return f"{LOGGER_NAMESPACE}.{name}"


def _component_of(name: str) -> str:
    # "go_cache_prune.core.config" -> "config"
    return name.rsplit(".", 1)[-1] if name != LOGGER_NAMESPACE else DEFAULT_COMPONENT


class StructuredLogger:
    """Prefix every record with ``[Component]``.

    Messages below the logger's effective level are dropped before any
    formatting, so per-event debug lines cost one level check.
    """

    def __init__(self, logger: logging.Logger, component: Optional[str] = None) -> None:
        self.logger = logger
        self.component = component or _component_of(logger.name)

    @property
    def name(self) -> str:
        return self.logger.name

    def _emit(self, level: int, message: str, args: tuple) -> None:
        if not self.logger.isEnabledFor(level):
            return
        text = message
        if args:
            try:
                text = message % args
            except (TypeError, ValueError):
                text = f"{message} | args={' '.join(str(arg) for arg in args)}"
        self.logger.log(level, "[%s] %s", self.component, text)

    def debug(self, message: str, *args) -> None:
        self._emit(logging.DEBUG, message, args)

    def info(self, message: str, *args) -> None:
        self._emit(logging.INFO, message, args)

    def warning(self, message: str, *args) -> None:
        self._emit(logging.WARNING, message, args)

    def error(self, message: str, *args) -> None:
        self._emit(logging.ERROR, message, args)


LoggerLike = Union[StructuredLogger, logging.Logger, None]


def ensure_structured_logger(
    logger: LoggerLike,
    *,
    component: Optional[str] = None,
    fallback_name: Optional[str] = None,
) -> StructuredLogger:
    """Wrap ``logger``, or create a namespaced one when it is None."""
    if isinstance(logger, StructuredLogger):
        return logger
    if isinstance(logger, logging.Logger):
        return StructuredLogger(logger, component=component)
    return get_module_logger(fallback_name)


def get_module_logger(name: Optional[str] = None) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(_namespaced(name)))


__all__ = [
    "LOGGER_NAMESPACE",
    "LoggerLike",
    "StructuredLogger",
    "ensure_structured_logger",
    "get_module_logger",
]
