from .errors import (
    CachePruneError,
    ConfigError,
    InstanceGuardError,
    ToolchainError,
    WatchFailedError,
    WatchSetupError,
)
from .logging_utils import StructuredLogger, get_module_logger
from .run_context import RunContext, RunPhase

__all__ = [
    'CachePruneError',
    'ConfigError',
    'InstanceGuardError',
    'ToolchainError',
    'WatchFailedError',
    'WatchSetupError',
    'StructuredLogger',
    'get_module_logger',
    'RunContext',
    'RunPhase',
]
