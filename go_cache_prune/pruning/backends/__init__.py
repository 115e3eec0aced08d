from .base import QueueStream, WatchAlreadyExistsError, WatchBackend, WatchBackendClosedError

__all__ = [
    "QueueStream",
    "WatchAlreadyExistsError",
    "WatchBackend",
    "WatchBackendClosedError",
]
