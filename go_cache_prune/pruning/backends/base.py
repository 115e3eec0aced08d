"""
Watch Backend

Abstract capability interface for filesystem notification backends.
The watch session only ever talks to this interface, so the strategy
used to install watches and the OS mechanism underneath can change
without touching classification or accumulation.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Generic, TypeVar

from go_cache_prune.core.errors import CachePruneError
from go_cache_prune.pruning.models import CacheEvent, EventMask, WatchDescriptor

T = TypeVar("T")

_END = object()


class WatchAlreadyExistsError(CachePruneError):
    """A watch for this path is already registered."""

    def __init__(self, path: str) -> None:
        super().__init__(f"watch already exists for {path}")
        self.path = path


class WatchBackendClosedError(CachePruneError):
    """The backend stopped delivering events or errors."""


class QueueStream(Generic[T]):
    """Unbounded async stream fed from the loop thread.

    Cancelling a pending ``__anext__`` leaves queued items in place, so a
    consumer may race the stream against other waits without losing data.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._ended = False
        self._end_queued = False

    def put(self, item: T) -> None:
        if self._end_queued:
            return
        self._queue.put_nowait(item)

    def end(self) -> None:
        if self._end_queued:
            return
        self._end_queued = True
        self._queue.put_nowait(_END)

    @property
    def ending(self) -> bool:
        return self._end_queued

    def __aiter__(self) -> "QueueStream[T]":
        return self

    async def __anext__(self) -> T:
        if self._ended:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._ended = True
            raise StopAsyncIteration
        return item


class WatchBackend(ABC):
    """
    Abstract base class for filesystem watch backends.

    Implementations must deliver every event they receive: ``events()``
    may buffer without bound but never drops.
    """

    def __init__(self) -> None:
        self._descriptors: dict[str, WatchDescriptor] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def watch_count(self) -> int:
        return len(self._descriptors)

    @property
    def descriptors(self) -> list[WatchDescriptor]:
        return list(self._descriptors.values())

    def add_watch(self, path: str, mask: EventMask) -> WatchDescriptor:
        """
        Register interest in events for ``path``.

        Raises:
            WatchAlreadyExistsError: if ``path`` is already watched
            WatchBackendClosedError: if the backend has been closed
        """
        if self._closed:
            raise WatchBackendClosedError("cannot add a watch to a closed backend")
        if path in self._descriptors:
            raise WatchAlreadyExistsError(path)
        descriptor = WatchDescriptor(path=path, mask=mask)
        self._install(descriptor)
        self._descriptors[path] = descriptor
        return descriptor

    @abstractmethod
    def _install(self, descriptor: WatchDescriptor) -> None:
        """Install the OS-level watch for ``descriptor``."""
        ...

    @abstractmethod
    def events(self) -> AsyncIterator[CacheEvent]:
        """
        Lazily yield events until the backend is closed.

        The iterator ending while the backend is still open means the
        backend died.
        """
        ...

    @abstractmethod
    def errors(self) -> AsyncIterator[Exception]:
        """Lazily yield backend errors that are not tied to one path."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release every watch and the OS resources behind them."""
        ...

    async def __aenter__(self) -> "WatchBackend":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


__all__ = [
    "QueueStream",
    "WatchBackend",
    "WatchAlreadyExistsError",
    "WatchBackendClosedError",
]
