"""inotify watch backend built on watchdog's inotify binding.

All watches share one inotify instance, so a module cache with thousands
of dependency versions costs one file descriptor and one reader thread.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import os
import threading
from typing import AsyncIterator, Optional

from watchdog.observers.inotify_c import (
    DEFAULT_EVENT_BUFFER_SIZE,
    Inotify,
    InotifyConstants,
    InotifyEvent,
)

from go_cache_prune.core.logging_utils import LoggerLike, ensure_structured_logger
from go_cache_prune.pruning.backends.base import QueueStream, WatchBackend
from go_cache_prune.pruning.models import CacheEvent, EventMask, WatchDescriptor

ACCESS_MASK = (
    InotifyConstants.IN_ACCESS
    | InotifyConstants.IN_OPEN
    | InotifyConstants.IN_CLOSE_NOWRITE
)
CREATE_MASK = InotifyConstants.IN_CREATE | InotifyConstants.IN_MOVED_TO
INOTIFY_MASK = ACCESS_MASK | CREATE_MASK | InotifyConstants.IN_Q_OVERFLOW

CLOSE_JOIN_TIMEOUT = 5.0


class InotifyQueueOverflow(OSError):
    """The kernel dropped events because its queue was full."""


class OverflowReportingInotify(Inotify):
    """Inotify whose reads keep the kernel's queue overflow record.

    ``Inotify.read_events`` skips every record without a watch
    descriptor, and ``IN_Q_OVERFLOW`` is only ever reported that way.
    Watches here are never recursive, so move tracking is not needed.
    """

    def read_events(self, *, event_buffer_size: int = DEFAULT_EVENT_BUFFER_SIZE) -> list[InotifyEvent]:
        event_buffer = self._read_buffer(event_buffer_size)
        events = []
        with self._lock:
            for wd, mask, cookie, name in self._parse_event_buffer(event_buffer):
                if wd == -1:
                    events.append(InotifyEvent(wd, mask, cookie, name, b""))
                    continue
                wd_path = self._path_for_wd.get(wd)
                if wd_path is None:
                    continue
                src_path = os.path.join(wd_path, name) if name else wd_path
                event = InotifyEvent(wd, mask, cookie, name, src_path)
                if event.is_ignored:
                    del self._path_for_wd[wd]
                    if self._wd_for_path.get(wd_path) == wd:
                        del self._wd_for_path[wd_path]
                events.append(event)
        return events

    def _read_buffer(self, size: int) -> bytes:
        # Same handshake with close() as Inotify.read_events.
        while True:
            try:
                with self._lock:
                    if self._closed:
                        return b""
                    self._is_reading = True

                buffer = b""
                if self._check_inotify_fd():
                    buffer = os.read(self._inotify_fd, size)

                with self._lock:
                    self._is_reading = False
                    if self._closed:
                        self._close_resources()
                        return b""
                return buffer
            except OSError as exc:
                if exc.errno == errno.EINTR:
                    continue
                if exc.errno == errno.EBADF:
                    return b""
                raise


def translate_mask(raw_mask: int) -> EventMask:
    kind = EventMask(0)
    if raw_mask & ACCESS_MASK:
        kind |= EventMask.ACCESSED
    if raw_mask & CREATE_MASK:
        kind |= EventMask.CREATED
    return kind


class WatchdogBackend(WatchBackend):
    """Watch backend reading one inotify instance from a daemon thread.

    The reader thread hands every event to the event loop with
    ``call_soon_threadsafe`` into an unbounded stream; nothing is dropped
    between the kernel queue and the watch session.
    """

    def __init__(
        self,
        root: str,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        logger: LoggerLike = None,
    ) -> None:
        super().__init__()
        self._logger = ensure_structured_logger(logger, fallback_name="WatchdogBackend")
        self._loop = loop or asyncio.get_running_loop()
        self._events: QueueStream[CacheEvent] = QueueStream()
        self._errors: QueueStream[Exception] = QueueStream()
        self._closing = False

        # Inotify always watches the path it is created with.
        self._inotify = OverflowReportingInotify(os.fsencode(root), recursive=False, event_mask=INOTIFY_MASK)
        self._descriptors[root] = WatchDescriptor(path=root, mask=EventMask.default())

        self._reader = threading.Thread(
            target=self._reader_loop,
            name=f"inotify-reader:{os.path.basename(root) or root}",
            daemon=True,
        )
        self._reader.start()

    def _install(self, descriptor: WatchDescriptor) -> None:
        self._inotify.add_watch(os.fsencode(descriptor.path))

    def events(self) -> AsyncIterator[CacheEvent]:
        return self._events

    def errors(self) -> AsyncIterator[Exception]:
        return self._errors

    # ------------------------------------------------------------------
    # reader thread

    def _reader_loop(self) -> None:
        try:
            while not self._closing:
                raw_events = self._inotify.read_events()
                for raw in raw_events:
                    event = self._translate(raw)
                    if event is not None:
                        self._offer(self._events.put, event)
        except OSError as exc:
            if not self._closing:
                self._logger.error("inotify read failed: %s", exc)
                self._offer(self._errors.put, exc)
        finally:
            self._offer(self._events.end)
            self._offer(self._errors.end)

    def _translate(self, raw) -> Optional[CacheEvent]:
        if raw.mask & InotifyConstants.IN_Q_OVERFLOW:
            self._offer(self._errors.put, InotifyQueueOverflow("inotify event queue overflowed"))
            return None

        kind = translate_mask(raw.mask)
        if not kind:
            return None

        path = os.fsdecode(raw.src_path)
        descriptor = self._descriptors.get(os.path.dirname(path)) or self._descriptors.get(path)
        if descriptor is not None:
            kind &= descriptor.mask
            if not kind:
                return None
        return CacheEvent(path=path, kind=kind, is_directory=raw.is_directory)

    def _offer(self, callback, *args) -> None:
        if self._loop.is_closed():
            return
        with contextlib.suppress(RuntimeError):
            self._loop.call_soon_threadsafe(callback, *args)

    # ------------------------------------------------------------------
    # shutdown

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closing = True
        self._logger.debug("closing inotify instance with %d watches", self.watch_count)
        await asyncio.to_thread(self._inotify.close)
        await asyncio.to_thread(self._reader.join, CLOSE_JOIN_TIMEOUT)
        if self._reader.is_alive():
            self._logger.warning(
                "inotify reader thread still running %.1fs after close",
                CLOSE_JOIN_TIMEOUT,
            )
            self._events.end()
            self._errors.end()
        self._descriptors.clear()


def create_backend(root: str, *, logger: LoggerLike = None) -> WatchBackend:
    return WatchdogBackend(root, logger=logger)


__all__ = [
    "WatchdogBackend",
    "InotifyQueueOverflow",
    "OverflowReportingInotify",
    "create_backend",
    "translate_mask",
    "ACCESS_MASK",
    "CREATE_MASK",
]
