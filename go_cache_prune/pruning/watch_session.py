"""
Watch Session - Observe which cache entries a build touches.

One session owns one backend bound to one cache root. It installs
watches, accumulates a UsageSet from the events it receives, and on
stop releases every watch before handing the frozen set back.
"""

from __future__ import annotations

import asyncio
import os
from typing import Callable, Optional

from go_cache_prune.core.errors import WatchSetupError
from go_cache_prune.core.logging_utils import LoggerLike, ensure_structured_logger
from go_cache_prune.pruning.backends.base import (
    WatchAlreadyExistsError,
    WatchBackend,
    WatchBackendClosedError,
)
from go_cache_prune.pruning.classifier import GO_MOD, download_cache_dir, iter_units, owning_unit
from go_cache_prune.pruning.models import CacheEvent, CacheRoot, EventMask, UsageSet

BackendFactory = Callable[[str], WatchBackend]


def _has_result(task: asyncio.Future) -> bool:
    return task.done() and not task.cancelled() and task.exception() is None


def _default_backend_factory(root: str) -> WatchBackend:
    from go_cache_prune.pruning.backends.watchdog_backend import create_backend

    return create_backend(root)


class WatchSession:
    """Collect the set of cache units or files used while a build runs.

    Usage:
        session = WatchSession(CacheRoot("/home/me/go/pkg/mod", CacheKind.MODULE))
        usage = await session.run(stop_event)
    """

    def __init__(
        self,
        root: CacheRoot,
        *,
        backend_factory: Optional[BackendFactory] = None,
        logger: LoggerLike = None,
    ) -> None:
        self.root = root
        self._backend_factory = backend_factory or _default_backend_factory
        self._logger = ensure_structured_logger(logger, fallback_name="WatchSession")
        self._usage = UsageSet(root)
        self._units: set[str] = set()
        self._containers: set[str] = set()
        self._download_cache = download_cache_dir(root.path)
        self._backend: Optional[WatchBackend] = None
        self._draining = False
        self._watch_count = 0
        # Set once the initial watches are installed.
        self.ready = asyncio.Event()

    @property
    def usage(self) -> UsageSet:
        """Live view of what has been recorded so far."""
        return self._usage

    @property
    def watch_count(self) -> int:
        if self._backend is not None:
            return self._backend.watch_count
        return self._watch_count

    # ------------------------------------------------------------------
    # lifecycle

    async def run(self, stop: asyncio.Event) -> UsageSet:
        """Watch until ``stop`` is set, then return the frozen usage set.

        The backend is closed before this returns on every path, so no
        watch outlives the session.
        """
        label = self.root.kind.label
        self._logger.info("creating watches for %s %s", label, self.root.path)

        if not os.path.isdir(self.root.path):
            raise WatchSetupError(f"walking {self.root.path}: not a directory")

        try:
            backend = self._backend_factory(self.root.path)
        except OSError as exc:
            raise WatchSetupError(f"creating file watcher: {exc}") from exc

        self._backend = backend
        try:
            await asyncio.to_thread(self._install_watches)
            self._logger.info("watching %s with %d watches", label, backend.watch_count)
            self.ready.set()
            await self._collect(stop)
        finally:
            self._watch_count = backend.watch_count
            await backend.close()
            self._backend = None

        self._logger.info("%s: %d used entries recorded", label, len(self._usage))
        return self._usage.freeze()

    async def _collect(self, stop: asyncio.Event) -> None:
        backend = self._backend
        events = backend.events().__aiter__()
        errors = backend.errors().__aiter__()

        stop_task = asyncio.ensure_future(stop.wait())
        event_task = asyncio.ensure_future(events.__anext__())
        error_task = asyncio.ensure_future(errors.__anext__())
        try:
            while True:
                done, _ = await asyncio.wait(
                    {stop_task, event_task, error_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if event_task in done:
                    try:
                        event = event_task.result()
                    except StopAsyncIteration:
                        raise WatchBackendClosedError("file watcher event stream closed") from None
                    await self._handle_event(event)
                    event_task = asyncio.ensure_future(events.__anext__())
                if error_task in done:
                    try:
                        error = error_task.result()
                    except StopAsyncIteration:
                        raise WatchBackendClosedError("file watcher error stream closed") from None
                    self._logger.error("file watcher: %s", error)
                    error_task = asyncio.ensure_future(errors.__anext__())
                if stop_task in done:
                    break
        finally:
            for task in (stop_task, event_task, error_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(stop_task, event_task, error_task, return_exceptions=True)

        # Events delivered before the stop still count.
        self._draining = True
        if _has_result(event_task):
            await self._handle_event(event_task.result())
        if _has_result(error_task):
            self._logger.error("file watcher: %s", error_task.result())
        await backend.close()
        async for event in events:
            await self._handle_event(event)
        async for error in errors:
            self._logger.error("file watcher: %s", error)

    # ------------------------------------------------------------------
    # watch installation

    def _install_watches(self) -> None:
        if self.root.is_module_cache:
            for unit in iter_units(
                self.root.path,
                onerror=self._raise_walk_error,
                on_enter=self._watch_container,
                exclude={self._download_cache},
            ):
                self._units.add(unit)
                self._add_watch(unit)
            return

        pending = [self.root.path]
        while pending:
            directory = pending.pop()
            self._add_watch(directory)
            try:
                with os.scandir(directory) as entries:
                    subdirs = sorted(
                        entry.path for entry in entries if entry.is_dir(follow_symlinks=False)
                    )
            except OSError as exc:
                self._raise_walk_error(exc)
                continue
            pending.extend(reversed(subdirs))

    def _raise_walk_error(self, exc: OSError) -> None:
        if isinstance(exc, FileNotFoundError) and exc.filename != self.root.path:
            self._logger.debug("entry vanished while walking: %s", exc.filename)
            return
        raise WatchSetupError(f"walking {self.root.path}: {exc}") from exc

    def _watch_container(self, directory: str) -> None:
        # Directories above units are watched so new units can be seen.
        self._containers.add(directory)
        self._add_watch(directory)

    def _add_watch(self, path: str) -> bool:
        try:
            self._backend.add_watch(path, EventMask.default())
        except WatchAlreadyExistsError:
            self._logger.debug("watch for %s already exists", path)
            return False
        except FileNotFoundError:
            self._logger.debug("not watching vanished directory %s", path)
            return False
        except OSError as exc:
            raise WatchSetupError(f"adding watch for {path}: {exc}") from exc
        self._logger.debug("added watch for %s", path)
        return True

    # ------------------------------------------------------------------
    # event handling

    async def _handle_event(self, event: CacheEvent) -> None:
        self._logger.debug(
            "got event: path=%s created=%s dir=%s", event.path, event.created, event.is_directory
        )
        if self.root.is_module_cache:
            await self._handle_module_event(event)
        else:
            await self._handle_build_event(event)

    def _in_download_cache(self, path: str) -> bool:
        return path == self._download_cache or path.startswith(self._download_cache + os.sep)

    def _has_manifest(self, directory: str) -> bool:
        if directory in self._containers:
            return False
        return os.path.isfile(os.path.join(directory, GO_MOD))

    async def _handle_module_event(self, event: CacheEvent) -> None:
        if self._in_download_cache(event.path):
            return
        unit = owning_unit(
            self.root.path,
            event.path,
            is_dir=event.is_directory,
            known_units=self._units,
            has_manifest=self._has_manifest,
        )
        if unit is not None:
            self._record_unit(unit)
            return
        if event.created and event.is_directory and not self._draining:
            await self._extend_module_watch(event.path)

    async def _handle_build_event(self, event: CacheEvent) -> None:
        if event.is_directory:
            if event.created and not self._draining:
                await self._extend_build_watch(event.path)
            return
        if self._usage.add(event.path):
            self._logger.debug("marked %s used", event.path)

    def _record_unit(self, unit: str) -> None:
        self._units.add(unit)
        if self._usage.add(unit):
            self._logger.debug("marked unit %s used", unit)

    async def _extend_module_watch(self, directory: str) -> None:
        """Follow a directory created above the unit level.

        Each new directory is watched before it is listed, so a unit
        created meanwhile is either listed or reported. Units found were
        created during the session and are recorded as used.
        """
        units = await asyncio.to_thread(self._walk_new_container, directory)
        for unit in units:
            self._record_unit(unit)

    def _walk_new_container(self, directory: str) -> list[str]:
        return list(iter_units(
            directory,
            onerror=self._log_walk_error,
            on_enter=self._watch_container,
            exclude={self._download_cache},
        ))

    async def _extend_build_watch(self, directory: str) -> None:
        files: list[str] = []
        await asyncio.to_thread(self._walk_new_build_directory, directory, files)
        for path in files:
            if self._usage.add(path):
                self._logger.debug("marked new file %s used", path)

    def _walk_new_build_directory(self, directory: str, files: list[str]) -> None:
        if not self._add_watch(directory):
            return
        try:
            with os.scandir(directory) as entries:
                children = sorted(entries, key=lambda entry: entry.name)
        except FileNotFoundError:
            return
        except OSError as exc:
            self._logger.warning("listing new directory %s: %s", directory, exc)
            return
        for entry in children:
            if entry.is_dir(follow_symlinks=False):
                self._walk_new_build_directory(entry.path, files)
            else:
                files.append(entry.path)

    def _log_walk_error(self, exc: OSError) -> None:
        if not isinstance(exc, FileNotFoundError):
            self._logger.warning("walking new directory: %s", exc)


async def watch(
    stop: asyncio.Event,
    root: CacheRoot,
    *,
    backend_factory: Optional[BackendFactory] = None,
    logger: LoggerLike = None,
) -> UsageSet:
    """Run one watch session for ``root`` until ``stop`` is set."""
    session = WatchSession(root, backend_factory=backend_factory, logger=logger)
    return await session.run(stop)


__all__ = ["WatchSession", "BackendFactory", "watch"]
