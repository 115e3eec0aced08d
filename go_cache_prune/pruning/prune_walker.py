"""
Prune Walker - Delete cache entries that no watch session saw used.

Module cache: whole dependency units are removed, after making their
read-only content writable. Build cache: only files are removed, empty
directories stay behind.

Pruning is best-effort. Entries that vanish under the walk are skipped
silently; any other failure is logged, counted and the walk moves on.
"""

from __future__ import annotations

import os
import shutil
import stat
from typing import Optional

from go_cache_prune.core.logging_utils import LoggerLike, ensure_structured_logger
from go_cache_prune.pruning.classifier import download_cache_dir, iter_units
from go_cache_prune.pruning.models import CacheRoot, PruneTally, UsageSet

_DIR_BITS = stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR
_FILE_BITS = stat.S_IRUSR | stat.S_IWUSR


class PruneWalker:
    """Walk one cache root once and delete everything absent from ``usage``."""

    def __init__(
        self,
        root: CacheRoot,
        usage: UsageSet,
        *,
        dry_run: bool = False,
        logger: LoggerLike = None,
    ) -> None:
        if usage.root.kind is not root.kind:
            raise ValueError(
                f"usage set for {usage.root.kind.label} cannot prune the {root.kind.label}"
            )
        self.root = root
        self.usage = usage
        self.dry_run = dry_run
        self._logger = ensure_structured_logger(logger, fallback_name="PruneWalker")
        self.tally = PruneTally(kind=root.kind, dry_run=dry_run)

    def run(self) -> PruneTally:
        """Blocking; run it in a worker thread from async code."""
        self._logger.info("pruning %s %s", self.root.kind.label, self.root.path)
        if self.root.is_module_cache:
            self._prune_module_cache()
        else:
            self._prune_build_cache()
        self._logger.info("%s", self.tally.describe())
        return self.tally

    # ------------------------------------------------------------------
    # module cache

    def _prune_module_cache(self) -> None:
        for unit in iter_units(
            self.root.path,
            onerror=self._on_walk_error,
            exclude={download_cache_dir(self.root.path)},
        ):
            if unit in self.usage:
                continue
            if self.dry_run:
                self._logger.debug("would delete directory %s from module cache", unit)
                self.tally.deleted += 1
                continue
            if self._delete_unit(unit):
                self._logger.debug("deleted directory %s from module cache", unit)
                self.tally.deleted += 1

    def _delete_unit(self, unit: str) -> bool:
        self._relax_permissions(unit)
        errors: list[OSError] = []

        def _collect(_func, _path, exc: OSError) -> None:
            if not isinstance(exc, FileNotFoundError):
                errors.append(exc)

        shutil.rmtree(unit, onexc=_collect)
        if errors:
            for exc in errors:
                self._report("deleting directory from module cache", exc)
            return False
        return True

    def _relax_permissions(self, unit: str) -> None:
        """Give the owner write access to everything under ``unit``.

        The toolchain extracts modules read-only, so unlinking their
        files fails until the containing directories are writable.
        """
        self._chmod(unit, _DIR_BITS)
        for dirpath, dirnames, filenames in os.walk(unit, onerror=self._on_walk_error):
            for name in dirnames:
                self._chmod(os.path.join(dirpath, name), _DIR_BITS)
            for name in filenames:
                self._chmod(os.path.join(dirpath, name), _FILE_BITS)

    def _chmod(self, path: str, bits: int) -> None:
        try:
            st = os.lstat(path)
            if stat.S_ISLNK(st.st_mode):
                return
            mode = stat.S_IMODE(st.st_mode)
            if mode & bits != bits:
                os.chmod(path, mode | bits)
        except FileNotFoundError:
            return
        except OSError as exc:
            self._report("relaxing permissions in module cache", exc)

    # ------------------------------------------------------------------
    # build cache

    def _prune_build_cache(self) -> None:
        for dirpath, dirnames, filenames in os.walk(self.root.path, onerror=self._on_walk_error):
            dirnames.sort()
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if path in self.usage:
                    continue
                if self.dry_run:
                    self._logger.debug("would delete file %s from build cache", path)
                    self.tally.deleted += 1
                    continue
                try:
                    os.remove(path)
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    self._report("deleting file from build cache", exc)
                    continue
                self._logger.debug("deleted file %s from build cache", path)
                self.tally.deleted += 1

    # ------------------------------------------------------------------
    # errors

    def _on_walk_error(self, exc: OSError) -> None:
        # A sibling deletion may already have removed this entry.
        if isinstance(exc, FileNotFoundError):
            return
        self._report(f"walking {self.root.path}", exc)

    def _report(self, action: str, exc: OSError) -> None:
        message = f"{action}: {exc}"
        self._logger.warning("%s", message)
        self.tally.record_error(message)


def prune(
    root: CacheRoot,
    usage: UsageSet,
    *,
    dry_run: bool = False,
    logger: Optional[LoggerLike] = None,
) -> PruneTally:
    return PruneWalker(root, usage, dry_run=dry_run, logger=logger).run()


__all__ = ["PruneWalker", "prune"]
