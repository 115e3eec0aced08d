"""Data model shared by the watch and prune phases."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import Iterable, Iterator


class CacheKind(enum.Enum):
    """Which toolchain cache a root belongs to."""

    MODULE = "module"
    BUILD = "build"

    @property
    def label(self) -> str:
        return "module cache" if self is CacheKind.MODULE else "build cache"


@dataclass(frozen=True, slots=True)
class CacheRoot:
    """An absolute cache directory plus the kind of cache it holds."""

    path: str
    kind: CacheKind

    def __post_init__(self) -> None:
        if not os.path.isabs(self.path):
            raise ValueError(f"cache root must be absolute: {self.path!r}")
        object.__setattr__(self, "path", os.path.normpath(self.path))

    @property
    def is_module_cache(self) -> bool:
        return self.kind is CacheKind.MODULE


class EventMask(enum.Flag):
    ACCESSED = enum.auto()
    CREATED = enum.auto()

    @classmethod
    def default(cls) -> "EventMask":
        return cls.ACCESSED | cls.CREATED


@dataclass(frozen=True, slots=True)
class WatchDescriptor:
    path: str
    mask: EventMask


@dataclass(frozen=True, slots=True)
class CacheEvent:
    """One filesystem notification, already reduced to what the session needs."""

    path: str
    kind: EventMask
    is_directory: bool = False

    @property
    def created(self) -> bool:
        return bool(self.kind & EventMask.CREATED)


class UsageSet:
    """Canonical paths observed as used during one watch session.

    The set grows while the session runs and is frozen when the session
    hands it to the prune phase; adding to a frozen set is a bug.
    """

    __slots__ = ("_root", "_paths", "_frozen")

    def __init__(self, root: CacheRoot, paths: Iterable[str] = ()) -> None:
        self._root = root
        self._paths: set[str] = set()
        self._frozen = False
        for path in paths:
            self.add(path)

    @property
    def root(self) -> CacheRoot:
        return self._root

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add(self, path: str) -> bool:
        """Record ``path``; return True if it was not seen before."""
        if self._frozen:
            raise RuntimeError(f"usage set for {self._root.path} is frozen")
        normalized = os.path.normpath(path)
        if normalized in self._paths:
            return False
        self._paths.add(normalized)
        return True

    def freeze(self) -> "UsageSet":
        self._frozen = True
        return self

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return os.path.normpath(path) in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        state = "frozen" if self._frozen else "open"
        return f"UsageSet({self._root.kind.value}, {len(self._paths)} paths, {state})"


@dataclass(slots=True)
class PruneTally:
    kind: CacheKind
    deleted: int = 0
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False

    def record_error(self, message: str) -> None:
        self.errors.append(message)

    def describe(self) -> str:
        noun = "directories" if self.kind is CacheKind.MODULE else "files"
        verb = "would delete" if self.dry_run else "deleted"
        return f"{verb} {self.deleted} {noun} from {self.kind.label}"


__all__ = [
    "CacheKind",
    "CacheRoot",
    "EventMask",
    "WatchDescriptor",
    "CacheEvent",
    "UsageSet",
    "PruneTally",
]
