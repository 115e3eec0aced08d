"""Map module cache paths onto dependency units.

A dependency unit is one version of one module as extracted by the Go
toolchain. Two on-disk layouts identify a unit:

- a directory named ``module@version`` whose version token is a semantic
  version, a pseudo-version, or ends in ``+incompatible``;
- a directory holding a ``go.mod`` file, for trees extracted without a
  version suffix at the top.

Units are opaque: nothing below a unit root is watched or deleted on its
own.
"""

from __future__ import annotations

import os
import re
from typing import Callable, Collection, Iterator, NamedTuple, Optional

GO_MOD = "go.mod"
INCOMPATIBLE_SUFFIX = "+incompatible"
DOWNLOAD_CACHE = "cache"

_NUM = r"(?:0|[1-9][0-9]*)"
_PRERELEASE_IDENT = r"(?:0|[1-9][0-9]*|[0-9]*[A-Za-z-][0-9A-Za-z-]*)"
_BUILD_IDENT = r"[0-9A-Za-z-]+"

# vMAJOR[.MINOR[.PATCH[-prerelease][+build]]]
SEMVER_RE = re.compile(
    rf"v{_NUM}"
    rf"(?:\.{_NUM}"
    rf"(?:\.{_NUM}"
    rf"(?:-{_PRERELEASE_IDENT}(?:\.{_PRERELEASE_IDENT})*)?"
    rf"(?:\+{_BUILD_IDENT}(?:\.{_BUILD_IDENT})*)?"
    r")?)?"
)

PSEUDO_VERSION_RE = re.compile(
    r"v[0-9]+\.(?:0\.0-|\d+\.\d+-(?:[^+]*\.)?0\.)\d{14}-[A-Za-z0-9]+"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
)


class Classification(NamedTuple):
    unit_path: Optional[str]
    is_unit: bool


NOT_A_UNIT = Classification(None, False)


def is_semver(version: str) -> bool:
    return SEMVER_RE.fullmatch(version) is not None


def is_pseudo_version(version: str) -> bool:
    return (
        version.count("-") >= 2
        and is_semver(version)
        and PSEUDO_VERSION_RE.fullmatch(version) is not None
    )


def is_unit_version(version: str) -> bool:
    return (
        version.endswith(INCOMPATIBLE_SUFFIX)
        or is_semver(version)
        or is_pseudo_version(version)
    )


def split_versioned_name(name: str) -> Optional[tuple[str, str]]:
    """Split ``module@version``; None unless there is exactly one ``@``."""
    if name.count("@") != 1:
        return None
    module, version = name.split("@", 1)
    if not module or not version:
        return None
    return module, version


def is_versioned_unit_name(name: str) -> bool:
    parts = split_versioned_name(name)
    return parts is not None and is_unit_version(parts[1])


def classify(
    path: str,
    is_dir: bool,
    name: str,
    has_go_mod_sibling: bool = False,
) -> Classification:
    """Decide whether ``path`` identifies a dependency unit.

    ``has_go_mod_sibling`` tells the classifier that the entry's parent
    directory holds a ``go.mod``; the parent is then the unit.
    """
    if (not is_dir and name == GO_MOD) or has_go_mod_sibling:
        return Classification(os.path.dirname(path), True)
    if is_dir and is_versioned_unit_name(name):
        return Classification(path, True)
    return NOT_A_UNIT


def _has_manifest(directory: str) -> bool:
    return os.path.isfile(os.path.join(directory, GO_MOD))


def owning_unit(
    root: str,
    path: str,
    *,
    is_dir: bool = False,
    known_units: Collection[str] = (),
    has_manifest: Callable[[str], bool] = _has_manifest,
) -> Optional[str]:
    """Return the unit that ``path`` belongs to, or None.

    Ancestors are tested from the cache root downwards so the outermost
    unit wins; the root itself is never a unit.
    """
    rel = os.path.relpath(path, root)
    if rel == os.curdir or rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return None

    parts = rel.split(os.sep)
    current = root
    for index, part in enumerate(parts):
        current = os.path.join(current, part)
        leaf = index == len(parts) - 1
        if leaf and not is_dir:
            if part == GO_MOD:
                return os.path.dirname(current)
            return None
        if current in known_units:
            return current
        if is_versioned_unit_name(part) or has_manifest(current):
            return current
    return None


def download_cache_dir(root: str) -> str:
    """``<root>/cache``: download archives, VCS mirrors and sumdb tiles."""
    return os.path.join(root, DOWNLOAD_CACHE)


def iter_units(
    root: str,
    *,
    onerror: Optional[Callable[[OSError], None]] = None,
    on_enter: Optional[Callable[[str], None]] = None,
    exclude: Collection[str] = (),
) -> Iterator[str]:
    """Walk ``root`` top-down and yield every unit root once.

    The walk never descends into a unit, so callers may delete a yielded
    unit before resuming iteration. ``on_enter`` is called with every
    directory the walk enters that is not itself a unit, root included,
    before that directory is listed. Directories in ``exclude`` are
    neither entered nor yielded.
    """
    pending = [root]
    while pending:
        directory = pending.pop()
        if on_enter is not None:
            on_enter(directory)
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as exc:
            if onerror is not None:
                onerror(exc)
            continue

        descend = []
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False) or entry.path in exclude:
                continue
            if _has_manifest(entry.path):
                yield entry.path
                continue
            unit, is_unit = classify(entry.path, True, entry.name)
            if is_unit:
                yield unit
            else:
                descend.append(entry.path)
        pending.extend(reversed(descend))


__all__ = [
    "GO_MOD",
    "INCOMPATIBLE_SUFFIX",
    "DOWNLOAD_CACHE",
    "Classification",
    "NOT_A_UNIT",
    "classify",
    "is_semver",
    "is_pseudo_version",
    "is_unit_version",
    "is_versioned_unit_name",
    "split_versioned_name",
    "owning_unit",
    "download_cache_dir",
    "iter_units",
]
