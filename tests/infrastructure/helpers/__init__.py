from .cache_trees import (
    make_build_entry,
    make_read_only,
    make_unit,
    make_writable,
    tree_files,
    wait_until,
)

__all__ = [
    "make_build_entry",
    "make_read_only",
    "make_unit",
    "make_writable",
    "tree_files",
    "wait_until",
]
