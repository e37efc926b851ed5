"""Platform compatibility and path helpers for environment discovery."""

from __future__ import annotations

import functools
import logging
import os
import sys
import tempfile

IS_WIN = sys.platform == "win32"
IS_MAC = sys.platform == "darwin"

LOGGER = logging.getLogger(__name__)


@functools.lru_cache(maxsize=1)
def fs_is_case_sensitive() -> bool:
    with tempfile.NamedTemporaryFile(prefix="TmP") as tmp_file:
        result = not os.path.exists(tmp_file.name.lower())
    LOGGER.debug("filesystem is %scase-sensitive", "" if result else "not ")
    return result


def fs_path_id(path: str) -> str:
    return path.casefold() if not fs_is_case_sensitive() else path


def resolve_possible_symlink(path: str) -> str:
    """Return the canonical form of an interpreter path.

    Symlinks are intentionally left untouched: a linked interpreter shows up as its own entry.
    """
    return path


def normalize_path(path: str) -> str:
    return os.path.normpath(resolve_possible_symlink(path))


def is_parent_path(path: str, parent: str) -> bool:
    """:returns: ``True`` if *path* is *parent* or lives somewhere below it"""
    if not parent:
        return False
    child_id = fs_path_id(os.path.normpath(path))
    parent_id = fs_path_id(os.path.normpath(parent))
    return child_id == parent_id or child_id.startswith(parent_id.rstrip(os.sep) + os.sep)


def paths_same(left: str, right: str) -> bool:
    return fs_path_id(os.path.normpath(left)) == fs_path_id(os.path.normpath(right))


__all__ = [
    "IS_MAC",
    "IS_WIN",
    "fs_is_case_sensitive",
    "fs_path_id",
    "is_parent_path",
    "normalize_path",
    "paths_same",
    "resolve_possible_symlink",
]
