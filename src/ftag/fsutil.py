"""Filesystem primitives consumed by the tracking and fix engines.

Both engines take these as injectable callables so tests can supply a fake
filesystem.
"""

import os
from typing import Callable

StatFn = Callable[[str], tuple[int, bool]]
CanonicalizeFn = Callable[[str], str]


def stat_inode(path: str) -> tuple[int, bool]:
    """Return (inode, exists) for a path, following symlinks."""
    try:
        return os.stat(path).st_ino, True
    except (FileNotFoundError, NotADirectoryError):
        return 0, False


def canonicalize(path: str) -> str:
    """Absolute path with symlinks resolved; missing trailing parts are kept."""
    return os.path.realpath(path)


def normalize(path: str) -> str:
    """Absolute, lexically normalized path. Does not touch the filesystem."""
    if not path:
        return ""
    return os.path.normpath(os.path.abspath(path))


def is_file_or_directory(path: str) -> bool:
    return os.path.isfile(path) or os.path.isdir(path)
