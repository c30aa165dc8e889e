"""Admitting filesystem entries into the index and attaching them to tags.

The single-entry operations here back the add, rm, update, tag add and
tag rm commands. walk() discovers entries under a directory and feeds each
one to a handler, usually Tracker.on_discovered.
"""

import logging
import os
import shlex
from dataclasses import dataclass, field
from typing import Callable, Iterator, Literal

from .database import Database
from .errors import InodeNotFoundError, PathNotFoundError, FtagError
from .fsutil import CanonicalizeFn, StatFn, canonicalize, is_file_or_directory, normalize, stat_inode
from .models import Tag, parse_inode

logger = logging.getLogger(__name__)

EntryFilter = Literal["files", "directories", "all"]


def _admits(entry_filter: EntryFilter, is_dir: bool) -> bool:
    if entry_filter == "all":
        return True
    return is_dir if entry_filter == "directories" else not is_dir


def _entries(directory: str) -> list[os.DirEntry]:
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda e: e.name)
    except PermissionError as e:
        logger.warning(f"Cannot read directory '{directory}': {e}")
        return []


def walk(root: str, entry_filter: EntryFilter = "files") -> Iterator[tuple[str, int]]:
    """Yield (path, inode) for entries under root, depth-first in name order.

    The root itself is yielded for the directories and all filters. Symlinked
    directories are reported but not descended into.
    """
    root = canonicalize(root)
    if _admits(entry_filter, True):
        yield root, os.stat(root).st_ino

    stack = [iter(_entries(root))]
    while stack:
        entry = next(stack[-1], None)
        if entry is None:
            stack.pop()
            continue
        try:
            is_dir = entry.is_dir()
            is_file = entry.is_file()
        except OSError:
            continue
        if not (is_dir or is_file):
            continue
        if _admits(entry_filter, is_dir):
            yield entry.path, entry.stat().st_ino
        if is_dir and not entry.is_symlink():
            stack.append(iter(_entries(entry.path)))


class Tracker:
    """Add, remove, update and tag index entries by path or inode."""

    def __init__(
        self,
        db: Database,
        stat: StatFn = stat_inode,
        canonicalize: CanonicalizeFn = canonicalize,
    ):
        self.db = db
        self._stat = stat
        self._canonicalize = canonicalize

    def _live_inode(self, path: str) -> int:
        inode, exists = self._stat(path)
        if not exists:
            raise PathNotFoundError(f"'{path}' does not exist")
        return inode

    def _find_inode(self, path: str, search_index_first: bool = True) -> int:
        """Tracked inode for a path: stored path first, then the live inode."""
        if search_index_first:
            inode = self.db.index.search_path(normalize(path))
            if inode:
                return inode
        inode, exists = self._stat(path)
        if exists and inode in self.db.index:
            return inode
        return 0

    # --- Index membership ---

    def add_path(self, path: str) -> bool:
        inode = self._live_inode(path)
        if not is_file_or_directory(path):
            logger.warning(f"'{path}' is not a regular file or directory, skipping")
            return False
        return self.on_discovered(self._canonicalize(path), inode)

    def on_discovered(self, path: str, inode: int) -> bool:
        """Track a discovered entry unless its inode is already tracked."""
        existing = self.db.index.get(inode)
        if existing is not None:
            logger.warning(f"'{path}' is already in the index (inode {inode} as '{existing.path}'), skipping")
            return False
        self.db.track(inode, path)
        logger.info(f"Added '{path}' (inode {inode})")
        return True

    def add_inode(self, inode: int) -> bool:
        if inode in self.db.index:
            logger.warning(f"Inode {inode} is already in the index, skipping")
            return False
        self.db.track(inode)
        logger.warning(f"Inode {inode} was added without a path, run the update command to resolve it")
        return True

    def remove_path(self, path: str, search_index_first: bool = True) -> bool:
        inode = self._find_inode(path, search_index_first)
        if not inode:
            logger.warning(f"'{path}' is not in the index, skipping")
            return False
        self.db.untrack(inode)
        return True

    def remove_inode(self, inode: int) -> bool:
        if inode not in self.db.index:
            raise InodeNotFoundError(f"Inode {inode} is not in the index")
        self.db.untrack(inode)
        return True

    def update_path(self, path: str) -> bool:
        """Store the current path of an entry whose inode is tracked."""
        inode = self._live_inode(path)
        if inode not in self.db.index:
            logger.warning(f"'{path}' (inode {inode}) is not in the index, skipping")
            return False
        return self.db.set_path(inode, self._canonicalize(path))

    # --- Tag membership ---

    def tag_path(self, tag: Tag, path: str) -> bool:
        inode = self._live_inode(path)
        if not is_file_or_directory(path):
            logger.warning(f"'{path}' is not a regular file or directory, skipping")
            return False
        if inode not in self.db.index:
            logger.warning(f"'{path}' is not in the index, adding it")
            self.db.track(inode, self._canonicalize(path))
        return self._link(tag, inode, path)

    def tag_inode(self, tag: Tag, inode: int) -> bool:
        if inode not in self.db.index:
            logger.warning(f"Inode {inode} is not in the index, adding it without a path")
            self.db.track(inode)
        return self._link(tag, inode, f"inode {inode}")

    def _link(self, tag: Tag, inode: int, label: str) -> bool:
        if not self.db.link(tag, inode):
            logger.warning(f"'{label}' is already tagged '{tag.name}'")
            return False
        return True

    def untag_path(self, tag: Tag, path: str, search_index_first: bool = True) -> bool:
        inode = self._find_inode(path, search_index_first)
        if not inode:
            logger.warning(f"'{path}' is not in the index, skipping")
            return False
        return self._unlink(tag, inode, path)

    def untag_inode(self, tag: Tag, inode: int) -> bool:
        if inode not in self.db.index and inode not in tag.files:
            raise InodeNotFoundError(f"Inode {inode} is not in the index")
        return self._unlink(tag, inode, f"inode {inode}")

    def _unlink(self, tag: Tag, inode: int, label: str) -> bool:
        if not self.db.unlink(tag, inode):
            logger.warning(f"'{label}' is not tagged '{tag.name}'")
            return False
        return True

    # --- Recursive ---

    def apply_recursive(
        self,
        root: str,
        handler: Callable[[str, int], bool],
        entry_filter: EntryFilter = "files",
    ) -> int:
        """Feed every entry walk() finds under root to handler.

        Returns how many entries the handler accepted.
        """
        if not os.path.isdir(root):
            raise PathNotFoundError(f"'{root}' is not a directory")
        return sum(bool(handler(path, inode)) for path, inode in walk(root, entry_filter))

    def remove_discovered(self, path: str, inode: int) -> bool:
        if inode not in self.db.index:
            logger.debug(f"'{path}' is not in the index")
            return False
        self.db.untrack(inode)
        return True

    def update_discovered(self, path: str, inode: int) -> bool:
        if inode not in self.db.index:
            return False
        return self.db.set_path(inode, path)

    def tag_discovered(self, tag: Tag) -> Callable[[str, int], bool]:
        def handler(path: str, inode: int) -> bool:
            if inode not in self.db.index:
                self.db.track(inode, path)
            return self._link(tag, inode, path)
        return handler

    def untag_discovered(self, tag: Tag) -> Callable[[str, int], bool]:
        def handler(path: str, inode: int) -> bool:
            if inode not in tag.files:
                return False
            return self.db.unlink(tag, inode)
        return handler


# --- Target arguments ---

TargetKind = Literal["file", "recursive", "inode"]


@dataclass
class Target:
    kind: TargetKind
    path: str = ""
    inode: int = 0


@dataclass
class TargetArgs:
    """Parsed file arguments of add, rm, update, tag add and tag rm."""

    targets: list[Target] = field(default_factory=list)
    search_index_first: bool = True
    entry_filter: EntryFilter = "files"


FILTER_FLAGS: dict[str, EntryFilter] = {
    "--only-files": "files",
    "--only-directories": "directories",
    "--all-entries": "all",
}


STDIN_MODE_FLAGS: dict[str, tuple[str, bool]] = {
    "-rd": ("recognize_dash", True), "--recognize-dash": ("recognize_dash", True),
    "-id": ("recognize_dash", False), "--ignore-dash": ("recognize_dash", False),
    "-sa": ("per_line", False), "--stdin-parse-as-args": ("per_line", False),
    "-sl": ("per_line", True), "--stdin-parse-per-line": ("per_line", True),
}

LIST_FLAGS: dict[str, TargetKind] = {
    "-f": "file", "--file": "file",
    "-r": "recursive", "--recursive": "recursive",
    "-i": "inode", "--inode": "inode",
}


def _stdin_args(text: str, per_line: bool) -> list[str]:
    if per_line:
        return [line for line in text.splitlines() if line]
    try:
        return shlex.split(text)
    except ValueError as e:
        raise FtagError(f"Could not parse standard input as arguments: {e}") from e


def _inode_target(text: str) -> Target:
    inode = parse_inode(text)
    if inode == 0:
        raise FtagError(f"Invalid inode number '{text}'")
    return Target(kind="inode", inode=inode)


def parse_target_args(args: list[str], read_stdin: Callable[[], str] | None = None) -> TargetArgs:
    """Parse file-selection arguments.

    Bare arguments are paths. ``-f`` marks the rest as paths, ``-r`` marks
    the rest as directories to walk, and ``-i`` takes inode numbers up to
    the next flag. A ``-`` reads the remaining values of the current list
    from stdin, one per line by default or shell-split with ``-sa``.
    ``-id`` makes ``-`` an ordinary value; ``-rd``, ``-sa`` and ``-sl``
    apply wherever they appear.

    Raises:
        FtagError: On an unknown flag, an empty list, or a bad inode number
    """
    recognize_dash = True
    per_line = True
    remaining: list[str] = []
    for arg in args:
        if arg in STDIN_MODE_FLAGS:
            name, value = STDIN_MODE_FLAGS[arg]
            if name == "recognize_dash":
                recognize_dash = value
            else:
                per_line = value
        else:
            remaining.append(arg)

    parsed = TargetArgs()
    stdin_used = False

    def splice(kind: TargetKind) -> None:
        nonlocal stdin_used
        if read_stdin is None or stdin_used:
            raise FtagError("Standard input can only be read once")
        stdin_used = True
        values = _stdin_args(read_stdin(), per_line)
        logger.info(f"Read {len(values)} value(s) from standard input")
        for value in values:
            if kind == "inode":
                parsed.targets.append(_inode_target(value))
            else:
                parsed.targets.append(Target(kind=kind, path=value))

    i = 0
    while i < len(remaining):
        arg = remaining[i]
        i += 1
        if arg in LIST_FLAGS:
            kind = LIST_FLAGS[arg]
            if i >= len(remaining):
                raise FtagError(f"Flag '{arg}' expects at least one value")
            while i < len(remaining):
                value = remaining[i]
                if value == "-" and recognize_dash:
                    i += 1
                    splice(kind)
                    break
                if kind == "inode":
                    if value.startswith("-"):
                        # any flag ends an inode list
                        break
                    parsed.targets.append(_inode_target(value))
                else:
                    if value.startswith("-") and value != "-":
                        logger.warning(f"'{value}' begins with '-', taking it as a path")
                    parsed.targets.append(Target(kind=kind, path=value))
                i += 1
        elif arg in FILTER_FLAGS:
            parsed.entry_filter = FILTER_FLAGS[arg]
        elif arg == "--search-index":
            parsed.search_index_first = True
        elif arg == "--no-search-index":
            parsed.search_index_first = False
        elif arg == "-":
            if recognize_dash:
                splice("file")
            else:
                parsed.targets.append(Target(kind="file", path=arg))
        elif arg.startswith("-"):
            raise FtagError(f"Unrecognized argument '{arg}'")
        else:
            parsed.targets.append(Target(kind="file", path=arg))
    return parsed
