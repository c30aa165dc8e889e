"""Database - owns the tag store and file index, and every link between them.

Tag.files and FileEntry.tags are only written here, so the two sides of a
tag/file association cannot drift apart.
"""

import logging
from pathlib import Path

from .errors import InodeNotFoundError
from .models import Color, FileEntry, Tag
from .serialization import (
    parse_index,
    parse_tags,
    read_index_file,
    read_tags_file,
    write_index_file,
    write_tags_file,
)
from .state import FileIndex, TagStore

logger = logging.getLogger(__name__)


class Database:
    """Tag graph plus file index, loaded from and persisted to two files."""

    def __init__(
        self,
        tags: TagStore | None = None,
        index: FileIndex | None = None,
        tags_path: Path | None = None,
        index_path: Path | None = None,
    ):
        self.tags = tags if tags is not None else TagStore()
        self.index = index if index is not None else FileIndex()
        self.tags_path = tags_path
        self.index_path = index_path
        self.tags_dirty = False
        self.index_dirty = False

    @classmethod
    def load(cls, tags_path: Path, index_path: Path) -> "Database":
        """Load both stores. The index is read first so tags can link to it."""
        tags_path, index_path = Path(tags_path), Path(index_path)
        index = read_index_file(index_path)
        tags = read_tags_file(tags_path, index)
        logger.debug(f"Loaded {len(tags)} tags and {len(index)} files")
        return cls(tags, index, tags_path, index_path)

    @classmethod
    def from_text(cls, tags_text: str = "", index_text: str = "") -> "Database":
        index = parse_index(index_text)
        return cls(parse_tags(tags_text, index), index)

    def persist(self, force: bool = False) -> tuple[bool, bool]:
        """Rewrite the dirty stores. Returns (tags_written, index_written)."""
        write_tags = force or self.tags_dirty
        write_index = force or self.index_dirty
        if write_tags:
            if self.tags_path is None:
                raise ValueError("Database has no tags file to write to")
            write_tags_file(self.tags_path, self.tags)
            self.tags_dirty = False
        if write_index:
            if self.index_path is None:
                raise ValueError("Database has no index file to write to")
            write_index_file(self.index_path, self.index)
            self.index_dirty = False
        return write_tags, write_index

    # --- Tag graph ---

    def create_tag(self, name: str, color: Color | None = None) -> Tag:
        tag = self.tags.create(name, color=color)
        self.tags_dirty = True
        return tag

    def rename_tag(self, tag: Tag, new_name: str) -> bool:
        return self._mark_tags(self.tags.rename(tag, new_name))

    def set_color(self, tag: Tag, color: Color | None) -> bool:
        return self._mark_tags(self.tags.set_color(tag, color))

    def set_enabled(self, tag: Tag, enabled: bool) -> bool:
        return self._mark_tags(self.tags.set_enabled(tag, enabled))

    def add_edge(self, sup: Tag, sub: Tag) -> bool:
        return self._mark_tags(self.tags.add_edge(sup.id, sub.id))

    def remove_edge(self, sup: Tag, sub: Tag) -> bool:
        return self._mark_tags(self.tags.remove_edge(sup.id, sub.id))

    def clear_supers(self, tag: Tag) -> bool:
        return self._mark_tags(self.tags.clear_supers(tag))

    def clear_subs(self, tag: Tag) -> bool:
        return self._mark_tags(self.tags.clear_subs(tag))

    def delete_tag(self, tag: Tag) -> None:
        """Delete a tag along with its edges and every file's reference to it."""
        for inode in tag.files:
            entry = self.index.get(inode)
            if entry is not None and tag.id in entry.tags:
                entry.tags.remove(tag.id)
        self.tags.detach(tag.id)
        self.tags_dirty = True

    # --- Tag/file links ---

    def link(self, tag: Tag, inode: int) -> bool:
        """Attach a tracked file to a tag. Returns False if already attached."""
        entry = self.index.get(inode)
        if entry is None:
            raise InodeNotFoundError(f"Inode {inode} is not in the index")
        changed = False
        if inode not in tag.files:
            tag.files.append(inode)
            changed = True
        if tag.id not in entry.tags:
            entry.tags.append(tag.id)
            changed = True
        return self._mark_tags(changed)

    def unlink(self, tag: Tag, inode: int) -> bool:
        """Detach a file from a tag. The file need not be tracked."""
        changed = False
        if inode in tag.files:
            tag.files.remove(inode)
            changed = True
        entry = self.index.get(inode)
        if entry is not None and tag.id in entry.tags:
            entry.tags.remove(tag.id)
            changed = True
        return self._mark_tags(changed)

    def track(self, inode: int, path: str = "") -> FileEntry:
        """Add a file entry.

        Tags that already list this inode (left dangling by an earlier
        removal or a hand-edited tag file) are recorded on the new entry.
        """
        entry = self.index.add(inode, path)
        self._adopt_dangling(entry)
        self.index_dirty = True
        return entry

    def untrack(self, inode: int) -> FileEntry:
        """Remove a file entry and strip it from every tag that lists it."""
        if inode not in self.index:
            raise InodeNotFoundError(f"Inode {inode} is not in the index")
        entry = self.index.pop(inode)
        for tag_id in entry.tags:
            tag = self.tags.get(tag_id)
            if tag is not None and inode in tag.files:
                tag.files.remove(inode)
                self.tags_dirty = True
        entry.tags = []
        self.index_dirty = True
        return entry

    def set_path(self, inode: int, path: str) -> bool:
        changed = self.index.set_path(inode, path)
        self.index_dirty |= changed
        return changed

    def remap_backrefs(self, old: int, new: int) -> bool:
        """Move the entry for `old` to `new` and rewrite every tag's file list.

        The caller checks that `old` is tracked and `new` is not. Returns
        whether any tag was touched.
        """
        entry = self.index.pop(old)
        touched = False
        for tag_id in entry.tags:
            tag = self.tags.get(tag_id)
            if tag is None or old not in tag.files:
                continue
            pos = tag.files.index(old)
            if new in tag.files:
                del tag.files[pos]
            else:
                tag.files[pos] = new
            touched = True
        entry.inode = new
        self.index.entries[new] = entry
        touched |= self._adopt_dangling(entry)
        self.index_dirty = True
        self.tags_dirty |= touched
        return touched

    def _adopt_dangling(self, entry: FileEntry) -> bool:
        adopted = False
        for tag in self.tags:
            if entry.inode in tag.files and tag.id not in entry.tags:
                entry.tags.append(tag.id)
                adopted = True
        return adopted

    def _mark_tags(self, changed: bool) -> bool:
        self.tags_dirty |= changed
        return changed

    # --- Debug ---

    def check_consistency(self) -> list[str]:
        """Validate both stores and the tag/file links. Returns list of errors.

        Inodes a tag lists but the index does not track are not errors.
        """
        errors = self.tags.check_consistency()
        for tag in self.tags:
            for inode in tag.files:
                entry = self.index.get(inode)
                if entry is not None and tag.id not in entry.tags:
                    errors.append(f"tag '{tag.name}' lists inode {inode} but the entry does not list the tag")
        for entry in self.index:
            if len(set(entry.tags)) != len(entry.tags):
                errors.append(f"inode {entry.inode} lists a tag twice")
            for tag_id in entry.tags:
                tag = self.tags.get(tag_id)
                if tag is None:
                    errors.append(f"inode {entry.inode} references unknown tag {tag_id}")
                elif entry.inode not in tag.files:
                    errors.append(f"inode {entry.inode} lists tag '{tag.name}' but the tag does not list it")
        return errors


def load_stores(tags_path: Path, index_path: Path) -> Database:
    """Load a Database from a tag file and an index file."""
    return Database.load(tags_path, index_path)
