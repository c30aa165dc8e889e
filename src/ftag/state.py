"""In-memory stores for the tag graph and the file index.

TagStore owns the super/sub relation and keeps both directions in step.
FileIndex owns file entries keyed by inode. Cross-store back-references
(Tag.files <-> FileEntry.tags) are written only by ftag.database.Database.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from .errors import ConflictError, InvalidNameError, TagNotFoundError
from .fsutil import normalize
from .models import Color, FileEntry, Tag, generate_id, validate_tag_name


@dataclass
class TagStore:
    """Tags in creation order, plus a name index for O(1) lookup."""

    tags: dict[str, Tag] = field(default_factory=dict)  # id -> Tag
    _name_to_id: dict[str, str] = field(default_factory=dict)

    def __contains__(self, tag_id: str) -> bool:
        return tag_id in self.tags

    def __iter__(self) -> Iterator[Tag]:
        return iter(self.tags.values())

    def __len__(self) -> int:
        return len(self.tags)

    def get(self, tag_id: str) -> Tag | None:
        return self.tags.get(tag_id)

    def by_name(self, name: str) -> Tag | None:
        """O(1) lookup of a tag by name."""
        tag_id = self._name_to_id.get(name)
        return self.tags[tag_id] if tag_id else None

    def require(self, name: str) -> Tag:
        tag = self.by_name(name)
        if tag is None:
            raise TagNotFoundError(f"Tag '{name}' not found")
        return tag

    def names(self, tag_ids: Iterable[str]) -> list[str]:
        return [self.tags[tid].name for tid in tag_ids]

    # --- Mutation ---

    def create(self, name: str, color: Color | None = None, enabled: bool = True) -> Tag:
        """Create and register a new tag.

        Raises:
            InvalidNameError: If the name is not a legal tag name
            ConflictError: If a tag with this name already exists
        """
        valid, message = validate_tag_name(name)
        if not valid:
            raise InvalidNameError(message)
        if name in self._name_to_id:
            raise ConflictError(f"Tag '{name}' already exists")

        tag_id = generate_id()
        while tag_id in self.tags:
            tag_id = generate_id()
        tag = Tag(id=tag_id, name=name, color=color, enabled=enabled)
        self.tags[tag.id] = tag
        self._name_to_id[name] = tag.id
        return tag

    def rename(self, tag: Tag, new_name: str) -> bool:
        if new_name == tag.name:
            return False
        valid, message = validate_tag_name(new_name)
        if not valid:
            raise InvalidNameError(message)
        if new_name in self._name_to_id:
            raise ConflictError(f"Cannot rename '{tag.name}': tag '{new_name}' already exists")
        del self._name_to_id[tag.name]
        tag.name = new_name
        self._name_to_id[new_name] = tag.id
        return True

    def set_color(self, tag: Tag, color: Color | None) -> bool:
        if tag.color == color:
            return False
        tag.color = color
        return True

    def set_enabled(self, tag: Tag, enabled: bool) -> bool:
        if tag.enabled == enabled:
            return False
        tag.enabled = enabled
        return True

    def add_edge(self, super_id: str, sub_id: str) -> bool:
        """Make super_id a supertag of sub_id. Returns False if already linked."""
        sup, sub = self.tags[super_id], self.tags[sub_id]
        changed = False
        if super_id not in sub.supers:
            sub.supers.append(super_id)
            changed = True
        if sub_id not in sup.subs:
            sup.subs.append(sub_id)
            changed = True
        return changed

    def remove_edge(self, super_id: str, sub_id: str) -> bool:
        sup, sub = self.tags[super_id], self.tags[sub_id]
        changed = False
        if super_id in sub.supers:
            sub.supers.remove(super_id)
            changed = True
        if sub_id in sup.subs:
            sup.subs.remove(sub_id)
            changed = True
        return changed

    def clear_supers(self, tag: Tag) -> bool:
        changed = False
        for super_id in list(tag.supers):
            changed |= self.remove_edge(super_id, tag.id)
        return changed

    def clear_subs(self, tag: Tag) -> bool:
        changed = False
        for sub_id in list(tag.subs):
            changed |= self.remove_edge(tag.id, sub_id)
        return changed

    def detach(self, tag_id: str) -> Tag:
        """Remove every edge touching a tag and drop it from the store."""
        tag = self.tags[tag_id]
        self.clear_supers(tag)
        self.clear_subs(tag)
        del self._name_to_id[tag.name]
        del self.tags[tag_id]
        return tag

    # --- Traversal ---

    def enabled_only(self, tag_ids: Iterable[str]) -> list[str]:
        return [tid for tid in tag_ids if self.tags[tid].enabled]

    def closure(self, tag_id: str) -> list[str]:
        """Return tag_id and every tag reachable through enabled subtags.

        Depth-first, pre-order, each tag visited once so cycles terminate.
        A disabled subtag is not entered, which prunes everything below it.
        """
        visited: set[str] = set()
        order: list[str] = []
        stack = [tag_id]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            order.append(current)
            subs = self.enabled_only(self.tags[current].subs)
            stack.extend(sid for sid in reversed(subs) if sid not in visited)
        return order

    def check_consistency(self) -> list[str]:
        """Validate the name index and super/sub symmetry. Returns list of errors.

        An empty list means the store is consistent.
        """
        errors: list[str] = []

        expected_name_to_id = {t.name: tid for tid, t in self.tags.items()}
        if self._name_to_id != expected_name_to_id:
            missing = set(expected_name_to_id) - set(self._name_to_id)
            stale = set(self._name_to_id) - set(expected_name_to_id)
            if missing:
                errors.append(f"_name_to_id missing tags: {missing}")
            if stale:
                errors.append(f"_name_to_id has stale entries: {stale}")
            if not missing and not stale:
                errors.append("_name_to_id has wrong mappings")

        for tid, tag in self.tags.items():
            if tag.id != tid:
                errors.append(f"tag '{tag.name}' stored under foreign id {tid}")
            if len(set(tag.supers)) != len(tag.supers):
                errors.append(f"tag '{tag.name}' has duplicate supertags")
            if len(set(tag.subs)) != len(tag.subs):
                errors.append(f"tag '{tag.name}' has duplicate subtags")
            if len(set(tag.files)) != len(tag.files):
                errors.append(f"tag '{tag.name}' lists a file twice")
            for super_id in tag.supers:
                sup = self.tags.get(super_id)
                if sup is None:
                    errors.append(f"tag '{tag.name}' has unknown supertag {super_id}")
                elif tid not in sup.subs:
                    errors.append(f"'{sup.name}' is a supertag of '{tag.name}' but does not list it as a subtag")
            for sub_id in tag.subs:
                sub = self.tags.get(sub_id)
                if sub is None:
                    errors.append(f"tag '{tag.name}' has unknown subtag {sub_id}")
                elif tid not in sub.supers:
                    errors.append(f"'{sub.name}' is a subtag of '{tag.name}' but does not list it as a supertag")

        return errors


@dataclass
class FileIndex:
    """Tracked file entries keyed by inode. Iterates in ascending inode order."""

    entries: dict[int, FileEntry] = field(default_factory=dict)

    def __contains__(self, inode: int) -> bool:
        return inode in self.entries

    def __iter__(self) -> Iterator[FileEntry]:
        for inode in sorted(self.entries):
            yield self.entries[inode]

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, inode: int) -> FileEntry | None:
        return self.entries.get(inode)

    def add(self, inode: int, path: str = "") -> FileEntry:
        if inode <= 0:
            raise ValueError(f"invalid inode number {inode}")
        if inode in self.entries:
            raise ConflictError(f"Inode {inode} is already in the index")
        entry = FileEntry(inode=inode, path=path)
        self.entries[inode] = entry
        return entry

    def pop(self, inode: int) -> FileEntry:
        return self.entries.pop(inode)

    def set_path(self, inode: int, path: str) -> bool:
        entry = self.entries[inode]
        if entry.path == path:
            return False
        entry.path = path
        return True

    def search_path(self, path: str) -> int:
        """Return the inode whose normalized stored path equals path, or 0."""
        for entry in self:
            if entry.path and normalize(entry.path) == path:
                return entry.inode
        return 0
