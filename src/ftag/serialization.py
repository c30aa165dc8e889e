"""Reading and writing the tag file and the file index.

Tag file:

    name [d] (#rrggbb): super1 super2
      -<inode>

File index: one ``<inode>:<path>`` record per entry, each terminated by
NUL + newline so paths may contain newlines.
"""

import logging
from pathlib import Path

from .constants import INDEX_RECORD_TERMINATOR
from .errors import ConflictError, InvalidNameError, ParseError
from .models import Color, Tag, parse_inode
from .state import FileIndex, TagStore

logger = logging.getLogger(__name__)

# Paths are arbitrary bytes on POSIX; round-trip them through str unchanged
ENCODING = "utf-8"
ERRORS = "surrogateescape"


def _strip_whitespace(text: str) -> str:
    return "".join(text.split())


def _parse_header(header: str, source: str, line_no: int) -> tuple[str, bool, Color | None]:
    """Split a whitespace-free record header into (name, enabled, color)."""
    enabled = True
    color = None
    paired = False

    sq_open, sq_close = header.find("["), header.find("]")
    if sq_open != -1 and sq_close != -1:
        paired = True
        if sq_close < sq_open:
            raise ParseError(source, line_no, "']' found before '['")
        for state in header[sq_open + 1:sq_close].split(","):
            if state == "e":
                enabled = True
            elif state == "d":
                enabled = False

    p_open, p_close = header.find("("), header.find(")")
    if p_open != -1 and p_close != -1:
        paired = True
        if p_close < p_open:
            raise ParseError(source, line_no, "')' found before '('")
        try:
            color = Color.from_hex(header[p_open + 1:p_close])
        except ValueError as e:
            raise ParseError(source, line_no, str(e)) from e

    if not paired:
        return header, enabled, color
    # once any pair is present, the name ends at the first opener of either kind
    cut = min(i for i in (sq_open, p_open) if i != -1)
    return header[:cut], enabled, color


def parse_tags(text: str, index: FileIndex | None = None, source: str = "<tags>") -> TagStore:
    """Parse tag file text into a TagStore.

    When an index is given, each listed inode that the index tracks gets the
    tag's id recorded on its FileEntry. Inodes the index does not track are
    kept on the tag as-is.

    Raises:
        ParseError: On any malformed line or an undeclared supertag
    """
    store = TagStore()
    current: Tag | None = None
    pending: list[tuple[str, str, int]] = []  # (sub id, super name, line)

    for line_no, line in enumerate(text.split("\n"), start=1):
        compact = _strip_whitespace(line)
        if not compact:
            continue

        if compact.startswith("-"):
            if current is None:
                raise ParseError(source, line_no, "inode listed outside of a tag")
            inode = parse_inode(compact[1:])
            if inode == 0:
                raise ParseError(source, line_no, f"invalid inode number '{compact[1:]}'")
            if inode not in current.files:
                current.files.append(inode)
                entry = index.get(inode) if index is not None else None
                if entry is not None:
                    entry.tags.append(current.id)
            continue

        colon = line.find(":")
        header = _strip_whitespace(line[:colon]) if colon != -1 else compact
        name, enabled, color = _parse_header(header, source, line_no)
        try:
            current = store.create(name, color=color, enabled=enabled)
        except InvalidNameError as e:
            raise ParseError(source, line_no, str(e)) from e
        except ConflictError as e:
            raise ParseError(source, line_no, f"tag '{name}' is declared twice") from e

        if colon == -1:
            continue
        super_names = line[colon + 1:].split()
        if not super_names:
            logger.warning(f'"{source}" line {line_no}: tag \'{name}\' has a \':\' but no supertags')
        for super_name in super_names:
            sup = store.by_name(super_name)
            if sup is not None:
                store.add_edge(sup.id, current.id)
            else:
                pending.append((current.id, super_name, line_no))

    for sub_id, super_name, line_no in pending:
        sup = store.by_name(super_name)
        if sup is None:
            sub_name = store.tags[sub_id].name
            raise ParseError(
                source, line_no,
                f"tag '{sub_name}' references supertag '{super_name}', which is never declared",
            )
        store.add_edge(sup.id, sub_id)

    return store


def dump_tags(store: TagStore) -> str:
    """Serialize a TagStore in creation order."""
    lines: list[str] = []
    for tag in store:
        header = tag.name
        if not tag.enabled:
            header += " [d]"
        if tag.color is not None:
            header += f" ({tag.color.to_hex()})"
        if tag.supers:
            header += ": " + " ".join(store.names(tag.supers))
        lines.append(header + "\n")
        lines.extend(f"  -{inode}\n" for inode in tag.files)
    return "".join(lines)


def parse_index(text: str, source: str = "<index>") -> FileIndex:
    """Parse file index text.

    Raises:
        ParseError: On a record without ':' or with a bad inode number
    """
    index = FileIndex()
    for record_no, record in enumerate(text.split(INDEX_RECORD_TERMINATOR), start=1):
        if not record:
            continue
        inode_text, sep, path = record.partition(":")
        if not sep:
            raise ParseError(source, record_no, "expected '<inode>:<path>'")
        inode = parse_inode(inode_text)
        if inode == 0:
            raise ParseError(source, record_no, f"invalid inode number '{inode_text}'")
        if not path:
            logger.warning(
                f'"{source}" record {record_no}: inode {inode} has no path, '
                "you might want to run the update command"
            )
        index.entries.pop(inode, None)
        index.add(inode, path)
    return index


def dump_index(index: FileIndex) -> str:
    """Serialize a FileIndex in ascending inode order."""
    return "".join(f"{entry.inode}:{entry.path}{INDEX_RECORD_TERMINATOR}" for entry in index)


# --- Whole-file I/O ---


def _read(path: Path) -> str:
    if not path.exists():
        return ""
    with open(path, encoding=ENCODING, errors=ERRORS, newline="") as f:
        return f.read()


def _write(path: Path, text: str) -> None:
    with open(path, "w", encoding=ENCODING, errors=ERRORS, newline="") as f:
        f.write(text)


def read_index_file(path: Path) -> FileIndex:
    return parse_index(_read(path), source=str(path))


def read_tags_file(path: Path, index: FileIndex | None = None) -> TagStore:
    return parse_tags(_read(path), index, source=str(path))


def write_index_file(path: Path, index: FileIndex) -> None:
    _write(path, dump_index(index))


def write_tags_file(path: Path, store: TagStore) -> None:
    _write(path, dump_tags(store))
