"""Rendering query results with rich.

Matched entities are bold, the tag being listed is underlined, and tag
colors are applied as foreground colors. Formatting can be turned off
entirely for piping.
"""

import os
from dataclasses import dataclass, replace
from typing import Literal

from rich.columns import Columns
from rich.console import Console
from rich.padding import Padding
from rich.style import Style
from rich.text import Text

from .constants import NO_FILES_LABEL, NO_TAGS_LABEL, UNRESOLVED_LABEL
from .database import Database
from .models import FileEntry, Tag
from .query import QueryResult

DisplayMode = Literal["tags-files", "tags", "files"]
TagInfo = Literal["name", "chain", "full"]
FileInfo = Literal["filename", "parent", "path", "relative", "inode", "full"]


@dataclass(frozen=True)
class DisplayOptions:
    display: DisplayMode = "tags-files"
    tag_info: TagInfo = "name"
    file_info: FileInfo = "filename"
    organize_by_tag: bool = True
    compact: bool = True
    color: bool = True
    formatting: bool = True
    quoted: bool = False


DISPLAY_FLAGS: dict[str, tuple[str, object]] = {
    "--tags-files": ("display", "tags-files"),
    "--tags-only": ("display", "tags"),
    "--files-only": ("display", "files"),
    "--enable-color": ("color", True),
    "--disable-color": ("color", False),
    "--formatting": ("formatting", True),
    "--no-formatting": ("formatting", False),
    "--filename-only": ("file_info", "filename"),
    "--include-parent": ("file_info", "parent"),
    "--full-path-only": ("file_info", "path"),
    "--relative-path-only": ("file_info", "relative"),
    "--full-file-info": ("file_info", "full"),
    "--inum-only": ("file_info", "inode"),
    "--organize-by-file": ("organize_by_tag", False),
    "--organize-by-tag": ("organize_by_tag", True),
    "--full-tag-info": ("tag_info", "full"),
    "--display-tag-chain": ("tag_info", "chain"),
    "--tag-name-only": ("tag_info", "name"),
    "--compact-output": ("compact", True),
    "--no-compact-output": ("compact", False),
    "--quoted": ("quoted", True),
    "--normal-quotes": ("quoted", False),
}


def parse_display_args(args: list[str]) -> tuple[DisplayOptions, list[str]]:
    """Pull display flags out of args. Returns (options, remaining args).

    Display flags may appear anywhere; later flags override earlier ones.
    """
    options = DisplayOptions()
    remaining: list[str] = []
    for arg in args:
        if arg in DISPLAY_FLAGS:
            name, value = DISPLAY_FLAGS[arg]
            options = replace(options, **{name: value})
        else:
            remaining.append(arg)
    return options, remaining


def quote(text: str) -> str:
    """Double-quote text, escaping backslashes and quotes."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ResultRenderer:
    """Prints a QueryResult to a rich Console."""

    def __init__(self, db: Database, result: QueryResult, options: DisplayOptions, console: Console):
        self.db = db
        self.result = result
        self.options = options
        self.console = console

    def render(self) -> None:
        if self.options.display == "files":
            self._print_files(self.result.inodes())
        elif self.options.display == "tags":
            for tid in self.result.tag_ids():
                self._print(self.tag_text(self.db.tags.get(tid)))
        elif self.options.organize_by_tag:
            self._render_by_tag()
        else:
            self._render_by_file()

    # --- Layouts ---

    def _render_by_tag(self) -> None:
        returned_files = self.result.returned_files
        for tid in self.result.tag_ids():
            tag = self.db.tags.get(tid)
            files = [ino for ino in tag.files if returned_files.get(ino)]
            header = self.tag_text(tag)
            if not tag.files:
                self._print(Text.assemble(header, f": {NO_FILES_LABEL}"))
                continue
            if not files:
                # every file was filtered out
                self._print(header)
                continue
            self._print(Text.assemble(header, ":"))
            self._print_files(files)

        untagged = [ino for ino in self.result.inodes() if not self.db.index.get(ino).tags]
        if untagged:
            self._print(Text(f"{NO_TAGS_LABEL}:"))
            self._print_files(untagged)

    def _render_by_file(self) -> None:
        groups: dict[tuple[str, ...], list[int]] = {}
        for ino in self.result.inodes():
            entry = self.db.index.get(ino)
            names = sorted(self.db.tags.names(self.db.tags.enabled_only(entry.tags)))
            groups.setdefault(tuple(names), []).append(ino)

        for names, inodes in groups.items():
            if not names:
                continue
            header = Text(", ").join(self.tag_text(self.db.tags.by_name(n)) for n in names)
            self._print(Text.assemble(header, ":"))
            self._print_files(inodes)

        empty = [tid for tid in self.result.tag_ids() if not self.db.tags.get(tid).files]
        if empty:
            header = Text(", ").join(self.tag_text(self.db.tags.get(tid)) for tid in empty)
            self._print(Text.assemble(header, f": {NO_FILES_LABEL}"))
        if () in groups:
            self._print(Text(f"{NO_TAGS_LABEL}:"))
            self._print_files(groups[()])

    def _print(self, text: Text) -> None:
        self.console.print(text, soft_wrap=True)

    def _print_files(self, inodes: list[int]) -> None:
        items = [self.file_text(self.db.index.get(ino)) for ino in inodes]
        if not items:
            return
        if self.options.compact:
            self.console.print(Padding(Columns(items, padding=(0, 2)), (0, 0, 0, 2)))
        else:
            for item in items:
                self._print(Text.assemble("  ", item))

    # --- Entities ---

    def _style(self, tag: Tag | None = None, matched: bool = False, underline: bool = False) -> Style:
        if not self.options.formatting:
            return Style.null()
        color = None
        if tag is not None and tag.color is not None and self.options.color:
            color = tag.color.to_hex()
        return Style(color=color, bold=matched or None, underline=underline or None)

    def tag_text(self, tag: Tag) -> Text:
        """Tag name, with its supertag chain and subtags depending on tag_info."""
        text = Text()
        self._append_tag(text, tag, relation=None, visited=set())
        return text

    def _append_tag(self, text: Text, tag: Tag, relation: str | None, visited: set[str]) -> None:
        tags = self.db.tags
        info = self.options.tag_info
        matched = self.result.matched_tags.get(tag.id, False)
        style = self._style(tag, matched=matched, underline=relation is None)

        if tag.id in visited:
            text.append(tag.name, style=style)
            return
        visited.add(tag.id)

        supers = tags.enabled_only(tag.supers)
        if relation != "sub" and info != "name" and supers:
            self._append_group(text, supers, "super", visited)
            text.append(" > ")

        text.append(tag.name, style=style)
        if info == "full" and relation is None:
            text.append(f" {{{len(tag.files)}}}")

        subs = tags.enabled_only(tag.subs)
        if relation != "super" and info == "full" and subs:
            text.append(" > ")
            self._append_group(text, subs, "sub", visited)

    def _append_group(self, text: Text, tag_ids: list[str], relation: str, visited: set[str]) -> None:
        if len(tag_ids) > 1:
            text.append("(")
        for i, tid in enumerate(tag_ids):
            if i:
                text.append(" | ")
            self._append_tag(text, self.db.tags.get(tid), relation, visited)
        if len(tag_ids) > 1:
            text.append(")")

    def file_text(self, entry: FileEntry) -> Text:
        info = self.options.file_info
        style = self._style(matched=self.result.matched_files.get(entry.inode, False))

        if info == "inode":
            return Text(str(entry.inode), style=style)
        if entry.unresolved:
            label = Text(UNRESOLVED_LABEL, style=self._style(
                matched=self.result.matched_files.get(entry.inode, False), underline=True,
            ))
            if info == "full":
                label.append(f" {{{len(entry.tags)}}} ({entry.inode})")
            return label

        if info == "path":
            return Text(quote(entry.path), style=style)
        if info == "relative":
            return Text(quote(os.path.relpath(entry.path)), style=style)
        if info == "full":
            text = Text(entry.filename, style=style)
            text.append(f" {{{len(entry.tags)}}} ({entry.inode}): {quote(entry.path)}")
            return text

        name = entry.filename
        if info == "parent":
            name = f"{entry.parent_name}/{name}"
        return Text(quote(name) if self.options.quoted else name, style=style)


def render_result(db: Database, result: QueryResult, options: DisplayOptions, console: Console) -> None:
    ResultRenderer(db, result, options, console).render()
