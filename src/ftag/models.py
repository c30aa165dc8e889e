"""Core data models for ftag.

Uses Pydantic v2 for validation, ULID for per-process tag handles.
"""

import os
import re
from typing import Literal

from pydantic import BaseModel, Field
from ulid import ULID

from .constants import TAG_NAME_FORBIDDEN


def generate_id() -> str:
    """Generate a ULID (sortable, unique identifier)."""
    return str(ULID())


_INODE_PATTERN = re.compile(r"\s*\+?(0[xX][0-9a-fA-F]+|[1-9][0-9]*|0[0-7]*)")
_HEX_COLOR_PATTERN = re.compile(r"#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})")


def parse_inode(text: str) -> int:
    """Parse an inode number the way C's strtoul(text, NULL, 0) does.

    Accepts decimal, 0x-prefixed hex and 0-prefixed octal, stopping at the
    first character that does not belong to the number. Returns 0 when no
    number could be read; callers treat 0 as invalid.
    """
    match = _INODE_PATTERN.match(text)
    if not match:
        return 0
    digits = match.group(1)
    if digits[:2] in ("0x", "0X"):
        return int(digits[2:], 16)
    if digits.startswith("0"):
        return int(digits, 8) if len(digits) > 1 else 0
    return int(digits)


def validate_tag_name(name: str) -> tuple[bool, str | None]:
    """Validate a tag name.

    Returns:
        (is_valid, message): message describes the problem when invalid
    """
    if not name:
        return False, "tag name is empty"
    if name.startswith("-"):
        return False, f"tag name '{name}' may not start with '-'"
    bad = sorted(set(name) & TAG_NAME_FORBIDDEN)
    if bad or any(c.isspace() for c in name):
        shown = " ".join(repr(c) for c in bad) or "whitespace"
        return False, f"tag name '{name}' contains illegal characters: {shown}"
    return True, None


class Color(BaseModel):
    """An RGB tag color."""

    r: int = Field(ge=0, le=255)
    g: int = Field(ge=0, le=255)
    b: int = Field(ge=0, le=255)

    @classmethod
    def from_hex(cls, text: str) -> "Color":
        """Parse 'RRGGBB' or '#RRGGBB'. Raises ValueError on anything else."""
        match = _HEX_COLOR_PATTERN.fullmatch(text.strip())
        if not match:
            raise ValueError(f"invalid color '{text}', expected #RRGGBB")
        r, g, b = (int(part, 16) for part in match.groups())
        return cls(r=r, g=g, b=b)

    def to_hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


class Tag(BaseModel):
    """A node in the tag graph.

    The id is regenerated every time tags are loaded; the name is the
    durable key written to the tag file.
    """

    id: str = Field(default_factory=generate_id)
    name: str
    color: Color | None = None
    enabled: bool = True
    supers: list[str] = Field(default_factory=list)  # tag IDs
    subs: list[str] = Field(default_factory=list)    # tag IDs
    files: list[int] = Field(default_factory=list)   # inode numbers


class FileEntry(BaseModel):
    """A tracked filesystem entry, keyed by inode."""

    inode: int = Field(gt=0)
    path: str = ""  # empty means unresolved
    tags: list[str] = Field(default_factory=list)  # tag IDs

    @property
    def unresolved(self) -> bool:
        return not self.path

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    @property
    def parent_name(self) -> str:
        return os.path.basename(os.path.dirname(self.path))


# --- Search rules ---

RuleTarget = Literal[
    "tag",       # tags by name, plus their files
    "file",      # files by filename or path
    "all",       # tags by name, plus their enabled sub-closure
    "all-list",  # everything
    "inode",     # one file by inode number
]

MatchMode = Literal["exact", "substring", "regex"]


class SearchRule(BaseModel):
    """One ordered include/exclude rule of a query."""

    target: RuleTarget
    exclude: bool = False
    mode: MatchMode = "exact"
    text: str = ""
    inode: int = 0


# --- Fix rules ---

FixKind = Literal[
    "path-all",    # re-stat every stored path
    "path-inode",  # re-stat the stored path of one inode
    "path-path",   # re-stat one stored path
    "replace-ip",  # old inode -> inode of a live path
    "replace-ii",  # old inode -> new inode
    "replace-pp",  # stored path -> inode of a live path
    "replace-pi",  # stored path -> new inode
]


class FixRule(BaseModel):
    """One reconciliation request. old/new are inodes or paths by kind."""

    kind: FixKind
    old: int | str | None = None
    new: int | str | None = None


class FixOutcome(BaseModel):
    """Counts of remaps done and skipped by a batch of fix rules."""

    applied: int = 0
    skipped: int = 0

    def record(self, applied: bool) -> bool:
        if applied:
            self.applied += 1
        else:
            self.skipped += 1
        return applied
