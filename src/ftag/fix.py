"""Inode reconciliation.

Moving a file between filesystems, or an editor replacing a file on save,
gives it a new inode. The fix operations find the new inode and move the
entry, and every tag's reference to it, over.
"""

import logging

from .database import Database
from .errors import ConflictError, FixError, InodeNotFoundError
from .fsutil import CanonicalizeFn, StatFn, canonicalize, stat_inode
from .models import FixKind, FixOutcome, FixRule, parse_inode

logger = logging.getLogger(__name__)


def remap(db: Database, old: int, new: int, strict: bool = True) -> bool:
    """Move the entry for inode `old` to inode `new`.

    Returns False (after a warning) if `new` is already tracked and strict
    is off.

    Raises:
        InodeNotFoundError: If `old` is not tracked
        ConflictError: If `new` is already tracked and strict is on
    """
    if old not in db.index:
        raise InodeNotFoundError(f"Inode {old} is not in the index")
    existing = db.index.get(new)
    if existing is not None:
        message = f"Cannot move inode {old} to {new}: {new} is already tracked as '{existing.path}'"
        if strict:
            raise ConflictError(message)
        logger.warning(message)
        return False
    db.remap_backrefs(old, new)
    logger.info(f"Moved inode {old} to {new}")
    return True


class FixService:
    """Applies fix rules to a Database using injectable filesystem primitives."""

    def __init__(
        self,
        db: Database,
        stat: StatFn = stat_inode,
        canonicalize: CanonicalizeFn = canonicalize,
    ):
        self.db = db
        self._stat = stat
        self._canonicalize = canonicalize
        self.tags_changed = False
        self.index_changed = False
        self.outcome = FixOutcome()

    def apply(self, rules: list[FixRule]) -> tuple[bool, bool]:
        """Run rules in order. Returns (tags_changed, index_changed).

        A fatal error stops the batch; remaps already done stay applied.
        """
        for rule in rules:
            if rule.kind == "path-all":
                self.fix_all()
            elif rule.kind == "path-inode":
                self.fix_inode(rule.old)
            elif rule.kind == "path-path":
                self.fix_path(rule.old)
            else:
                self.replace(rule)
        logger.info(f"Fixed {self.outcome.applied} inode(s), skipped {self.outcome.skipped}")
        return self.tags_changed, self.index_changed

    def _remap(self, old: int, new: int, strict: bool) -> bool:
        tagged = bool(self.db.index.get(old).tags) if old in self.db.index else False
        applied = self.outcome.record(remap(self.db, old, new, strict=strict))
        if applied:
            self.index_changed = True
            self.tags_changed |= tagged
        return applied

    def fix_all(self) -> int:
        """Re-stat every stored path and remap entries whose inode changed."""
        changes: list[tuple[int, int]] = []
        for entry in self.db.index:
            if entry.unresolved:
                continue
            live, exists = self._stat(entry.path)
            if not exists or live == entry.inode:
                continue
            if live in self.db.index:
                logger.warning(
                    f"'{entry.path}' now has inode {live}, which is already tracked; skipping"
                )
                self.outcome.skipped += 1
                continue
            changes.append((entry.inode, live))

        return sum(self._remap(old, new, strict=False) for old, new in changes)

    def fix_inode(self, inode: int) -> bool:
        entry = self.db.index.get(inode)
        if entry is None:
            raise InodeNotFoundError(f"Inode {inode} is not in the index")
        return self._fix_entry(inode, entry.path)

    def fix_path(self, path: str) -> bool:
        inode = self._lookup_path(path)
        return self._fix_entry(inode, self.db.index.get(inode).path)

    def _fix_entry(self, inode: int, path: str) -> bool:
        if not path:
            raise FixError(f"Inode {inode} has no stored path to check")
        live, exists = self._stat(path)
        if not exists:
            raise FixError(f"'{path}' (inode {inode}) does not exist")
        if live == inode:
            logger.warning(f"'{path}' still has inode {inode}, nothing to fix")
            self.outcome.skipped += 1
            return False
        return self._remap(inode, live, strict=False)

    def replace(self, rule: FixRule) -> bool:
        """Manual remap: every lookup failure or collision is fatal."""
        if rule.kind in ("replace-ip", "replace-ii"):
            old = rule.old
            if old not in self.db.index:
                raise InodeNotFoundError(f"Inode {old} is not in the index")
        else:
            old = self._lookup_path(rule.old)

        if rule.kind in ("replace-ip", "replace-pp"):
            new, exists = self._stat(rule.new)
            if not exists:
                raise FixError(f"'{rule.new}' does not exist")
        else:
            new = rule.new
        return self._remap(old, new, strict=True)

    def _lookup_path(self, path: str) -> int:
        inode = self.db.index.search_path(self._canonicalize(path))
        if inode == 0:
            raise InodeNotFoundError(f"'{path}' is not in the index")
        return inode


def apply_fix(
    db: Database,
    rules: list[FixRule],
    stat: StatFn = stat_inode,
    canonicalize: CanonicalizeFn = canonicalize,
) -> tuple[bool, bool]:
    """Run fix rules against a Database. Returns (tags_changed, index_changed)."""
    return FixService(db, stat=stat, canonicalize=canonicalize).apply(rules)


# --- Flag parsing ---

FIX_FLAGS: dict[str, tuple[FixKind, str]] = {
    # flag -> (kind, operand types: i = inode, p = path)
    "-p": ("path-all", ""), "--path-all": ("path-all", ""),
    "-pi": ("path-inode", "i"), "--path-i": ("path-inode", "i"),
    "-pp": ("path-path", "p"), "--path-p": ("path-path", "p"),
    "-rip": ("replace-ip", "ip"), "--replace-ip": ("replace-ip", "ip"),
    "-rii": ("replace-ii", "ii"), "--replace-ii": ("replace-ii", "ii"),
    "-rpp": ("replace-pp", "pp"), "--replace-pp": ("replace-pp", "pp"),
    "-rpi": ("replace-pi", "pi"), "--replace-pi": ("replace-pi", "pi"),
}


def parse_fix_args(args: list[str]) -> list[FixRule]:
    """Parse fix flags into rules.

    Raises:
        FixError: On an unknown flag, a missing operand, or no flags at all
    """
    args = list(args)
    if not args:
        raise FixError("Expected a fix flag, e.g. --path-all")
    rules: list[FixRule] = []
    i = 0
    while i < len(args):
        flag = args[i]
        i += 1
        if flag not in FIX_FLAGS:
            raise FixError(f"Unrecognized fix flag '{flag}'")
        kind, operands = FIX_FLAGS[flag]
        if i + len(operands) > len(args):
            raise FixError(f"Flag '{flag}' expects {len(operands)} argument(s)")
        values: list[int | str | None] = []
        for operand in operands:
            value = args[i]
            i += 1
            if operand == "i":
                inode = parse_inode(value)
                if inode == 0:
                    raise FixError(f"Invalid inode number '{value}'")
                values.append(inode)
            else:
                values.append(value)
        values.extend([None] * (2 - len(values)))
        rules.append(FixRule(kind=kind, old=values[0], new=values[1]))
    return rules
