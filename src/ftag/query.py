"""Read-only search over the tag graph and file index.

A query is an ordered list of include/exclude rules. Each rule writes
returned/matched flags for the tags and files it selects, so a later rule
overrides an earlier one for the entities they share.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from .database import Database
from .errors import InodeNotFoundError, QueryError
from .models import MatchMode, RuleTarget, SearchRule, parse_inode

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Per-entity flags. Every tag and every tracked inode has an entry.

    returned: the entity belongs in the output.
    matched: the entity was selected directly by a rule, not pulled in.
    """

    returned_tags: dict[str, bool] = field(default_factory=dict)
    matched_tags: dict[str, bool] = field(default_factory=dict)
    returned_files: dict[int, bool] = field(default_factory=dict)
    matched_files: dict[int, bool] = field(default_factory=dict)

    def tag_ids(self) -> list[str]:
        return [tid for tid, returned in self.returned_tags.items() if returned]

    def inodes(self) -> list[int]:
        return [ino for ino, returned in self.returned_files.items() if returned]


def _compile_matcher(rule: SearchRule) -> Callable[[str], bool]:
    text = rule.text
    if rule.mode == "regex":
        try:
            pattern = re.compile(text)
        except re.error as e:
            raise QueryError(f"Invalid regex '{text}': {e}") from e
        return lambda subject: pattern.search(subject) is not None
    if rule.mode == "substring":
        return lambda subject: text in subject
    return lambda subject: subject == text


class QueryService:
    """Runs search rules against a Database without mutating it."""

    def __init__(self, db: Database):
        self.db = db

    def run(self, rules: list[SearchRule], search_path: bool = False) -> QueryResult:
        """Apply rules in order and return the result maps.

        Raises:
            InodeNotFoundError: If an inode rule names an untracked inode
            QueryError: If a regex rule does not compile
        """
        tags, index = self.db.tags, self.db.index
        if not rules:
            rules = [SearchRule(target="all-list")]
        for rule in rules:
            if rule.target == "inode" and rule.inode not in index:
                raise InodeNotFoundError(f"Inode {rule.inode} is not in the index")
        matchers = [
            _compile_matcher(rule) if rule.target in ("tag", "file", "all") else None
            for rule in rules
        ]

        result = QueryResult(
            returned_tags={t.id: False for t in tags},
            matched_tags={t.id: False for t in tags},
            returned_files={e.inode: False for e in index},
            matched_files={e.inode: False for e in index},
        )

        for rule, matches in zip(rules, matchers):
            value = not rule.exclude
            if rule.target == "all-list":
                for tid in result.returned_tags:
                    result.returned_tags[tid] = result.matched_tags[tid] = value
                for ino in result.returned_files:
                    result.returned_files[ino] = result.matched_files[ino] = value
            elif rule.target == "inode":
                result.returned_files[rule.inode] = value
            elif rule.target == "file":
                for entry in index:
                    subject = entry.path if search_path else entry.filename
                    if matches(subject):
                        result.returned_files[entry.inode] = value
                        result.matched_files[entry.inode] = value
            else:
                self._apply_tag_rule(rule.target, matches, value, result)

        # Tags carried by any returned file are part of the output too
        for ino, returned in result.returned_files.items():
            if returned:
                for tid in index.get(ino).tags:
                    result.returned_tags[tid] = True

        logger.debug(f"Query returned {len(result.tag_ids())} tags, {len(result.inodes())} files")
        return result

    def _apply_tag_rule(
        self,
        target: RuleTarget,
        matches: Callable[[str], bool],
        value: bool,
        result: QueryResult,
    ) -> None:
        tags = self.db.tags
        for tag in tags:
            if not tag.enabled or not matches(tag.name):
                continue
            result.matched_tags[tag.id] = value
            visit = tags.closure(tag.id) if target == "all" else [tag.id]
            for tid in visit:
                result.returned_tags[tid] = value
                for ino in tags.tags[tid].files:
                    if ino in result.returned_files:
                        result.returned_files[ino] = value


def run_query(db: Database, rules: list[SearchRule], search_path: bool = False) -> QueryResult:
    """Run search rules against a Database."""
    return QueryService(db).run(rules, search_path)


# --- Flag parsing ---

RULE_FLAGS: dict[str, tuple[RuleTarget, bool]] = {
    "t": ("tag", False), "tag": ("tag", False),
    "te": ("tag", True), "tag-exclude": ("tag", True),
    "f": ("file", False), "file": ("file", False),
    "fe": ("file", True), "file-exclude": ("file", True),
    "a": ("all", False), "all": ("all", False),
    "ae": ("all", True), "all-exclude": ("all", True),
    "al": ("all-list", False), "all-list": ("all-list", False),
    "ale": ("all-list", True), "all-list-exclude": ("all-list", True),
    "i": ("inode", False), "inode": ("inode", False),
    "ie": ("inode", True), "inode-exclude": ("inode", True),
}

MODE_SUFFIXES: dict[str, MatchMode] = {"s": "substring", "r": "regex"}


def _split_flag(arg: str) -> tuple[RuleTarget, bool, MatchMode]:
    """Resolve '-ts', '--tag-exclude-r' and friends to (target, exclude, mode)."""
    if arg.startswith("--"):
        body = arg[2:]
        if body in RULE_FLAGS:
            return (*RULE_FLAGS[body], "exact")
        base, dash, suffix = body[:-2], body[-2:-1], body[-1:]
        if dash != "-":
            raise QueryError(f"Unrecognized search flag '{arg}'")
    elif arg.startswith("-"):
        body = arg[1:]
        if body in RULE_FLAGS:
            return (*RULE_FLAGS[body], "exact")
        base, suffix = body[:-1], body[-1:]
    else:
        raise QueryError(f"Unexpected argument '{arg}'")

    if base not in RULE_FLAGS or suffix not in MODE_SUFFIXES:
        raise QueryError(f"Unrecognized search flag '{arg}'")
    target, exclude = RULE_FLAGS[base]
    if target not in ("tag", "file", "all"):
        raise QueryError(f"Flag '{arg}': only tag, file and all rules take a match mode")
    return target, exclude, MODE_SUFFIXES[suffix]


def parse_rule_args(args: list[str]) -> tuple[list[SearchRule], bool]:
    """Parse search flags into (rules, search_path).

    Raises:
        QueryError: On an unknown flag or a flag missing its value
    """
    rules: list[SearchRule] = []
    search_path = False
    args = list(args)
    i = 0
    while i < len(args):
        arg = args[i]
        i += 1
        if arg == "--search-file-path":
            search_path = True
            continue
        if arg == "--search-file-name":
            search_path = False
            continue

        target, exclude, mode = _split_flag(arg)
        if target == "all-list":
            rules.append(SearchRule(target=target, exclude=exclude))
            continue
        if i >= len(args):
            raise QueryError(f"Flag '{arg}' expects a value")
        value = args[i]
        i += 1
        if target == "inode":
            inode = parse_inode(value)
            if inode == 0:
                raise QueryError(f"Invalid inode number '{value}'")
            rules.append(SearchRule(target=target, exclude=exclude, inode=inode))
        else:
            rules.append(SearchRule(target=target, exclude=exclude, mode=mode, text=value))
    return rules, search_path
