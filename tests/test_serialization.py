"""Tests for reading and writing the tag file and the file index."""

import logging
import re

import pytest

from ftag.errors import ParseError
from ftag.serialization import (
    dump_index,
    dump_tags,
    parse_index,
    parse_tags,
    read_index_file,
    read_tags_file,
    write_index_file,
    write_tags_file,
)


# ─────────────────────────────────────────────────────────────────────────────
# Tag file
# ─────────────────────────────────────────────────────────────────────────────


class TestParseTags:
    """Parsing the tag file grammar."""

    def test_forward_reference_resolves(self):
        """A supertag declared later in the file is linked after the read."""
        store = parse_tags("work: project\nproject\n")
        work, project = store.require("work"), store.require("project")
        assert work.supers == [project.id]
        assert project.subs == [work.id]

    def test_header_state_and_color(self):
        """State list and color are read from the header."""
        store = parse_tags("photos [d] (#FF0000): media\nmedia\n")
        photos = store.require("photos")
        assert photos.enabled is False
        assert photos.color.to_hex() == "#ff0000"

    def test_state_list_last_entry_wins(self):
        """The last e/d in a state list decides; unknown states are ignored."""
        store = parse_tags("a [d,e]\nb [e,d]\nc [x]\n")
        assert store.require("a").enabled is True
        assert store.require("b").enabled is False
        assert store.require("c").enabled is True

    def test_unclosed_bracket_before_color_is_cut(self):
        """With a color present, the name still ends at a lone '['."""
        store = parse_tags("a[(#ff0000)\n")
        tag = store.require("a")
        assert tag.color.to_hex() == "#ff0000"
        assert tag.enabled is True

    def test_whitespace_in_header_is_ignored(self):
        """All whitespace is stripped from the header, including inside the name."""
        store = parse_tags("  my tag ( #00ff00 ) :  other\nother\n")
        tag = store.require("mytag")
        assert tag.color.to_hex() == "#00ff00"
        assert store.names(tag.supers) == ["other"]

    def test_inode_lines(self):
        """Inode lines accept any base and drop repeats."""
        store = parse_tags("work\n  -5\n  - 7\n  -0x10\n  -5\n")
        assert store.require("work").files == [5, 7, 16]

    def test_blank_lines_are_ignored(self):
        store = parse_tags("\n\n  \nwork\n\n  -5\n\n")
        assert store.require("work").files == [5]

    def test_self_loop_and_cycle(self):
        """Self-loops and cycles are legal and stay symmetric."""
        store = parse_tags("a: a b\nb: a\n")
        a, b = store.require("a"), store.require("b")
        assert a.id in a.supers and a.id in a.subs
        assert b.id in a.supers and a.id in b.supers
        assert store.check_consistency() == []

    def test_empty_super_list_warns(self, caplog):
        """A trailing ':' with nothing after it only warns."""
        with caplog.at_level(logging.WARNING, logger="ftag.serialization"):
            store = parse_tags("work:\n")
        assert store.require("work").supers == []
        assert "no supertags" in caplog.text

    def test_links_tracked_inodes_only(self):
        """Only inodes in the index get the tag recorded on their entry."""
        index = parse_index("5:/a\0\n")
        store = parse_tags("work\n  -5\n  -6\n", index)
        work = store.require("work")
        assert work.files == [5, 6]
        assert index.get(5).tags == [work.id]

    @pytest.mark.parametrize("text, message", [
        ("  -5\n", "outside of a tag"),
        ("work\n  -0\n", "invalid inode"),
        ("work\n  -abc\n", "invalid inode"),
        ("work\nwork\n", "declared twice"),
        ("work: missing\n", "never declared"),
        ("a ]d[\n", "']' found before '['"),
        ("a )ff0000(\n", "')' found before '('"),
        ("a (#ff00)\n", "invalid color"),
        ("(#ff0000)\n", "empty"),
        ("a[b\n", "illegal characters"),
    ])
    def test_fatal_errors(self, text, message):
        """Malformed lines raise ParseError."""
        with pytest.raises(ParseError, match=re.escape(message)):
            parse_tags(text, source="main.tags")

    def test_error_names_file_and_line(self):
        """ParseError carries the source and the 1-based line."""
        with pytest.raises(ParseError) as excinfo:
            parse_tags("work\n\nwork\n", source="main.tags")
        assert excinfo.value.line == 3
        assert '"main.tags" line 3' in str(excinfo.value)


class TestDumpTags:
    """Writing the tag file."""

    def test_dump_format(self):
        """Headers are normalized: lowercase color, '[d]' only when disabled."""
        store = parse_tags("media (#00FF00)\nmusic [d]: media\n  -9\n  -4\n")
        assert dump_tags(store) == (
            "media (#00ff00)\n"
            "music [d]: media\n"
            "  -9\n"
            "  -4\n"
        )

    def test_dump_then_parse_preserves_graph(self, db):
        """Dumping and re-reading keeps names, edges, files, state and color."""
        store = parse_tags(dump_tags(db.tags))
        assert [t.name for t in store] == [t.name for t in db.tags]
        for tag in db.tags:
            again = store.require(tag.name)
            assert store.names(again.supers) == db.tags.names(tag.supers)
            assert again.files == tag.files
            assert again.enabled == tag.enabled
            assert again.color == tag.color

    def test_dangling_inodes_are_kept(self):
        """Inodes the index does not track are still written."""
        index = parse_index("")
        store = parse_tags("work\n  -42\n", index)
        assert "-42" in dump_tags(store)


# ─────────────────────────────────────────────────────────────────────────────
# File index
# ─────────────────────────────────────────────────────────────────────────────


class TestIndex:
    """Parsing and writing the file index."""

    def test_parse(self):
        """Records load in any order and iterate by inode."""
        index = parse_index("7:/b\0\n5:/a\0\n")
        assert [e.inode for e in index] == [5, 7]
        assert index.get(7).path == "/b"

    def test_path_may_contain_colons_and_newlines(self):
        """Only the first ':' splits; NUL+newline ends the record."""
        index = parse_index("5:/a:b\nc\0\n")
        assert index.get(5).path == "/a:b\nc"

    def test_empty_path_warns(self, caplog):
        """An empty path is unresolved and points at the update command."""
        with caplog.at_level(logging.WARNING, logger="ftag.serialization"):
            index = parse_index("5:\0\n")
        assert index.get(5).unresolved
        assert "update command" in caplog.text

    def test_later_duplicate_replaces_earlier(self):
        """A repeated inode keeps the last record."""
        index = parse_index("5:/old\0\n5:/new\0\n")
        assert len(index) == 1
        assert index.get(5).path == "/new"

    @pytest.mark.parametrize("text, message", [
        ("/no/colon\0\n", "expected"),
        ("0:/zero\0\n", "invalid inode"),
        ("x:/bad\0\n", "invalid inode"),
    ])
    def test_fatal_errors(self, text, message):
        """Records without a ':' or with a bad inode raise ParseError."""
        with pytest.raises(ParseError, match=message):
            parse_index(text)

    def test_dump_sorted_by_inode(self):
        index = parse_index("9:/c\0\n5:/a\0\n7:\0\n")
        assert dump_index(index) == "5:/a\0\n7:\0\n9:/c\0\n"


class TestFiles:
    """Whole-file I/O."""

    def test_missing_files_read_as_empty(self, tmp_path):
        """A store file that does not exist yet reads as empty."""
        index = read_index_file(tmp_path / "nope")
        assert len(index) == 0
        assert len(read_tags_file(tmp_path / "nope", index)) == 0

    def test_write_then_read(self, tmp_path, db):
        """Both files survive a write and read back unchanged."""
        write_index_file(tmp_path / "idx", db.index)
        write_tags_file(tmp_path / "tags", db.tags)
        index = read_index_file(tmp_path / "idx")
        store = read_tags_file(tmp_path / "tags", index)
        assert dump_index(index) == dump_index(db.index)
        assert dump_tags(store) == dump_tags(db.tags)

    def test_undecodable_path_round_trips(self, tmp_path):
        """Path bytes that are not valid UTF-8 come back byte for byte."""
        raw = b"5:/tmp/caf\xe9\x00\n"
        (tmp_path / "idx").write_bytes(raw)
        index = read_index_file(tmp_path / "idx")
        write_index_file(tmp_path / "out", index)
        assert (tmp_path / "out").read_bytes() == raw
