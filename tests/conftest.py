"""Shared test fixtures and helpers for ftag tests."""

import os
from pathlib import Path

import pytest

from ftag.database import Database


SAMPLE_INDEX = (
    "5:/home/user/docs/report.txt\0\n"
    "7:/home/user/docs/notes.md\0\n"
    "9:/home/user/music/song.mp3\0\n"
    "11:\0\n"
)

SAMPLE_TAGS = (
    "media (#00ff00)\n"
    "music: media\n"
    "  -9\n"
    "work\n"
    "  -5\n"
    "  -7\n"
    "drafts [d]: work\n"
    "  -7\n"
)


class FakeFilesystem:
    """A path -> inode table standing in for stat()."""

    def __init__(self, table: dict[str, int] | None = None):
        self.table = dict(table or {})

    def stat(self, path: str) -> tuple[int, bool]:
        if path in self.table:
            return self.table[path], True
        return 0, False

    @staticmethod
    def canonicalize(path: str) -> str:
        return path


# --- Fixtures ---


@pytest.fixture
def db():
    """Provide a Database with a few tags and files, not backed by files."""
    return Database.from_text(SAMPLE_TAGS, SAMPLE_INDEX)


@pytest.fixture
def store_files(tmp_path):
    """Provide (tags_path, index_path) holding the sample stores."""
    tags_path = tmp_path / "main.tags"
    index_path = tmp_path / ".fileindex"
    tags_path.write_text(SAMPLE_TAGS)
    index_path.write_text(SAMPLE_INDEX)
    return tags_path, index_path


@pytest.fixture
def file_db(store_files):
    """Provide a Database loaded from files, so persist() works."""
    return Database.load(*store_files)


@pytest.fixture
def fake_fs():
    """Provide a FakeFilesystem matching the sample index."""
    return FakeFilesystem({
        "/home/user/docs/report.txt": 5,
        "/home/user/docs/notes.md": 7,
        "/home/user/music/song.mp3": 9,
    })


@pytest.fixture
def make_tree(tmp_path):
    """Provide a helper that creates empty files under tmp_path/tree."""

    def _make(files: list[str]) -> Path:
        root = tmp_path / "tree"
        root.mkdir(exist_ok=True)
        for name in files:
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")
        return Path(os.path.realpath(root))

    return _make
