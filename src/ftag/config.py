"""Locating the tag file and the file index."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .constants import (
    CONFIG_DIRECTORY,
    DEFAULT_INDEX_FILENAME,
    DEFAULT_TAGS_FILENAME,
    INDEX_FILE_ENV,
    TAGS_FILE_ENV,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorePaths:
    tags_file: Path
    index_file: Path


def _default(filename: str, home: Path) -> Path:
    """Default store file under ~/.config/ftag, created empty if missing."""
    path = home / CONFIG_DIRECTORY / filename
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch()
        logger.info(f"Created {path}")
    return path


def resolve_paths(
    tags_file: str | Path | None = None,
    index_file: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> StorePaths:
    """Resolve store paths: explicit argument, then environment, then default.

    Only the default locations are created. An explicit or environment path
    that does not exist yet is read as empty and created on the first write.
    """
    env = os.environ if env is None else env
    home = Path.home() if home is None else home

    tags_file = tags_file or env.get(TAGS_FILE_ENV)
    index_file = index_file or env.get(INDEX_FILE_ENV)
    return StorePaths(
        tags_file=Path(tags_file).expanduser() if tags_file else _default(DEFAULT_TAGS_FILENAME, home),
        index_file=Path(index_file).expanduser() if index_file else _default(DEFAULT_INDEX_FILENAME, home),
    )
