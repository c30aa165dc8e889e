"""ftag - a local file-tagging index keyed by inode."""

from .constants import VERSION as __version__
from .database import Database, load_stores
from .fix import apply_fix, remap
from .query import QueryResult, run_query

__all__ = [
    "__version__",
    "Database",
    "QueryResult",
    "apply_fix",
    "load_stores",
    "remap",
    "run_query",
]
