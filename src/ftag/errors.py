"""Exception taxonomy for ftag.

Every error derives from FtagError, which is itself a ValueError so callers
that catch ValueError around store operations keep working.
"""


class FtagError(ValueError):
    """Base class for all fatal ftag errors."""


class ParseError(FtagError):
    """Malformed tag file or index file."""

    def __init__(self, source: str, line: int | None, message: str):
        self.source = source
        self.line = line
        where = f'"{source}" line {line}' if line is not None else f'"{source}"'
        super().__init__(f"{where}: {message}")


class TagNotFoundError(FtagError):
    """A tag name did not resolve to a tag."""


class InodeNotFoundError(FtagError):
    """An inode number (or a path searched in the index) is not tracked."""


class PathNotFoundError(FtagError):
    """A path given on the command line does not exist on disk."""


class ConflictError(FtagError):
    """A name or inode would collide with an existing tag or entry."""


class QueryError(FtagError):
    """Bad search flags or an uncompilable pattern."""


class FixError(FtagError):
    """Bad fix flags, or a fix that cannot be carried out."""


class InvalidNameError(FtagError):
    """A tag name is empty, starts with '-', or has a reserved character."""
