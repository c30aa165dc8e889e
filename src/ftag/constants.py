"""Constants shared across ftag modules."""

VERSION = "0.3.1"

# Default store locations, relative to $HOME
CONFIG_DIRECTORY = ".config/ftag"
DEFAULT_TAGS_FILENAME = "main.tags"
DEFAULT_INDEX_FILENAME = ".fileindex"

TAGS_FILE_ENV = "FTAG_TAGS_FILE"
INDEX_FILE_ENV = "FTAG_INDEX_FILE"

# Index records end with NUL + newline so paths may contain newlines
INDEX_RECORD_TERMINATOR = "\0\n"

# Characters a tag name may not contain (a name also may not start with "-")
TAG_NAME_FORBIDDEN = frozenset(" ()[]:")

# Warn levels accepted by -w/--warn
WARN_LEVEL_ALL = 1  # default
WARN_LEVEL_URGENT = 2

# Label used when grouping files that carry no tags
NO_TAGS_LABEL = "(no tags)"
NO_FILES_LABEL = "(no files)"
UNRESOLVED_LABEL = "<unresolved>"
