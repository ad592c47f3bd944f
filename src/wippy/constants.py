"""Project-wide constants for git-wippy."""

WIP_PREFIX = "wip"
DEFAULT_REMOTE = "origin"

TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"
TIMESTAMP_WIDTH = 19

METADATA_SCHEMA_VERSION = 1
TRAILER_PREFIX = "Wippy-"
COMMIT_SUBJECT = "chore: saving work in progress"
INDEX_COMMIT_SUBJECT = "chore: staged work in progress"

AUTOSTASH_PREFIX = "wippy-autostash"
SCRATCH_INDEX_NAME = "wippy-index"
