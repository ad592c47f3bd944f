"""Encoding and decoding of snapshot branch names."""

from __future__ import annotations

import re
from datetime import datetime

from .constants import TIMESTAMP_FORMAT, TIMESTAMP_WIDTH, WIP_PREFIX
from .errors import ErrorCode, WippyError
from .models import SnapshotBranchName

# Characters git refuses in a ref component (see git-check-ref-format), plus "/"
# because username and label must each stay a single component.
_ILLEGAL_CHARACTERS = re.compile(r"[\x00-\x20\x7f~^:?*\[\\/]")


def render_timestamp(value: datetime) -> str:
    """Render `value` as `YYYY-MM-DD-HH-MM-SS`, zero padded for any year."""
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}-"
        f"{value.hour:02d}-{value.minute:02d}-{value.second:02d}"
    )


def identifier_problem(value: str) -> str | None:
    """Return why `value` cannot be used inside a branch name, or None."""
    if not value:
        return "must not be empty"
    if _ILLEGAL_CHARACTERS.search(value):
        return "contains whitespace, '/' or a character reserved by git"
    if ".." in value or "@{" in value:
        return "contains '..' or '@{'"
    if value == "@":
        return "must not be '@'"
    if value.startswith("."):
        return "must not start with '.'"
    if value.endswith(".") or value.endswith(".lock"):
        return "must not end with '.' or '.lock'"
    return None


class BranchNameCodec:
    """Maps (username, timestamp, label) to `wip/<user>/<timestamp>[-label]` and back."""

    def __init__(self, prefix: str = WIP_PREFIX) -> None:
        self.prefix = prefix

    def encode(
        self,
        username: str,
        timestamp: datetime,
        label: str | None = None,
    ) -> str:
        name = SnapshotBranchName(username=username, timestamp=timestamp, label=label)
        self._validate("username", name.username)
        if name.label is not None:
            self._validate("label", name.label)

        rendered = render_timestamp(name.timestamp)
        if name.label is not None:
            rendered = f"{rendered}-{name.label}"
        return f"{self.prefix}/{name.username}/{rendered}"

    def decode(self, branch_name: str) -> SnapshotBranchName | None:
        parts = branch_name.split("/", 2)
        if len(parts) != 3 or parts[0] != self.prefix:
            return None
        username, rest = parts[1], parts[2]
        if identifier_problem(username) is not None:
            return None

        stamp = rest[:TIMESTAMP_WIDTH]
        try:
            timestamp = datetime.strptime(stamp, TIMESTAMP_FORMAT)
        except ValueError:
            return None
        if render_timestamp(timestamp) != stamp:
            return None

        label: str | None = None
        suffix = rest[TIMESTAMP_WIDTH:]
        if suffix:
            if not suffix.startswith("-") or len(suffix) == 1:
                return None
            label = suffix[1:]
            if identifier_problem(label) is not None:
                return None

        return SnapshotBranchName(username=username, timestamp=timestamp, label=label)

    def user_prefix(self, username: str) -> str:
        return f"{self.prefix}/{username}/"

    def _validate(self, field_name: str, value: str) -> None:
        problem = identifier_problem(value)
        if problem is not None:
            raise WippyError(
                ErrorCode.INVALID_IDENTIFIER,
                f"Invalid {field_name} '{value}': {problem}",
                f"Pick a {field_name} made of letters, digits, '.', '_' or '-'.",
                {"field": field_name, "value": value},
            )
