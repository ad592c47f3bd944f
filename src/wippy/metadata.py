"""Snapshot metadata stored in the commit message of a snapshot branch tip."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .constants import COMMIT_SUBJECT, METADATA_SCHEMA_VERSION, TRAILER_PREFIX
from .errors import ErrorCode, WippyError
from .models import SnapshotMetadata

TRUE_VALUES = {"1", "true", "yes", "on"}

SOURCE_LINE = "Source branch: "
SECTION_HEADERS = {
    "Staged changes:": "staged",
    "Changes:": "unstaged",
    "Untracked:": "untracked",
}

_TRAILER_FIELDS = {
    "Schema": "schema_version",
    "Source-Branch": "source_branch",
    "Base-Commit": "base_commit",
    "Index-Tree": "index_tree",
    "Had-Staged": "had_staged",
    "Had-Unstaged": "had_unstaged",
    "Had-Untracked": "had_untracked",
    "Created-At": "created_at",
}
_BOOL_FIELDS = {"had_staged", "had_unstaged", "had_untracked"}


def render_body(metadata: SnapshotMetadata) -> str:
    """Render the subject and the human readable path sections."""
    lines = [COMMIT_SUBJECT, "", f"{SOURCE_LINE}{metadata.source_branch}"]
    for header, attribute in SECTION_HEADERS.items():
        paths = getattr(metadata, attribute)
        if paths:
            lines.append(header)
            lines.extend(f"\t{path}" for path in paths)
    return "\n".join(lines)


def render_trailers(metadata: SnapshotMetadata) -> dict[str, str]:
    created_at = metadata.created_at.isoformat() if metadata.created_at else ""
    values: dict[str, Any] = {
        "schema_version": metadata.schema_version,
        "source_branch": metadata.source_branch,
        "base_commit": metadata.base_commit,
        "index_tree": metadata.index_tree,
        "had_staged": metadata.had_staged,
        "had_unstaged": metadata.had_unstaged,
        "had_untracked": metadata.had_untracked,
        "created_at": created_at,
    }
    trailers: dict[str, str] = {}
    for key, attribute in _TRAILER_FIELDS.items():
        value = values[attribute]
        if isinstance(value, bool):
            value = "true" if value else "false"
        trailers[f"{TRAILER_PREFIX}{key}"] = str(value)
    return trailers


def render_commit_message(metadata: SnapshotMetadata) -> str:
    trailers = render_trailers(metadata)
    trailer_block = "\n".join(f"{key}: {value}" for key, value in trailers.items())
    return f"{render_body(metadata)}\n\n{trailer_block}\n"


def parse_commit_message(message: str) -> SnapshotMetadata:
    """Decode snapshot metadata from a tip commit message.

    Messages written by older releases carry no trailers; their metadata is
    rebuilt from the "Source branch" line and the path sections.
    """
    trailers = _parse_trailers(message)
    source_branch, sections = _parse_body(message)

    if f"{TRAILER_PREFIX}Schema" not in trailers and source_branch is None:
        raise WippyError(
            ErrorCode.INVALID_SNAPSHOT,
            "Commit message does not describe a WIP snapshot",
            "Only branches created by git-wippy can be restored.",
        )

    fields: dict[str, Any] = {
        "schema_version": METADATA_SCHEMA_VERSION,
        "source_branch": source_branch or "",
        "staged": sections["staged"],
        "unstaged": sections["unstaged"],
        "untracked": sections["untracked"],
        "had_staged": bool(sections["staged"]),
        "had_unstaged": bool(sections["unstaged"]),
        "had_untracked": bool(sections["untracked"]),
    }
    if f"{TRAILER_PREFIX}Schema" not in trailers:
        fields["schema_version"] = 0

    for key, attribute in _TRAILER_FIELDS.items():
        raw = trailers.get(f"{TRAILER_PREFIX}{key}")
        if raw is None or raw == "":
            continue
        if attribute in _BOOL_FIELDS:
            fields[attribute] = raw.lower() in TRUE_VALUES
        elif attribute == "schema_version":
            try:
                fields[attribute] = int(raw)
            except ValueError:
                continue
        elif attribute == "created_at":
            try:
                fields[attribute] = datetime.fromisoformat(raw)
            except ValueError:
                continue
        else:
            fields[attribute] = raw

    if not fields["source_branch"]:
        raise WippyError(
            ErrorCode.INVALID_SNAPSHOT,
            "Snapshot metadata does not record a source branch",
            "The snapshot commit message was edited or truncated.",
        )
    return SnapshotMetadata(**fields)


def _parse_trailers(message: str) -> dict[str, str]:
    paragraphs = [block for block in message.strip().split("\n\n") if block.strip()]
    if len(paragraphs) < 2:
        return {}
    trailers: dict[str, str] = {}
    for line in paragraphs[-1].splitlines():
        key, separator, value = line.partition(":")
        if not separator or not key.startswith(TRAILER_PREFIX):
            continue
        trailers[key.strip()] = value.strip()
    return trailers


def _parse_body(message: str) -> tuple[str | None, dict[str, tuple[str, ...]]]:
    source_branch: str | None = None
    collected: dict[str, list[str]] = {name: [] for name in SECTION_HEADERS.values()}
    section: str | None = None

    for line in message.splitlines():
        stripped = line.strip()
        if stripped.startswith(SOURCE_LINE.strip()) and source_branch is None:
            source_branch = stripped[len(SOURCE_LINE.strip()):].strip()
            section = None
        elif stripped in SECTION_HEADERS:
            section = SECTION_HEADERS[stripped]
        elif line.startswith("\t") and section is not None:
            if stripped:
                collected[section].append(stripped)
        else:
            section = None

    return source_branch, {name: tuple(paths) for name, paths in collected.items()}
