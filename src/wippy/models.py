"""Pydantic models for git-wippy inputs, outputs and snapshot records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import METADATA_SCHEMA_VERSION


def _second_precision(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.replace(microsecond=0)


class Locality(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    BOTH = "both"


class Scope(str, Enum):
    MINE = "mine"
    ALL = "all"


class EventKind(str, Enum):
    """Outcome events emitted by the orchestrators, rendered by the caller."""

    SAVING_WIP = "saving-wip"
    NOTHING_TO_SAVE = "nothing-to-save"
    STAGED_ALL_CHANGES = "staged-all-changes"
    COMMITTED_CHANGES = "committed-changes"
    CREATED_BRANCH = "created-branch"
    PUSHED_CHANGES = "pushed-changes"
    SKIPPED_PUSH_NO_REMOTE = "skipped-push-no-remote"
    SKIPPED_PUSH_LOCAL = "skipped-push-local"
    SWITCHED_BACK = "switched-back"
    WIP_BRANCH_CREATED = "wip-branch-created"
    NO_WIP_BRANCHES = "no-wip-branches"
    FOUND_WIP_BRANCHES = "found-wip-branches"
    REMOTE_LIST_FAILED = "remote-list-failed"
    RESTORING_WIP = "restoring-wip"
    FETCHED_BRANCH = "fetched-branch"
    STASHED_EXISTING_CHANGES = "stashed-existing-changes"
    CHECKED_OUT_BRANCH = "checked-out-branch"
    CREATED_SOURCE_BRANCH = "created-source-branch"
    APPLIED_CHANGES = "applied-changes"
    RECREATED_FILE_STATES = "recreated-file-states"
    RESTORED_EXISTING_CHANGES = "restored-existing-changes"
    DELETED_LOCAL_BRANCH = "deleted-local-branch"
    DELETED_REMOTE_BRANCH = "deleted-remote-branch"
    LOCAL_DELETE_FAILED = "local-delete-failed"
    REMOTE_DELETE_FAILED = "remote-delete-failed"
    KEPT_REMOTE_BRANCH = "kept-remote-branch"
    RESTORE_COMPLETE = "restore-complete"
    DELETE_COMPLETE = "delete-complete"
    NO_BRANCHES_SELECTED = "no-branches-selected"
    OPERATION_CANCELLED = "operation-cancelled"
    ROLLED_BACK_STEP = "rolled-back-step"


class OutcomeEvent(BaseModel):
    kind: EventKind
    branch: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class SnapshotBranchName(BaseModel):
    """Structured form of a `wip/<user>/<timestamp>[-label]` branch name."""

    model_config = ConfigDict(frozen=True)

    username: str
    timestamp: datetime
    label: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _truncate_timestamp(cls, value: datetime) -> datetime:
        return _second_precision(value)

    @field_validator("label")
    @classmethod
    def _empty_label_is_none(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        return value


class SnapshotMetadata(BaseModel):
    """Metadata recorded in the tip commit of a snapshot branch.

    `base_commit` and `index_tree` are empty for legacy snapshots, whose
    commit message only carries the human readable path sections.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: int = METADATA_SCHEMA_VERSION
    source_branch: str
    base_commit: str = ""
    index_tree: str = ""
    had_staged: bool = False
    had_unstaged: bool = False
    had_untracked: bool = False
    created_at: datetime | None = None
    staged: tuple[str, ...] = ()
    unstaged: tuple[str, ...] = ()
    untracked: tuple[str, ...] = ()

    @field_validator("created_at")
    @classmethod
    def _truncate_created_at(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return _second_precision(value)

    @property
    def is_legacy(self) -> bool:
        return not self.index_tree


class SnapshotBranch(BaseModel):
    name: str
    username: str
    timestamp: datetime
    label: str | None = None
    locality: Locality

    @property
    def is_local(self) -> bool:
        return self.locality in (Locality.LOCAL, Locality.BOTH)

    @property
    def is_remote(self) -> bool:
        return self.locality in (Locality.REMOTE, Locality.BOTH)


class SaveRequest(BaseModel):
    directory: str = "."
    local: bool = False
    username: str | None = None
    timestamp: datetime | None = None
    label: str | None = Field(default=None, max_length=100)


class ListRequest(BaseModel):
    directory: str = "."
    scope: Scope = Scope.MINE
    include_remote: bool = True


class RestoreRequest(BaseModel):
    directory: str = "."
    branch: str | None = None
    autostash: bool = False
    force: bool = False
    all_users: bool = False


class DeleteRequest(BaseModel):
    directory: str = "."
    branches: list[str] = Field(default_factory=list)
    all: bool = False
    include_remote: bool | None = None
    force: bool = False
    all_users: bool = False

    @field_validator("branches")
    @classmethod
    def _strip_branches(cls, value: list[str]) -> list[str]:
        stripped = [item.strip() for item in value if item.strip()]
        return list(dict.fromkeys(stripped))


class BaseToolResponse(BaseModel):
    status: Literal["success", "error", "cancelled", "partial"]
    message: str = ""
    error_code: str = ""
    suggestion: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    events: list[OutcomeEvent] = Field(default_factory=list)
    completed_steps: list[str] = Field(default_factory=list)


class SaveResponse(BaseToolResponse):
    saved: bool = False
    branch_name: str = ""
    source_branch: str = ""
    pushed: bool = False
    staged: list[str] = Field(default_factory=list)
    unstaged: list[str] = Field(default_factory=list)
    untracked: list[str] = Field(default_factory=list)


class ListResponse(BaseToolResponse):
    username: str = ""
    scope: Scope = Scope.MINE
    count: int = 0
    branches: list[SnapshotBranch] = Field(default_factory=list)


class RestoreResponse(BaseToolResponse):
    branch_name: str = ""
    source_branch: str = ""
    staged: list[str] = Field(default_factory=list)
    unstaged: list[str] = Field(default_factory=list)
    untracked: list[str] = Field(default_factory=list)
    stash_reapplied: bool = False
    remote_deleted: bool = False


class BranchDeletion(BaseModel):
    name: str
    local_deleted: bool = False
    remote_deleted: bool = False
    local_error: str = ""
    remote_error: str = ""


class DeleteResponse(BaseToolResponse):
    count: int = 0
    remote: bool = False
    deletions: list[BranchDeletion] = Field(default_factory=list)
