"""Save orchestration: turn a dirty working tree into a snapshot branch."""

from __future__ import annotations

import logging
from datetime import datetime

from .constants import INDEX_COMMIT_SUBJECT
from .context import WipContext
from .errors import ErrorCode, WippyError
from .metadata import render_body, render_trailers
from .models import EventKind, SaveResponse, SnapshotMetadata
from .snapshot import WorkingTreeSnapshot
from .trail import OperationTrail

logger = logging.getLogger(__name__)


class SaveOrchestrator:
    """Stage, commit, optionally push, and leave the user's tree as it was.

    The snapshot is assembled from a scratch copy of the index, so HEAD, the
    real index and the working tree are never modified.
    """

    def __init__(self, context: WipContext) -> None:
        self.context = context
        self.snapshot = WorkingTreeSnapshot(context.repository)

    def save(
        self,
        *,
        push: bool = True,
        timestamp: datetime | None = None,
        label: str | None = None,
    ) -> SaveResponse:
        repository = self.context.repository
        trail = OperationTrail("save")
        trail.emit(EventKind.SAVING_WIP)

        source_branch = repository.current_branch()
        state = self.snapshot.capture()
        if state.is_empty:
            trail.emit(EventKind.NOTHING_TO_SAVE, source_branch)
            return SaveResponse(
                status="success",
                message="Nothing to save",
                source_branch=source_branch,
                events=trail.events,
            )

        moment = (timestamp or self.context.clock()).replace(microsecond=0)
        branch_name = self.context.codec.encode(self.context.username, moment, label)
        if repository.resolve_commit(f"refs/heads/{branch_name}") is not None:
            raise WippyError(
                ErrorCode.BRANCH_EXISTS,
                f"WIP branch '{branch_name}' already exists",
                "Wait a second or pass a label to make the name unique.",
                {"branch": branch_name},
            )

        base_commit = trail.run("resolve-head", repository.head_commit)
        metadata = SnapshotMetadata(
            source_branch=source_branch,
            base_commit=base_commit,
            had_staged=bool(state.staged),
            had_unstaged=bool(state.unstaged),
            had_untracked=bool(state.untracked),
            created_at=moment,
            staged=state.staged,
            unstaged=state.unstaged,
            untracked=state.untracked,
        )

        pushed = False
        try:
            index_tree, full_tree = trail.run("stage", self._stage)
            trail.emit(EventKind.STAGED_ALL_CHANGES)
            metadata = metadata.model_copy(update={"index_tree": index_tree})

            snapshot_commit = trail.run(
                "commit", lambda: self._commit(metadata, index_tree, full_tree, base_commit)
            )
            trail.emit(EventKind.COMMITTED_CHANGES, commit=snapshot_commit)

            trail.run(
                "create-branch",
                lambda: repository.create_branch(branch_name, snapshot_commit),
                compensate=lambda: repository.delete_branch(branch_name, local=True),
                residual=f"snapshot branch '{branch_name}' still exists locally",
            )
            trail.emit(EventKind.CREATED_BRANCH, branch_name)

            if not push:
                trail.emit(EventKind.SKIPPED_PUSH_LOCAL, branch_name)
            elif not trail.run("check-remote", repository.has_remote):
                trail.emit(EventKind.SKIPPED_PUSH_NO_REMOTE, branch_name, remote=repository.remote)
            else:
                trail.run("push", lambda: repository.push(branch_name))
                pushed = True
                trail.emit(EventKind.PUSHED_CHANGES, branch_name, remote=repository.remote)

            trail.run("switch-back", lambda: self._ensure_on(source_branch, base_commit))
            trail.emit(EventKind.SWITCHED_BACK, source_branch)
        except (Exception, KeyboardInterrupt) as exc:
            raise trail.fail(exc) from exc

        trail.emit(EventKind.WIP_BRANCH_CREATED, branch_name)
        logger.info("Saved %s from %s", branch_name, source_branch)
        return SaveResponse(
            status="success",
            message=f"WIP branch '{branch_name}' created",
            saved=True,
            branch_name=branch_name,
            source_branch=source_branch,
            pushed=pushed,
            staged=list(state.staged),
            unstaged=list(state.unstaged),
            untracked=list(state.untracked),
            events=trail.events,
            completed_steps=trail.completed_steps,
        )

    def _stage(self) -> tuple[str, str]:
        repository = self.context.repository
        index_tree = repository.write_tree()
        scratch = repository.scratch_index()
        try:
            repository.stage_all(index_file=scratch)
            full_tree = repository.write_tree(index_file=scratch)
        finally:
            scratch.unlink(missing_ok=True)
        return index_tree, full_tree

    def _commit(
        self,
        metadata: SnapshotMetadata,
        index_tree: str,
        full_tree: str,
        base_commit: str,
    ) -> str:
        repository = self.context.repository
        index_commit = repository.commit(
            INDEX_COMMIT_SUBJECT,
            {},
            tree=index_tree,
            parents=[base_commit],
        )
        return repository.commit(
            render_body(metadata),
            render_trailers(metadata),
            tree=full_tree,
            parents=[index_commit],
        )

    def _ensure_on(self, source_branch: str, base_commit: str) -> None:
        repository = self.context.repository
        if repository.current_branch() == source_branch and repository.head_commit() == base_commit:
            return
        if source_branch == "HEAD":
            repository.checkout_detached(base_commit)
        else:
            repository.checkout(source_branch)
