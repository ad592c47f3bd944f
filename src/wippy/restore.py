"""Restore orchestration: replay a snapshot branch onto its source branch."""

from __future__ import annotations

import logging

from .constants import AUTOSTASH_PREFIX
from .context import WipContext
from .errors import ErrorCode, WippyError
from .git import GitCommandError
from .listing import ListQuery
from .metadata import parse_commit_message
from .models import EventKind, RestoreResponse, Scope, SnapshotBranch, SnapshotMetadata
from .prompts import ConfirmKind
from .snapshot import WorkingTreeSnapshot
from .trail import OperationTrail

logger = logging.getLogger(__name__)


class RestoreOrchestrator:
    """Bring a saved working tree back and consume its snapshot branch.

    Every step up to and including the replay of the file states is undone
    when a later one fails. Once the files are back, the restore is kept even
    if reapplying the autostash or deleting the branch goes wrong.
    """

    def __init__(self, context: WipContext) -> None:
        self.context = context
        self.listing = ListQuery(context)
        self.snapshot = WorkingTreeSnapshot(context.repository)

    def restore(
        self,
        branch: str | None = None,
        *,
        autostash: bool = False,
        force: bool = False,
        all_users: bool = False,
    ) -> RestoreResponse:
        repository = self.context.repository
        trail = OperationTrail("restore")

        target = self._resolve_target(trail, branch, all_users)
        if target is None:
            return RestoreResponse(
                status="cancelled",
                message="Nothing restored",
                error_code=ErrorCode.USER_CANCELLED.value,
                events=trail.events,
            )
        trail.emit(EventKind.RESTORING_WIP, target.name)

        current = self.snapshot.capture()
        if not current.is_empty and not autostash:
            raise WippyError(
                ErrorCode.DIRTY_WORKING_TREE,
                "Working tree has uncommitted changes",
                "Commit or stash them first, or pass --autostash.",
                {"paths": sorted(current.paths), "branch": target.name},
            )
        trail.completed_steps.append("check-working-tree")

        entry_branch = repository.current_branch()
        entry_commit = repository.resolve_commit("HEAD")
        stash_message = f"{AUTOSTASH_PREFIX}-{target.name}"
        stashed = False
        stash_reapplied = False
        remote_deleted = False
        status = "success"

        try:
            if not target.is_local:
                trail.run(
                    "fetch",
                    lambda: repository.fetch_branch(target.name),
                    compensate=lambda: repository.delete_branch(target.name, local=True),
                    residual=f"fetched branch '{target.name}' still exists locally",
                )
                trail.emit(EventKind.FETCHED_BRANCH, target.name, remote=repository.remote)

            snapshot_rev, metadata = trail.run("read-metadata", lambda: self._read(target.name))
            base_commit = trail.run(
                "check-divergence", lambda: self._check_divergence(target.name, snapshot_rev, metadata)
            )

            if not current.is_empty:
                trail.run(
                    "autostash",
                    lambda: repository.stash(stash_message),
                    compensate=lambda: repository.stash_pop(repository.find_stash(stash_message)),
                    residual=f"local changes are still stashed as '{stash_message}'",
                )
                stashed = True
                trail.emit(EventKind.STASHED_EXISTING_CHANGES, target.name, stash=stash_message)

            created = trail.run(
                "checkout-source",
                lambda: self._checkout_source(metadata.source_branch, base_commit),
                compensate=lambda: self._return_to(
                    entry_branch, entry_commit, metadata.source_branch if created else None
                ),
                residual=f"HEAD is not back on '{entry_branch}'",
            )
            if created:
                trail.emit(EventKind.CREATED_SOURCE_BRANCH, metadata.source_branch, base_commit=base_commit)
            trail.emit(EventKind.CHECKED_OUT_BRANCH, metadata.source_branch)

            restored = trail.run(
                "apply",
                lambda: self.snapshot.apply(snapshot_rev, metadata),
                compensate=lambda: self.snapshot.discard(snapshot_rev),
                residual="snapshot files are still present in the working tree",
            )
            trail.emit(EventKind.APPLIED_CHANGES, target.name)
            trail.emit(
                EventKind.RECREATED_FILE_STATES,
                target.name,
                staged=len(restored.staged),
                unstaged=len(restored.unstaged),
                untracked=len(restored.untracked),
            )
            trail.settle()

            if stashed:
                self._reapply_stash(trail, stash_message, target.name)
                stash_reapplied = True
                trail.emit(EventKind.RESTORED_EXISTING_CHANGES, target.name)

            if repository.resolve_commit(f"refs/heads/{target.name}") is not None:
                trail.run("delete-local", lambda: repository.delete_branch(target.name, local=True))
                trail.emit(EventKind.DELETED_LOCAL_BRANCH, target.name)

            if target.is_remote:
                if force or self.context.prompter.confirm(ConfirmKind.DELETE_REMOTE, count=1, name=target.name):
                    try:
                        trail.run(
                            "delete-remote",
                            lambda: repository.delete_branch(target.name, local=False, remote=True),
                        )
                    except WippyError as exc:
                        status = "partial"
                        trail.emit(
                            EventKind.REMOTE_DELETE_FAILED,
                            target.name,
                            remote=repository.remote,
                            error=exc.details.get("stderr") or exc.message,
                        )
                    else:
                        remote_deleted = True
                        trail.emit(EventKind.DELETED_REMOTE_BRANCH, target.name, remote=repository.remote)
                else:
                    trail.emit(EventKind.KEPT_REMOTE_BRANCH, target.name, remote=repository.remote)
        except (Exception, KeyboardInterrupt) as exc:
            raise trail.fail(exc) from exc

        trail.emit(EventKind.RESTORE_COMPLETE, target.name, source_branch=metadata.source_branch)
        logger.info("Restored %s onto %s", target.name, metadata.source_branch)
        message = f"Restored '{target.name}' onto '{metadata.source_branch}'"
        if status == "partial":
            message += "; the remote branch could not be deleted"
        return RestoreResponse(
            status=status,
            message=message,
            error_code=ErrorCode.PARTIAL_DELETE_FAILURE.value if status == "partial" else "",
            branch_name=target.name,
            source_branch=metadata.source_branch,
            staged=list(restored.staged),
            unstaged=list(restored.unstaged),
            untracked=list(restored.untracked),
            stash_reapplied=stash_reapplied,
            remote_deleted=remote_deleted,
            events=trail.events,
            completed_steps=trail.completed_steps,
        )

    def _resolve_target(
        self,
        trail: OperationTrail,
        branch: str | None,
        all_users: bool,
    ) -> SnapshotBranch | None:
        scope = Scope.ALL if all_users else Scope.MINE
        candidates = self.listing.list(scope, events=trail.events)
        if branch:
            return self.listing.find(branch, all_users=all_users, candidates=candidates)
        if not candidates:
            trail.emit(EventKind.NO_WIP_BRANCHES, username=self.context.username)
            return None
        if len(candidates) == 1:
            return candidates[0]

        trail.emit(EventKind.FOUND_WIP_BRANCHES, count=len(candidates))
        chosen = self.context.prompter.select([item.name for item in candidates], multiple=False)
        if not chosen:
            trail.emit(EventKind.OPERATION_CANCELLED)
            return None
        return self.listing.find(chosen[0], all_users=all_users, candidates=candidates)

    def _read(self, name: str) -> tuple[str, SnapshotMetadata]:
        repository = self.context.repository
        snapshot_rev = repository.resolve_commit(f"refs/heads/{name}")
        if snapshot_rev is None:
            raise WippyError(
                ErrorCode.BRANCH_NOT_FOUND,
                f"WIP branch '{name}' not found locally",
                details={"branch": name},
            )
        metadata = parse_commit_message(repository.commit_message(snapshot_rev))
        return snapshot_rev, metadata

    def _check_divergence(self, name: str, snapshot_rev: str, metadata: SnapshotMetadata) -> str:
        """Return the commit the snapshot was taken from.

        The recorded source branch must still point at that commit, or not
        exist at all.
        """
        repository = self.context.repository
        base_commit = metadata.base_commit
        if not base_commit:
            parents = repository.commit_parents(snapshot_rev)
            base_commit = parents[0] if parents else ""
        if not base_commit or repository.resolve_commit(base_commit) is None:
            raise WippyError(
                ErrorCode.INVALID_SNAPSHOT,
                f"Cannot determine the base commit of '{name}'",
                details={"branch": name, "base_commit": base_commit},
            )
        if metadata.source_branch == "HEAD":
            return base_commit

        source_tip = repository.resolve_commit(f"refs/heads/{metadata.source_branch}")
        if source_tip is not None and source_tip != base_commit:
            raise WippyError(
                ErrorCode.DIRTY_TARGET_CONFLICT,
                f"Branch '{metadata.source_branch}' has moved since '{name}' was saved",
                "Restore onto the old commit manually, or rebase after restoring.",
                {
                    "branch": name,
                    "source_branch": metadata.source_branch,
                    "source_tip": source_tip,
                    "base_commit": base_commit,
                },
            )
        return base_commit

    def _checkout_source(self, source_branch: str, base_commit: str) -> bool:
        """Check out where the snapshot was taken; True when the branch was recreated."""
        repository = self.context.repository
        if source_branch == "HEAD":
            repository.checkout_detached(base_commit)
            return False
        created = False
        if repository.resolve_commit(f"refs/heads/{source_branch}") is None:
            repository.create_branch(source_branch, base_commit)
            created = True
        if repository.current_branch() != source_branch:
            repository.checkout(source_branch)
        return created

    def _return_to(self, entry_branch: str, entry_commit: str | None, created_branch: str | None) -> None:
        repository = self.context.repository
        if entry_branch == "HEAD":
            if entry_commit:
                repository.checkout_detached(entry_commit)
        elif repository.current_branch() != entry_branch:
            repository.checkout(entry_branch)
        if created_branch and created_branch != entry_branch:
            repository.delete_branch(created_branch, local=True)

    def _reapply_stash(self, trail: OperationTrail, stash_message: str, name: str) -> None:
        repository = self.context.repository
        stash_ref = repository.find_stash(stash_message)
        try:
            repository.stash_pop(stash_ref)
        except GitCommandError as exc:
            raise WippyError(
                ErrorCode.STASH_CONFLICT,
                "Restored the snapshot, but reapplying your stashed changes conflicted",
                "Resolve the conflicts; the stash entry was kept, drop it with `git stash drop` when done.",
                {
                    "branch": name,
                    "stash": stash_ref or stash_message,
                    "stderr": exc.stderr,
                },
            ) from exc
        trail.completed_steps.append("reapply-stash")
