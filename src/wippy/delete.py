"""Delete orchestration for snapshot branches, locally and on the remote."""

from __future__ import annotations

import logging
from typing import Sequence

from .context import WipContext
from .errors import ErrorCode, WippyError
from .listing import ListQuery
from .models import BranchDeletion, DeleteResponse, EventKind, Scope, SnapshotBranch
from .prompts import ConfirmKind
from .trail import OperationTrail

logger = logging.getLogger(__name__)


class DeleteOrchestrator:
    """Remove snapshot branches after the confirmations the request calls for.

    Deletions are independent: a failure on one branch (or on its remote
    copy) is reported and does not undo the others.
    """

    def __init__(self, context: WipContext) -> None:
        self.context = context
        self.listing = ListQuery(context)

    def delete(
        self,
        branches: Sequence[str] = (),
        *,
        all: bool = False,
        include_remote: bool | None = None,
        force: bool = False,
        all_users: bool = False,
    ) -> DeleteResponse:
        repository = self.context.repository
        prompter = self.context.prompter
        trail = OperationTrail("delete")

        has_remote = repository.has_remote()
        if include_remote and not has_remote:
            raise WippyError(
                ErrorCode.REMOTE_UNAVAILABLE,
                f"Remote '{repository.remote}' is not configured",
                "Add the remote or delete local branches only.",
                {"remote": repository.remote},
            )
        use_remote = has_remote if include_remote is None else include_remote

        scope = Scope.ALL if all_users else Scope.MINE
        candidates = self.listing.list(scope, include_remote=use_remote, events=trail.events)

        if branches:
            targets = [
                self.listing.find(name, all_users=all_users, candidates=candidates)
                for name in branches
            ]
            if len(targets) == 1:
                confirmed = force or prompter.confirm(ConfirmKind.DELETE_BRANCH, name=targets[0].name)
            else:
                confirmed = force or prompter.confirm(ConfirmKind.DELETE_SELECTED, count=len(targets))
        elif not candidates:
            trail.emit(EventKind.NO_WIP_BRANCHES, username=self.context.username)
            return DeleteResponse(
                status="success",
                message="No WIP branches to delete",
                remote=use_remote,
                events=trail.events,
            )
        elif all:
            targets = candidates
            confirmed = force or prompter.confirm(ConfirmKind.DELETE_ALL, count=len(targets))
        elif len(candidates) == 1:
            targets = candidates
            confirmed = force or prompter.confirm(ConfirmKind.DELETE_BRANCH, name=targets[0].name)
        else:
            trail.emit(EventKind.FOUND_WIP_BRANCHES, count=len(candidates))
            chosen = prompter.select([item.name for item in candidates], multiple=True)
            if not chosen:
                trail.emit(EventKind.NO_BRANCHES_SELECTED)
                return self._cancelled(trail, use_remote)
            targets = [self.listing.find(name, all_users=all_users, candidates=candidates) for name in chosen]
            confirmed = force or prompter.confirm(ConfirmKind.DELETE_SELECTED, count=len(targets))

        if not confirmed:
            trail.emit(EventKind.OPERATION_CANCELLED)
            return self._cancelled(trail, use_remote)

        remote_targets = [target for target in targets if use_remote and target.is_remote]
        delete_remote = bool(remote_targets) and (
            force or prompter.confirm(ConfirmKind.DELETE_REMOTE, count=len(remote_targets))
        )
        if remote_targets and not delete_remote:
            for target in remote_targets:
                trail.emit(EventKind.KEPT_REMOTE_BRANCH, target.name, remote=repository.remote)

        deletions: list[BranchDeletion] = []
        try:
            for target in targets:
                deletions.append(self._delete_one(trail, target, delete_remote and target in remote_targets))
        except (Exception, KeyboardInterrupt) as exc:
            raise trail.fail(exc) from exc

        failed = [item for item in deletions if item.local_error or item.remote_error]
        deleted = [item for item in deletions if item.local_deleted or item.remote_deleted]
        trail.emit(EventKind.DELETE_COMPLETE, count=len(deleted))
        logger.info("Deleted %d WIP branch(es), %d failure(s)", len(deleted), len(failed))

        if failed:
            return DeleteResponse(
                status="partial",
                message=f"Deleted {len(deleted)} WIP branch(es); {len(failed)} could not be fully deleted",
                error_code=ErrorCode.PARTIAL_DELETE_FAILURE.value,
                suggestion="See remote_error/local_error on each deletion.",
                count=len(deleted),
                remote=delete_remote,
                deletions=deletions,
                events=trail.events,
                completed_steps=trail.completed_steps,
            )
        return DeleteResponse(
            status="success",
            message=f"Deleted {len(deleted)} WIP branch(es)",
            count=len(deleted),
            remote=delete_remote,
            deletions=deletions,
            events=trail.events,
            completed_steps=trail.completed_steps,
        )

    def _delete_one(self, trail: OperationTrail, target: SnapshotBranch, remote: bool) -> BranchDeletion:
        repository = self.context.repository
        deletion = BranchDeletion(name=target.name)

        if target.is_local:
            try:
                trail.run(
                    f"delete-local {target.name}",
                    lambda: repository.delete_branch(target.name, local=True),
                )
            except WippyError as exc:
                deletion.local_error = exc.details.get("stderr") or exc.message
                trail.emit(EventKind.LOCAL_DELETE_FAILED, target.name, error=deletion.local_error)
            else:
                deletion.local_deleted = True
                trail.emit(EventKind.DELETED_LOCAL_BRANCH, target.name)

        if remote:
            try:
                trail.run(
                    f"delete-remote {target.name}",
                    lambda: repository.delete_branch(target.name, local=False, remote=True),
                )
            except WippyError as exc:
                deletion.remote_error = exc.details.get("stderr") or exc.message
                trail.emit(
                    EventKind.REMOTE_DELETE_FAILED,
                    target.name,
                    remote=repository.remote,
                    error=deletion.remote_error,
                )
            else:
                deletion.remote_deleted = True
                trail.emit(EventKind.DELETED_REMOTE_BRANCH, target.name, remote=repository.remote)
        return deletion

    def _cancelled(self, trail: OperationTrail, use_remote: bool) -> DeleteResponse:
        return DeleteResponse(
            status="cancelled",
            message="Nothing deleted",
            error_code=ErrorCode.USER_CANCELLED.value,
            remote=use_remote,
            events=trail.events,
        )
