"""Capture and replay of the staged / unstaged / untracked partition."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ErrorCode, WippyError
from .git import GitCommandError, RepositoryGateway
from .models import SnapshotMetadata


@dataclass(frozen=True)
class WorkingTreeState:
    """Changed paths of a working tree, split the way `git status` shows them.

    A partially staged path appears in both `staged` and `unstaged`.
    """

    staged: tuple[str, ...] = ()
    unstaged: tuple[str, ...] = ()
    untracked: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.staged or self.unstaged or self.untracked)

    @property
    def paths(self) -> set[str]:
        return {*self.staged, *self.unstaged, *self.untracked}


class WorkingTreeSnapshot:
    """Reads and reproduces working tree states through a repository gateway."""

    def __init__(self, repository: RepositoryGateway) -> None:
        self.repository = repository

    def capture(self) -> WorkingTreeState:
        return WorkingTreeState(
            staged=tuple(sorted(self.repository.staged_paths())),
            unstaged=tuple(sorted(self.repository.unstaged_diff_paths())),
            untracked=tuple(sorted(self.repository.untracked_paths())),
        )

    def apply(self, snapshot_rev: str, metadata: SnapshotMetadata) -> WorkingTreeState:
        """Recreate the saved partition of `snapshot_rev` on top of the current HEAD.

        HEAD must be the commit the snapshot was taken from and the working
        tree must be clean, otherwise local work could be overwritten.
        """
        current = self.capture()
        if not current.is_empty:
            raise WippyError(
                ErrorCode.DIRTY_TARGET_CONFLICT,
                "Working tree has local changes that the snapshot would overwrite",
                "Commit or stash them, or restore with --autostash.",
                {"paths": sorted(current.paths)},
            )

        head = self.repository.head_commit()
        if metadata.base_commit and head != metadata.base_commit:
            raise WippyError(
                ErrorCode.DIRTY_TARGET_CONFLICT,
                "HEAD is not the commit the snapshot was taken from",
                "Check out the snapshot's base commit before applying it.",
                {"head": head, "base_commit": metadata.base_commit},
            )

        try:
            self.repository.materialize(snapshot_rev)
            self.repository.remove_worktree_paths(
                self.repository.paths_between(head, snapshot_rev, "D")
            )

            if metadata.is_legacy:
                self.repository.stage_all()
                staged = set(metadata.staged)
                self.repository.unstage(
                    [
                        path
                        for path in (*metadata.unstaged, *metadata.untracked)
                        if path not in staged
                    ]
                )
            else:
                self.repository.read_tree(metadata.index_tree)
        except (GitCommandError, KeyboardInterrupt) as exc:
            try:
                self.discard(snapshot_rev)
            except (GitCommandError, OSError) as cleanup_exc:
                raise _cleanup_failed(exc, cleanup_exc) from exc
            raise

        return self.capture()

    def discard(self, snapshot_rev: str) -> None:
        """Drop whatever `apply` materialized from `snapshot_rev`."""
        added = self.repository.paths_between("HEAD", snapshot_rev, "A")
        self.repository.discard_worktree_changes()
        self.repository.remove_worktree_paths(added)


def _cleanup_failed(exc: BaseException, cleanup_exc: Exception) -> WippyError:
    residual = f"snapshot files are still present in the working tree ({cleanup_exc})"
    if isinstance(exc, KeyboardInterrupt):
        return WippyError(
            ErrorCode.INTERRUPTED,
            "Applying the snapshot was interrupted and its files could not be removed",
            "Clean the working tree listed in details.residual_state manually.",
            {"residual_state": [residual]},
        )
    details: dict[str, object] = {"residual_state": [residual]}
    if isinstance(exc, GitCommandError):
        details.update(command=["git", *exc.command], returncode=exc.returncode, stderr=exc.stderr)
    return WippyError(
        ErrorCode.TOOL_OPERATION_FAILED,
        f"Applying the snapshot failed and its files could not be removed: {exc}",
        "Clean the working tree listed in details.residual_state manually.",
        details,
    )
