"""Enumeration of snapshot branches, locally and on the remote."""

from __future__ import annotations

import logging

from .context import WipContext
from .errors import ErrorCode, WippyError
from .git import GitCommandError
from .models import EventKind, Locality, OutcomeEvent, Scope, SnapshotBranch, SnapshotBranchName

logger = logging.getLogger(__name__)


class ListQuery:
    """Read-only view over the snapshot branches of a repository."""

    def __init__(self, context: WipContext) -> None:
        self.context = context

    def list(
        self,
        scope: Scope = Scope.MINE,
        *,
        include_remote: bool = True,
        events: list[OutcomeEvent] | None = None,
    ) -> list[SnapshotBranch]:
        """Return snapshot branches newest first, one entry per branch name."""
        repository = self.context.repository
        codec = self.context.codec
        prefix = f"{codec.prefix}/"
        if scope == Scope.MINE:
            prefix = codec.user_prefix(self.context.username)

        local_names = set(repository.list_branches(local=True, remote=False, prefix=prefix).local)
        remote_names: set[str] = set()
        if include_remote and repository.has_remote():
            try:
                listing = repository.list_branches(local=False, remote=True, prefix=prefix)
            except GitCommandError as exc:
                logger.warning("Remote branch listing failed: %s", exc)
                if events is not None:
                    events.append(
                        OutcomeEvent(
                            kind=EventKind.REMOTE_LIST_FAILED,
                            details={"remote": repository.remote, "error": exc.stderr or str(exc)},
                        )
                    )
            else:
                remote_names = set(listing.remote)

        branches: list[SnapshotBranch] = []
        for name in local_names | remote_names:
            decoded = codec.decode(name)
            if decoded is None:
                continue
            if scope == Scope.MINE and decoded.username != self.context.username:
                continue
            if name in local_names and name in remote_names:
                locality = Locality.BOTH
            elif name in local_names:
                locality = Locality.LOCAL
            else:
                locality = Locality.REMOTE
            branches.append(
                SnapshotBranch(
                    name=name,
                    username=decoded.username,
                    timestamp=decoded.timestamp,
                    label=decoded.label,
                    locality=locality,
                )
            )

        branches.sort(key=lambda branch: branch.name)
        branches.sort(key=lambda branch: branch.timestamp, reverse=True)
        return branches

    def ensure_owned(self, name: str, *, all_users: bool = False) -> SnapshotBranchName:
        """Validate that `name` is a snapshot branch the current user may touch."""
        decoded = self.context.codec.decode(name)
        if decoded is None:
            raise WippyError(
                ErrorCode.INVALID_IDENTIFIER,
                f"'{name}' is not a WIP branch name",
                f"WIP branches are named {self.context.codec.prefix}/<user>/<timestamp>[-label].",
                {"branch": name},
            )
        if not all_users and decoded.username != self.context.username:
            raise WippyError(
                ErrorCode.PERMISSION_DENIED,
                f"WIP branch '{name}' belongs to '{decoded.username}'",
                "Pass --all-users to operate on another user's snapshot.",
                {"branch": name, "owner": decoded.username, "username": self.context.username},
            )
        return decoded

    def find(
        self,
        name: str,
        *,
        all_users: bool = False,
        candidates: list[SnapshotBranch] | None = None,
    ) -> SnapshotBranch:
        self.ensure_owned(name, all_users=all_users)
        if candidates is None:
            candidates = self.list(Scope.ALL if all_users else Scope.MINE)
        for branch in candidates:
            if branch.name == name:
                return branch
        raise WippyError(
            ErrorCode.BRANCH_NOT_FOUND,
            f"WIP branch '{name}' not found locally or on the remote",
            "Run `git-wippy list` to see available snapshots.",
            {"branch": name},
        )
