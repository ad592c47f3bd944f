"""Core engine wiring requests to the snapshot orchestrators."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Callable

from .codec import BranchNameCodec
from .context import WipContext
from .delete import DeleteOrchestrator
from .errors import ErrorCode, WippyError
from .git import GitCommandError, GitRepository, RepositoryGateway
from .listing import ListQuery
from .models import (
    DeleteRequest,
    DeleteResponse,
    EventKind,
    ListRequest,
    ListResponse,
    OutcomeEvent,
    RestoreRequest,
    RestoreResponse,
    SaveRequest,
    SaveResponse,
)
from .prompts import Prompter, TerminalPrompter
from .restore import RestoreOrchestrator
from .runtime import RuntimeDefaults, get_runtime_defaults
from .save import SaveOrchestrator

logger = logging.getLogger(__name__)

WHITESPACE_PATTERN = re.compile(r"\s+")


class WippyEngine:
    """Main service implementing the save / list / restore / delete operations."""

    def __init__(
        self,
        defaults: RuntimeDefaults | None = None,
        prompter: Prompter | None = None,
        repository_factory: Callable[[str], RepositoryGateway] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.defaults = defaults or get_runtime_defaults()
        self.prompter = prompter or TerminalPrompter()
        self.repository_factory = repository_factory or self._default_repository
        self.clock = clock
        self.codec = BranchNameCodec()

    def save(self, request: SaveRequest) -> SaveResponse:
        """Snapshot the working tree of `request.directory` into a WIP branch."""
        context = self._context(request.directory, request.username)
        return SaveOrchestrator(context).save(
            push=self.defaults.push and not request.local,
            timestamp=request.timestamp,
            label=request.label,
        )

    def list_snapshots(self, request: ListRequest) -> ListResponse:
        """List WIP branches, newest first."""
        context = self._context(request.directory)
        events: list[OutcomeEvent] = []
        branches = ListQuery(context).list(
            request.scope,
            include_remote=request.include_remote,
            events=events,
        )
        if branches:
            events.append(OutcomeEvent(kind=EventKind.FOUND_WIP_BRANCHES, details={"count": len(branches)}))
            message = f"Found {len(branches)} WIP branch(es)"
        else:
            events.append(OutcomeEvent(kind=EventKind.NO_WIP_BRANCHES, details={"username": context.username}))
            message = "No WIP branches found"
        return ListResponse(
            status="success",
            message=message,
            username=context.username,
            scope=request.scope,
            count=len(branches),
            branches=branches,
            events=events,
        )

    def restore(self, request: RestoreRequest) -> RestoreResponse:
        """Restore a WIP branch onto the branch it was saved from."""
        context = self._context(request.directory)
        return RestoreOrchestrator(context).restore(
            request.branch,
            autostash=request.autostash,
            force=request.force,
            all_users=request.all_users,
        )

    def delete(self, request: DeleteRequest) -> DeleteResponse:
        """Delete WIP branches locally and, where requested, on the remote."""
        context = self._context(request.directory)
        return DeleteOrchestrator(context).delete(
            request.branches,
            all=request.all,
            include_remote=request.include_remote,
            force=request.force,
            all_users=request.all_users,
        )

    def resolve_username(self, repository: RepositoryGateway, requested: str | None = None) -> str:
        """Pick the snapshot owner: request, then WIPPY_USERNAME, then git user.name."""
        raw = (requested or "").strip() or self.defaults.username or repository.user_name()
        username = WHITESPACE_PATTERN.sub("-", raw.strip())
        if not username:
            raise WippyError(
                ErrorCode.INVALID_INPUT,
                "No username available for WIP branch names",
                "Set it with `git config user.name <name>` or WIPPY_USERNAME.",
            )
        self.codec.encode(username, datetime.now())
        return username

    def _context(self, directory: str, username: str | None = None) -> WipContext:
        repository = self._open_repository(directory)
        return WipContext(
            repository=repository,
            username=self.resolve_username(repository, username),
            prompter=self.prompter,
            clock=self.clock,
            codec=self.codec,
        )

    def _open_repository(self, directory: str) -> RepositoryGateway:
        path = Path(directory).expanduser()
        if not path.is_dir():
            raise WippyError(
                ErrorCode.NOT_A_REPOSITORY,
                f"Directory does not exist: {directory}",
                "Provide an existing directory inside a git work tree.",
                {"directory": str(path)},
            )
        repository = self.repository_factory(str(path))
        try:
            toplevel = repository.toplevel()
        except GitCommandError as exc:
            raise WippyError(
                ErrorCode.NOT_A_REPOSITORY,
                f"Not a git repository: {directory}",
                "Run the command inside a git work tree.",
                {"directory": str(path), "stderr": exc.stderr},
            ) from exc
        except FileNotFoundError as exc:
            raise WippyError(
                ErrorCode.TOOL_OPERATION_FAILED,
                f"git executable not found: {self.defaults.git_executable}",
                "Install git or point WIPPY_GIT at it.",
                {"executable": self.defaults.git_executable},
            ) from exc
        logger.debug("Using repository %s", toplevel)
        return repository

    def _default_repository(self, directory: str) -> RepositoryGateway:
        return GitRepository(
            directory,
            executable=self.defaults.git_executable,
            remote=self.defaults.remote,
        )
