from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from conftest import USERNAME, local_wip_branches, make_context, remote_wip_branches, run_git
from wippy.errors import ErrorCode, WippyError
from wippy.git import GitCommandError, GitRepository
from wippy.metadata import parse_commit_message
from wippy.models import EventKind
from wippy.save import SaveOrchestrator
from wippy.snapshot import WorkingTreeSnapshot

FIXED = datetime(2024, 5, 1, 14, 30, 0)


def _kinds(response) -> list[EventKind]:
    return [event.kind for event in response.events]


def test_save_without_remote_reports_skip(dirty_repo: Path) -> None:
    response = SaveOrchestrator(make_context(dirty_repo)).save(timestamp=FIXED)

    assert response.status == "success"
    assert response.saved is True
    assert response.branch_name == f"wip/{USERNAME}/2024-05-01-14-30-00"
    assert response.source_branch == "main"
    assert response.pushed is False
    assert _kinds(response) == [
        EventKind.SAVING_WIP,
        EventKind.STAGED_ALL_CHANGES,
        EventKind.COMMITTED_CHANGES,
        EventKind.CREATED_BRANCH,
        EventKind.SKIPPED_PUSH_NO_REMOTE,
        EventKind.SWITCHED_BACK,
        EventKind.WIP_BRANCH_CREATED,
    ]
    assert local_wip_branches(dirty_repo) == [response.branch_name]


def test_save_leaves_working_tree_untouched(dirty_repo: Path) -> None:
    snapshot = WorkingTreeSnapshot(GitRepository(dirty_repo))
    before = snapshot.capture()
    head = run_git(dirty_repo, "rev-parse", "HEAD")
    contents = (dirty_repo / "tracked.txt").read_text(encoding="utf-8")

    SaveOrchestrator(make_context(dirty_repo)).save(timestamp=FIXED)

    assert snapshot.capture() == before
    assert run_git(dirty_repo, "rev-parse", "HEAD") == head
    assert run_git(dirty_repo, "symbolic-ref", "--short", "HEAD").strip() == "main"
    assert (dirty_repo / "tracked.txt").read_text(encoding="utf-8") == contents
    assert run_git(dirty_repo, "stash", "list") == ""


def test_save_records_metadata_in_tip_commit(dirty_repo: Path) -> None:
    response = SaveOrchestrator(make_context(dirty_repo)).save(timestamp=FIXED, label="login")
    repository = GitRepository(dirty_repo)

    assert response.branch_name.endswith("-login")
    metadata = parse_commit_message(repository.commit_message(response.branch_name))
    assert metadata.source_branch == "main"
    assert metadata.base_commit == repository.head_commit()
    assert metadata.created_at == FIXED
    assert metadata.had_staged and metadata.had_unstaged and metadata.had_untracked
    assert metadata.untracked == ("notes/untracked.md",)

    tree_paths = run_git(dirty_repo, "ls-tree", "-r", "--name-only", response.branch_name).split()
    assert "notes/untracked.md" in tree_paths
    assert "gone.txt" not in tree_paths
    assert run_git(dirty_repo, "show", f"{response.branch_name}:tracked.txt") == "one\ntwo\nthree\n"
    assert run_git(dirty_repo, "show", f"{metadata.index_tree}:tracked.txt") == "one\ntwo\n"


def test_save_pushes_when_remote_exists(dirty_repo: Path, remote: Path) -> None:
    response = SaveOrchestrator(make_context(dirty_repo)).save(timestamp=FIXED)

    assert response.pushed is True
    assert EventKind.PUSHED_CHANGES in _kinds(response)
    assert remote_wip_branches(remote) == [response.branch_name]


def test_local_save_skips_push(dirty_repo: Path, remote: Path) -> None:
    response = SaveOrchestrator(make_context(dirty_repo)).save(push=False, timestamp=FIXED)

    assert response.pushed is False
    assert EventKind.SKIPPED_PUSH_LOCAL in _kinds(response)
    assert remote_wip_branches(remote) == []


def test_nothing_to_save(repo: Path) -> None:
    response = SaveOrchestrator(make_context(repo)).save(timestamp=FIXED)

    assert response.status == "success"
    assert response.saved is False
    assert _kinds(response) == [EventKind.SAVING_WIP, EventKind.NOTHING_TO_SAVE]
    assert local_wip_branches(repo) == []


def test_save_refuses_existing_branch(dirty_repo: Path) -> None:
    run_git(dirty_repo, "branch", f"wip/{USERNAME}/2024-05-01-14-30-00")
    with pytest.raises(WippyError) as exc_info:
        SaveOrchestrator(make_context(dirty_repo)).save(timestamp=FIXED)
    assert exc_info.value.code == ErrorCode.BRANCH_EXISTS


def test_consecutive_saves_use_clock(dirty_repo: Path) -> None:
    orchestrator = SaveOrchestrator(make_context(dirty_repo))
    first = orchestrator.save()
    second = orchestrator.save()
    assert first.branch_name != second.branch_name
    assert len(local_wip_branches(dirty_repo)) == 2


class _RejectingPushRepository(GitRepository):
    def push(self, branch: str) -> None:
        raise GitCommandError(("push", self.remote, branch), 1, "remote: permission denied")


def test_push_failure_rolls_back_branch(dirty_repo: Path, remote: Path) -> None:
    snapshot = WorkingTreeSnapshot(GitRepository(dirty_repo))
    before = snapshot.capture()
    context = make_context(dirty_repo, repository=_RejectingPushRepository(dirty_repo))

    with pytest.raises(WippyError) as exc_info:
        SaveOrchestrator(context).save(timestamp=FIXED)

    error = exc_info.value
    assert error.code == ErrorCode.TOOL_OPERATION_FAILED
    assert error.details["step"] == "push"
    assert "permission denied" in error.details["stderr"]
    assert "create-branch" in error.details["completed_steps"]
    assert error.details["rolled_back"] == ["create-branch"]
    assert error.details["residual_state"] == []
    assert local_wip_branches(dirty_repo) == []
    assert snapshot.capture() == before


class _InterruptedPushRepository(GitRepository):
    def push(self, branch: str) -> None:
        raise KeyboardInterrupt


def test_interrupt_rolls_back_like_a_failure(dirty_repo: Path, remote: Path) -> None:
    context = make_context(dirty_repo, repository=_InterruptedPushRepository(dirty_repo))
    with pytest.raises(WippyError) as exc_info:
        SaveOrchestrator(context).save(timestamp=FIXED)

    error = exc_info.value
    assert error.code == ErrorCode.INTERRUPTED
    assert error.details["completed_steps"] == ["resolve-head", "stage", "commit", "create-branch", "check-remote"]
    assert error.details["rolled_back"] == ["create-branch"]
    assert local_wip_branches(dirty_repo) == []
