from __future__ import annotations

from pathlib import Path

import pytest

from conftest import USERNAME, local_wip_branches, make_context, remote_wip_branches, run_git
from wippy.delete import DeleteOrchestrator
from wippy.errors import ErrorCode, WippyError
from wippy.git import GitCommandError, GitRepository
from wippy.models import EventKind
from wippy.prompts import ConfirmKind, ScriptedPrompter

NAMES = [
    f"wip/{USERNAME}/2024-01-01-10-00-00",
    f"wip/{USERNAME}/2024-01-02-10-00-00",
    f"wip/{USERNAME}/2024-01-03-10-00-00",
]


def _kinds(response) -> list[EventKind]:
    return [event.kind for event in response.events]


@pytest.fixture()
def three_snapshots(repo: Path) -> Path:
    for name in NAMES:
        run_git(repo, "branch", name)
    return repo


def test_delete_all_asks_once_for_the_whole_set(three_snapshots: Path) -> None:
    prompter = ScriptedPrompter([True])

    response = DeleteOrchestrator(make_context(three_snapshots, prompter)).delete(all=True)

    assert prompter.prompts == [{"type": "confirm", "kind": ConfirmKind.DELETE_ALL, "count": 3, "name": None}]
    assert response.status == "success"
    assert response.count == 3
    assert local_wip_branches(three_snapshots) == []
    assert _kinds(response).count(EventKind.DELETED_LOCAL_BRANCH) == 3


def test_forced_delete_all_never_prompts(three_snapshots: Path) -> None:
    prompter = ScriptedPrompter()

    response = DeleteOrchestrator(make_context(three_snapshots, prompter)).delete(all=True, force=True)

    assert prompter.prompts == []
    assert response.count == 3
    assert local_wip_branches(three_snapshots) == []


def test_declined_confirmation_cancels(three_snapshots: Path) -> None:
    response = DeleteOrchestrator(make_context(three_snapshots, ScriptedPrompter([False]))).delete(all=True)

    assert response.status == "cancelled"
    assert response.error_code == ErrorCode.USER_CANCELLED.value
    assert EventKind.OPERATION_CANCELLED in _kinds(response)
    assert local_wip_branches(three_snapshots) == NAMES


def test_explicit_branch_confirms_by_name(three_snapshots: Path) -> None:
    prompter = ScriptedPrompter([True])

    response = DeleteOrchestrator(make_context(three_snapshots, prompter)).delete([NAMES[1]])

    assert prompter.confirm_prompts[0]["kind"] == ConfirmKind.DELETE_BRANCH
    assert prompter.confirm_prompts[0]["name"] == NAMES[1]
    assert [item.name for item in response.deletions] == [NAMES[1]]
    assert local_wip_branches(three_snapshots) == [NAMES[0], NAMES[2]]


def test_several_explicit_branches_confirm_once(three_snapshots: Path) -> None:
    prompter = ScriptedPrompter([True])

    response = DeleteOrchestrator(make_context(three_snapshots, prompter)).delete([NAMES[0], NAMES[2]])

    assert prompter.confirm_prompts == [
        {"type": "confirm", "kind": ConfirmKind.DELETE_SELECTED, "count": 2, "name": None}
    ]
    assert response.count == 2
    assert local_wip_branches(three_snapshots) == [NAMES[1]]


def test_interactive_multi_select(three_snapshots: Path) -> None:
    prompter = ScriptedPrompter([True], selections=[[NAMES[0], NAMES[2]]])

    response = DeleteOrchestrator(make_context(three_snapshots, prompter)).delete()

    assert prompter.prompts[0] == {"type": "select", "options": list(reversed(NAMES)), "multiple": True}
    assert prompter.prompts[1]["kind"] == ConfirmKind.DELETE_SELECTED
    assert prompter.prompts[1]["count"] == 2
    assert response.count == 2
    assert local_wip_branches(three_snapshots) == [NAMES[1]]


def test_empty_selection_is_cancelled(three_snapshots: Path) -> None:
    response = DeleteOrchestrator(make_context(three_snapshots, ScriptedPrompter(selections=[[]]))).delete()

    assert response.status == "cancelled"
    assert EventKind.NO_BRANCHES_SELECTED in _kinds(response)
    assert local_wip_branches(three_snapshots) == NAMES


def test_single_candidate_gets_confirmation(repo: Path) -> None:
    run_git(repo, "branch", NAMES[0])
    prompter = ScriptedPrompter([True])

    DeleteOrchestrator(make_context(repo, prompter)).delete()

    assert prompter.prompts == [{"type": "confirm", "kind": ConfirmKind.DELETE_BRANCH, "count": None, "name": NAMES[0]}]
    assert local_wip_branches(repo) == []


def test_no_candidates(repo: Path) -> None:
    response = DeleteOrchestrator(make_context(repo)).delete(all=True)
    assert response.status == "success"
    assert response.count == 0
    assert _kinds(response) == [EventKind.NO_WIP_BRANCHES]


def test_other_users_branches_are_protected(repo: Path) -> None:
    run_git(repo, "branch", "wip/someone/2024-01-01-10-00-00")
    orchestrator = DeleteOrchestrator(make_context(repo))

    with pytest.raises(WippyError) as exc_info:
        orchestrator.delete(["wip/someone/2024-01-01-10-00-00"], force=True)
    assert exc_info.value.code == ErrorCode.PERMISSION_DENIED

    response = orchestrator.delete(["wip/someone/2024-01-01-10-00-00"], force=True, all_users=True)
    assert response.count == 1


def test_unknown_branch_is_not_found(repo: Path) -> None:
    with pytest.raises(WippyError) as exc_info:
        DeleteOrchestrator(make_context(repo)).delete([NAMES[0]], force=True)
    assert exc_info.value.code == ErrorCode.BRANCH_NOT_FOUND


def test_required_remote_without_remote_fails(three_snapshots: Path) -> None:
    with pytest.raises(WippyError) as exc_info:
        DeleteOrchestrator(make_context(three_snapshots)).delete(all=True, include_remote=True, force=True)
    assert exc_info.value.code == ErrorCode.REMOTE_UNAVAILABLE
    assert local_wip_branches(three_snapshots) == NAMES


@pytest.fixture()
def pushed_snapshots(three_snapshots: Path, remote: Path) -> Path:
    for name in NAMES:
        run_git(three_snapshots, "push", "-q", "origin", name)
    return three_snapshots


def test_remote_deletion_needs_second_confirmation(pushed_snapshots: Path, remote: Path) -> None:
    prompter = ScriptedPrompter([True, False])

    response = DeleteOrchestrator(make_context(pushed_snapshots, prompter)).delete(all=True)

    assert [prompt["kind"] for prompt in prompter.confirm_prompts] == [ConfirmKind.DELETE_ALL, ConfirmKind.DELETE_REMOTE]
    assert response.status == "success"
    assert response.remote is False
    assert local_wip_branches(pushed_snapshots) == []
    assert remote_wip_branches(remote) == NAMES
    assert _kinds(response).count(EventKind.KEPT_REMOTE_BRANCH) == 3


def test_local_only_delete_leaves_remote(pushed_snapshots: Path, remote: Path) -> None:
    response = DeleteOrchestrator(make_context(pushed_snapshots)).delete(all=True, include_remote=False, force=True)

    assert response.count == 3
    assert all(not item.remote_deleted for item in response.deletions)
    assert remote_wip_branches(remote) == NAMES


def test_remote_only_branch_deleted_on_remote(repo: Path, remote: Path) -> None:
    run_git(repo, "push", "-q", "origin", f"main:refs/heads/{NAMES[0]}")

    response = DeleteOrchestrator(make_context(repo)).delete([NAMES[0]], force=True)

    assert response.deletions[0].local_deleted is False
    assert response.deletions[0].remote_deleted is True
    assert remote_wip_branches(remote) == []


class _FlakyRemoteRepository(GitRepository):
    def delete_branch(self, name: str, *, local: bool = True, remote: bool = False) -> None:
        if remote and name == NAMES[1]:
            raise GitCommandError(("push", self.remote, "--delete", name), 1, "remote: hook declined")
        super().delete_branch(name, local=local, remote=remote)


def test_partial_remote_failure_keeps_local_deletion(pushed_snapshots: Path, remote: Path) -> None:
    context = make_context(pushed_snapshots, repository=_FlakyRemoteRepository(pushed_snapshots))

    response = DeleteOrchestrator(context).delete(all=True, force=True)

    assert response.status == "partial"
    assert response.error_code == ErrorCode.PARTIAL_DELETE_FAILURE.value
    failed = {item.name: item for item in response.deletions}[NAMES[1]]
    assert failed.local_deleted is True
    assert failed.remote_deleted is False
    assert "hook declined" in failed.remote_error
    assert local_wip_branches(pushed_snapshots) == []
    assert remote_wip_branches(remote) == [NAMES[1]]
    kinds = _kinds(response)
    assert EventKind.REMOTE_DELETE_FAILED in kinds
    assert kinds.count(EventKind.DELETED_LOCAL_BRANCH) == 3


class _LockedLocalRepository(GitRepository):
    def delete_branch(self, name: str, *, local: bool = True, remote: bool = False) -> None:
        if local and name == NAMES[1]:
            raise GitCommandError(("branch", "-D", name), 1, f"error: cannot lock ref 'refs/heads/{name}'")
        super().delete_branch(name, local=local, remote=remote)


def test_local_failure_does_not_stop_other_deletions(three_snapshots: Path) -> None:
    context = make_context(three_snapshots, repository=_LockedLocalRepository(three_snapshots))

    response = DeleteOrchestrator(context).delete(all=True, force=True)

    assert response.status == "partial"
    assert response.error_code == ErrorCode.PARTIAL_DELETE_FAILURE.value
    assert response.count == 2
    failed = {item.name: item for item in response.deletions}[NAMES[1]]
    assert failed.local_deleted is False
    assert "cannot lock ref" in failed.local_error
    assert local_wip_branches(three_snapshots) == [NAMES[1]]
    kinds = _kinds(response)
    assert kinds.count(EventKind.LOCAL_DELETE_FAILED) == 1
    assert kinds.count(EventKind.DELETED_LOCAL_BRANCH) == 2
