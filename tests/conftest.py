from __future__ import annotations

import subprocess
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from wippy.codec import BranchNameCodec
from wippy.context import WipContext
from wippy.git import GitRepository
from wippy.prompts import ScriptedPrompter

USERNAME = "test.user"


def run_git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


def write(repo: Path, relative: str, content: str) -> Path:
    path = repo / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TickingClock:
    """Returns a new second on every call so saves never collide."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 14, 30, 0)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


def make_context(
    repo: Path,
    prompter: ScriptedPrompter | None = None,
    *,
    username: str = USERNAME,
    repository: GitRepository | None = None,
) -> WipContext:
    return WipContext(
        repository=repository or GitRepository(repo),
        username=username,
        prompter=prompter or ScriptedPrompter(),
        clock=TickingClock(),
        codec=BranchNameCodec(),
    )


@pytest.fixture(autouse=True)
def _isolated_git(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    for key in ("WIPPY_REMOTE", "WIPPY_USERNAME", "WIPPY_GIT", "WIPPY_LOG_LEVEL", "WIPPY_PUSH"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    run_git(path, "init", "-q")
    run_git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(path, "config", "user.name", USERNAME)
    run_git(path, "config", "user.email", "test.user@example.com")
    run_git(path, "config", "commit.gpgsign", "false")
    write(path, "tracked.txt", "one\n")
    write(path, "other.txt", "keep\n")
    write(path, "gone.txt", "bye\n")
    run_git(path, "add", "--all")
    run_git(path, "commit", "-q", "-m", "initial")
    return path


@pytest.fixture()
def remote(repo: Path, tmp_path: Path) -> Path:
    bare = tmp_path / "remote.git"
    run_git(tmp_path, "init", "-q", "--bare", str(bare))
    run_git(repo, "remote", "add", "origin", str(bare))
    run_git(repo, "push", "-q", "origin", "main")
    return bare


@pytest.fixture()
def dirty_repo(repo: Path) -> Path:
    """Working tree with staged, partially staged, unstaged and untracked paths."""
    write(repo, "staged.txt", "new and staged\n")
    run_git(repo, "add", "staged.txt")
    write(repo, "tracked.txt", "one\ntwo\n")
    run_git(repo, "add", "tracked.txt")
    write(repo, "tracked.txt", "one\ntwo\nthree\n")
    write(repo, "other.txt", "changed but not staged\n")
    run_git(repo, "rm", "-q", "gone.txt")
    write(repo, "notes/untracked.md", "scratch\n")
    return repo


def local_wip_branches(repo: Path) -> list[str]:
    output = run_git(repo, "for-each-ref", "--format=%(refname:short)", "refs/heads/wip/")
    return sorted(line for line in output.splitlines() if line)


def remote_wip_branches(bare: Path) -> list[str]:
    output = run_git(bare, "for-each-ref", "--format=%(refname:short)", "refs/heads/wip/")
    return sorted(line for line in output.splitlines() if line)
