"""Repository gateway: the git primitives the orchestrators are built from."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Protocol, Sequence

from .constants import DEFAULT_REMOTE, SCRATCH_INDEX_NAME, WIP_PREFIX

logger = logging.getLogger(__name__)

_SANITIZED_VARS = {
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_PREFIX",
}


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return an environment suitable for non-interactive git subprocesses."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["LC_ALL"] = "C"
    if additional:
        env.update(additional)
    return env


class GitCommandError(RuntimeError):
    """Raised when a git invocation exits with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str, stdout: str = "") -> None:
        self.command = tuple(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        self.stdout = stdout
        super().__init__(f"git {' '.join(self.command)} failed ({returncode}): {self.stderr}")


@dataclass(slots=True)
class GitCommandResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True, slots=True)
class BranchListing:
    local: tuple[str, ...]
    remote: tuple[str, ...]


class RepositoryGateway(Protocol):
    """Capability set consumed by the orchestrators."""

    remote: str

    def toplevel(self) -> Path: ...

    def current_branch(self) -> str: ...

    def head_commit(self) -> str: ...

    def resolve_commit(self, rev: str) -> str | None: ...

    def user_name(self) -> str: ...

    def staged_paths(self) -> list[str]: ...

    def unstaged_diff_paths(self) -> list[str]: ...

    def untracked_paths(self) -> list[str]: ...

    def scratch_index(self) -> Path: ...

    def stage_all(self, index_file: Path | None = None) -> None: ...

    def write_tree(self, index_file: Path | None = None) -> str: ...

    def commit(
        self,
        message: str,
        trailers: Mapping[str, str],
        *,
        tree: str,
        parents: Sequence[str],
    ) -> str: ...

    def create_branch(self, name: str, start_point: str) -> None: ...

    def checkout(self, branch: str) -> None: ...

    def checkout_detached(self, commit: str) -> None: ...

    def delete_branch(self, name: str, *, local: bool = True, remote: bool = False) -> None: ...

    def push(self, branch: str) -> None: ...

    def list_branches(
        self, *, local: bool = True, remote: bool = True, prefix: str = ...
    ) -> BranchListing: ...

    def has_remote(self) -> bool: ...

    def fetch_branch(self, name: str) -> None: ...

    def stash(self, message: str) -> None: ...

    def find_stash(self, message: str) -> str | None: ...

    def stash_pop(self, ref: str | None = None) -> None: ...

    def commit_message(self, rev: str) -> str: ...

    def commit_parents(self, rev: str) -> list[str]: ...

    def materialize(self, rev: str) -> None: ...

    def paths_between(self, base: str, rev: str, diff_filter: str) -> list[str]: ...

    def remove_worktree_paths(self, paths: Iterable[str]) -> None: ...

    def read_tree(self, tree: str) -> None: ...

    def unstage(self, paths: Sequence[str]) -> None: ...

    def discard_worktree_changes(self) -> None: ...


class GitRepository:
    """Run git commands against one working tree."""

    def __init__(
        self,
        directory: str | Path = ".",
        *,
        executable: str = "git",
        remote: str = DEFAULT_REMOTE,
    ) -> None:
        self.directory = Path(directory).expanduser()
        self.executable = executable
        self.remote = remote
        self._toplevel: Path | None = None

    def run(
        self,
        *args: str,
        check: bool = True,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
        cwd: Path | None = None,
    ) -> GitCommandResult:
        command = [self.executable, *args]
        working_directory = cwd or self.toplevel()
        logger.debug("git %s (cwd=%s)", " ".join(args), working_directory)
        process = subprocess.run(
            command,
            cwd=str(working_directory),
            input=input_text,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=sanitize_environment(env),
        )
        result = GitCommandResult(
            args=tuple(args),
            returncode=process.returncode,
            stdout=process.stdout,
            stderr=process.stderr,
        )
        if check and not result.ok:
            raise GitCommandError(args, result.returncode, result.stderr, result.stdout)
        return result

    def toplevel(self) -> Path:
        if self._toplevel is None:
            result = self.run("rev-parse", "--show-toplevel", cwd=self.directory)
            self._toplevel = Path(result.stdout.strip())
        return self._toplevel

    def current_branch(self) -> str:
        """Return the checked out branch, or "HEAD" when detached."""
        result = self.run("symbolic-ref", "--quiet", "--short", "HEAD", check=False)
        if result.ok:
            return result.stdout.strip()
        return "HEAD"

    def head_commit(self) -> str:
        return self.run("rev-parse", "--verify", "HEAD").stdout.strip()

    def resolve_commit(self, rev: str) -> str | None:
        result = self.run("rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}", check=False)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def user_name(self) -> str:
        result = self.run("config", "user.name", check=False)
        return result.stdout.strip() if result.ok else ""

    def staged_paths(self) -> list[str]:
        return _split_z(self.run("diff", "--cached", "--name-only", "--no-renames", "-z").stdout)

    def unstaged_diff_paths(self) -> list[str]:
        return _split_z(self.run("diff", "--name-only", "--no-renames", "-z").stdout)

    def untracked_paths(self) -> list[str]:
        result = self.run("ls-files", "--others", "--exclude-standard", "--full-name", "-z")
        return _split_z(result.stdout)

    def scratch_index(self) -> Path:
        """Copy the real index to a scratch file inside the git directory."""
        index_path = self._git_path("index")
        scratch_path = self._git_path(SCRATCH_INDEX_NAME)
        if index_path.exists():
            shutil.copyfile(index_path, scratch_path)
        else:
            scratch_path.unlink(missing_ok=True)
        return scratch_path

    def stage_all(self, index_file: Path | None = None) -> None:
        self.run("add", "--all", "--", ":/", env=_index_env(index_file))

    def write_tree(self, index_file: Path | None = None) -> str:
        return self.run("write-tree", env=_index_env(index_file)).stdout.strip()

    def commit(
        self,
        message: str,
        trailers: Mapping[str, str],
        *,
        tree: str,
        parents: Sequence[str],
    ) -> str:
        """Create a commit object for `tree` without touching HEAD or the index."""
        full_message = message.rstrip("\n")
        if trailers:
            trailer_block = "\n".join(f"{key}: {value}" for key, value in trailers.items())
            full_message = f"{full_message}\n\n{trailer_block}"
        args = ["commit-tree", tree]
        for parent in parents:
            args.extend(["-p", parent])
        args.extend(["-F", "-"])
        return self.run(*args, input_text=f"{full_message}\n").stdout.strip()

    def create_branch(self, name: str, start_point: str) -> None:
        self.run("branch", "--no-track", name, start_point)

    def checkout(self, branch: str) -> None:
        self.run("checkout", "--quiet", branch)

    def checkout_detached(self, commit: str) -> None:
        self.run("checkout", "--quiet", "--detach", commit)

    def delete_branch(self, name: str, *, local: bool = True, remote: bool = False) -> None:
        if local:
            self.run("branch", "-D", name)
        if remote:
            self.run("push", "--quiet", self.remote, "--delete", name)

    def push(self, branch: str) -> None:
        self.run("push", "--quiet", "--set-upstream", self.remote, branch)

    def list_branches(
        self,
        *,
        local: bool = True,
        remote: bool = True,
        prefix: str = f"{WIP_PREFIX}/",
    ) -> BranchListing:
        local_names: list[str] = []
        remote_names: list[str] = []
        if local:
            result = self.run("for-each-ref", "--format=%(refname)", f"refs/heads/{prefix}")
            for line in result.stdout.splitlines():
                name = line.strip().removeprefix("refs/heads/")
                if name.startswith(prefix):
                    local_names.append(name)
        if remote:
            result = self.run("ls-remote", "--heads", self.remote)
            for line in result.stdout.splitlines():
                _, _, ref = line.partition("\t")
                name = ref.strip().removeprefix("refs/heads/")
                if name.startswith(prefix):
                    remote_names.append(name)
        return BranchListing(local=tuple(local_names), remote=tuple(remote_names))

    def has_remote(self) -> bool:
        result = self.run("remote")
        return self.remote in {line.strip() for line in result.stdout.splitlines()}

    def fetch_branch(self, name: str) -> None:
        self.run("fetch", "--quiet", self.remote, f"refs/heads/{name}:refs/heads/{name}")

    def stash(self, message: str) -> None:
        self.run("stash", "push", "--quiet", "--include-untracked", "-m", message)

    def find_stash(self, message: str) -> str | None:
        result = self.run("stash", "list", "--format=%gd%x09%s")
        for line in result.stdout.splitlines():
            ref, _, subject = line.partition("\t")
            if subject.endswith(f": {message}") or subject == message:
                return ref.strip()
        return None

    def stash_pop(self, ref: str | None = None) -> None:
        args = ["stash", "pop", "--quiet"]
        if ref:
            args.append(ref)
        self.run(*args)

    def commit_message(self, rev: str) -> str:
        return self.run("log", "-1", "--format=%B", rev, "--").stdout

    def commit_parents(self, rev: str) -> list[str]:
        result = self.run("rev-list", "--parents", "-n", "1", rev, "--")
        return result.stdout.split()[1:]

    def materialize(self, rev: str) -> None:
        """Write every path of `rev` into the index and the working tree."""
        self.run("checkout", rev, "--", ":/")

    def paths_between(self, base: str, rev: str, diff_filter: str) -> list[str]:
        result = self.run(
            "diff",
            "--name-only",
            "--no-renames",
            "-z",
            f"--diff-filter={diff_filter}",
            base,
            rev,
            "--",
        )
        return _split_z(result.stdout)

    def remove_worktree_paths(self, paths: Iterable[str]) -> None:
        root = self.toplevel()
        for path in paths:
            (root / path).unlink(missing_ok=True)

    def read_tree(self, tree: str) -> None:
        self.run("read-tree", tree)

    def unstage(self, paths: Sequence[str]) -> None:
        if not paths:
            return
        self.run("reset", "--quiet", "HEAD", "--", *paths)

    def discard_worktree_changes(self) -> None:
        self.run("reset", "--hard", "--quiet", "HEAD")

    def _git_path(self, name: str) -> Path:
        raw = Path(self.run("rev-parse", "--git-path", name).stdout.strip())
        if raw.is_absolute():
            return raw
        return self.toplevel() / raw


def _index_env(index_file: Path | None) -> dict[str, str] | None:
    if index_file is None:
        return None
    return {"GIT_INDEX_FILE": str(index_file)}


def _split_z(output: str) -> list[str]:
    return [item for item in output.split("\0") if item]
