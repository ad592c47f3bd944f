"""Command line interface for git-wippy with parity to the MCP tools."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from .engine import WippyEngine
from .errors import ErrorCode, WippyError
from .models import DeleteRequest, EventKind, ListRequest, RestoreRequest, SaveRequest, Scope
from .prompts import TerminalPrompter
from .runtime import RuntimeDefaults, configure_logging, get_runtime_defaults

logger = logging.getLogger(__name__)

COMMAND_ALIASES = {"s": "save", "l": "list", "r": "restore", "d": "delete"}

EVENT_MESSAGES: dict[EventKind, str] = {
    EventKind.SAVING_WIP: "Saving work in progress...",
    EventKind.NOTHING_TO_SAVE: "No changes to save.",
    EventKind.STAGED_ALL_CHANGES: "Staged all changes.",
    EventKind.COMMITTED_CHANGES: "Committed changes ({commit}).",
    EventKind.CREATED_BRANCH: "Created branch {branch}.",
    EventKind.PUSHED_CHANGES: "Pushed {branch} to {remote}.",
    EventKind.SKIPPED_PUSH_NO_REMOTE: "No remote '{remote}' configured, skipping push.",
    EventKind.SKIPPED_PUSH_LOCAL: "Local save, skipping push.",
    EventKind.SWITCHED_BACK: "Back on {branch}.",
    EventKind.WIP_BRANCH_CREATED: "WIP branch {branch} created.",
    EventKind.NO_WIP_BRANCHES: "No WIP branches found.",
    EventKind.FOUND_WIP_BRANCHES: "Found {count} WIP branch(es).",
    EventKind.REMOTE_LIST_FAILED: "Could not list branches on '{remote}': {error}",
    EventKind.RESTORING_WIP: "Restoring {branch}...",
    EventKind.FETCHED_BRANCH: "Fetched {branch} from {remote}.",
    EventKind.STASHED_EXISTING_CHANGES: "Stashed existing changes as '{stash}'.",
    EventKind.CHECKED_OUT_BRANCH: "Checked out {branch}.",
    EventKind.CREATED_SOURCE_BRANCH: "Recreated source branch {branch} at {base_commit}.",
    EventKind.APPLIED_CHANGES: "Applied changes from {branch}.",
    EventKind.RECREATED_FILE_STATES: (
        "Recreated file states: {staged} staged, {unstaged} unstaged, {untracked} untracked."
    ),
    EventKind.RESTORED_EXISTING_CHANGES: "Restored the stashed changes.",
    EventKind.DELETED_LOCAL_BRANCH: "Deleted local branch {branch}.",
    EventKind.DELETED_REMOTE_BRANCH: "Deleted {branch} on {remote}.",
    EventKind.LOCAL_DELETE_FAILED: "Failed to delete local branch {branch}: {error}",
    EventKind.REMOTE_DELETE_FAILED: "Failed to delete {branch} on {remote}: {error}",
    EventKind.KEPT_REMOTE_BRANCH: "Kept {branch} on {remote}.",
    EventKind.RESTORE_COMPLETE: "Restore of {branch} complete.",
    EventKind.DELETE_COMPLETE: "Deleted {count} WIP branch(es).",
    EventKind.NO_BRANCHES_SELECTED: "No branches selected.",
    EventKind.OPERATION_CANCELLED: "Operation cancelled.",
    EventKind.ROLLED_BACK_STEP: "Rolled back step '{step}'.",
}


class _BlankDetails(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render_event(event: dict[str, Any]) -> str:
    try:
        kind = EventKind(event.get("kind"))
    except ValueError:
        return str(event.get("kind", ""))
    values = _BlankDetails(event.get("details") or {})
    values["branch"] = event.get("branch", "")
    return EVENT_MESSAGES[kind].format_map(values)


def _print_payload(payload: dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2))
        return

    for event in payload.get("events", []):
        print(render_event(event))

    status = payload.get("status", "unknown").upper()
    message = payload.get("message", "")
    print(f"[{status}] {message}")

    if payload.get("status") == "error":
        error_code = payload.get("error_code", "")
        suggestion = payload.get("suggestion", "")
        if error_code:
            print(f"error_code: {error_code}")
        if suggestion:
            print(f"suggestion: {suggestion}")
        for item in payload.get("details", {}).get("residual_state", []):
            print(f"residual: {item}")
        return

    for key in ("branch_name", "source_branch", "username", "count"):
        if key in payload and payload[key] not in ("", None):
            print(f"{key}: {payload[key]}")

    for key in ("staged", "unstaged", "untracked"):
        paths = payload.get(key) or []
        if paths:
            print(f"{key}:")
            for path in paths:
                print(f"  {path}")

    if "branches" in payload:
        for branch in payload["branches"]:
            label = f" ({branch['label']})" if branch.get("label") else ""
            print(f"- {branch.get('name')} [{branch.get('locality')}]{label}")


def _error_payload(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, WippyError):
        return exc.to_payload()
    if isinstance(exc, ValidationError):
        errors: Any
        try:
            errors = exc.errors(include_context=False, include_input=False)
        except TypeError:
            errors = exc.errors()
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT.value,
            "message": "Input validation failed",
            "suggestion": "Check command arguments and constraints.",
            "details": {"errors": errors},
        }
    return {
        "status": "error",
        "error_code": ErrorCode.INTERNAL_ERROR.value,
        "message": str(exc),
        "suggestion": "Retry with --json -v for diagnostics and inspect logs.",
        "details": {},
    }


def _parse_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise WippyError(
            ErrorCode.INVALID_INPUT,
            f"Invalid --datetime value: {value}",
            "Use ISO format, e.g. 2024-05-01T14:30:00.",
        ) from exc


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-d", "--directory", default=".", help="Repository directory")
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="git-wippy", description="Save and restore work in progress as git branches")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr (-vv for git commands)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    save = subparsers.add_parser("save", aliases=["s"], help="Save the working tree to a WIP branch")
    save.add_argument("-l", "--local", action="store_true", help="Do not push the WIP branch")
    save.add_argument("-u", "--username", default=None, help="Owner name used in the branch name")
    save.add_argument("--datetime", default=None, help="Timestamp used in the branch name (ISO format)")
    save.add_argument("--label", default=None, help="Suffix appended to the branch name")
    _add_common(save)

    list_parser = subparsers.add_parser("list", aliases=["l"], help="List WIP branches")
    list_parser.add_argument("--all-users", action="store_true", help="Include other users' branches")
    list_parser.add_argument("--no-remote", action="store_true", help="Skip the remote listing")
    _add_common(list_parser)

    restore = subparsers.add_parser("restore", aliases=["r"], help="Restore a WIP branch and delete it")
    restore.add_argument("branch", nargs="?", default=None, help="WIP branch to restore")
    restore.add_argument("--autostash", action="store_true", help="Stash local changes and reapply them after")
    restore.add_argument("-f", "--force", action="store_true", help="Delete the remote copy without asking")
    restore.add_argument("--all-users", action="store_true", help="Allow other users' branches")
    _add_common(restore)

    delete = subparsers.add_parser("delete", aliases=["d"], help="Delete WIP branches")
    delete.add_argument("branches", nargs="*", help="WIP branches to delete")
    delete.add_argument("-a", "--all", action="store_true", help="Delete every matching WIP branch")
    delete.add_argument("-f", "--force", action="store_true", help="Do not ask for confirmation")
    remote_group = delete.add_mutually_exclusive_group()
    remote_group.add_argument(
        "-l",
        "--local",
        dest="include_remote",
        action="store_false",
        default=None,
        help="Delete local branches only",
    )
    remote_group.add_argument(
        "-r",
        "--remote",
        dest="include_remote",
        action="store_true",
        default=None,
        help="Also delete remote branches; fail when no remote is configured",
    )
    delete.add_argument("--all-users", action="store_true", help="Allow other users' branches")
    _add_common(delete)

    return parser


def _log_level(defaults: RuntimeDefaults, verbose: int) -> str:
    if verbose >= 2 or defaults.log_level == "DEBUG":
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return defaults.log_level


def _build_engine(defaults: RuntimeDefaults) -> WippyEngine:
    return WippyEngine(defaults=defaults, prompter=TerminalPrompter())


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    as_json = bool(getattr(args, "json", False))

    try:
        defaults = get_runtime_defaults()
    except ValueError as exc:
        parser.error(str(exc))
    configure_logging(_log_level(defaults, args.verbose))
    engine = _build_engine(defaults)

    try:
        command = COMMAND_ALIASES.get(args.command, args.command)
        if command == "save":
            response = engine.save(
                SaveRequest(
                    directory=args.directory,
                    local=args.local,
                    username=args.username,
                    timestamp=_parse_datetime(args.datetime) if args.datetime else None,
                    label=args.label,
                )
            ).model_dump(mode="json")
        elif command == "list":
            response = engine.list_snapshots(
                ListRequest(
                    directory=args.directory,
                    scope=Scope.ALL if args.all_users else Scope.MINE,
                    include_remote=not args.no_remote,
                )
            ).model_dump(mode="json")
        elif command == "restore":
            response = engine.restore(
                RestoreRequest(
                    directory=args.directory,
                    branch=args.branch,
                    autostash=args.autostash,
                    force=args.force,
                    all_users=args.all_users,
                )
            ).model_dump(mode="json")
        else:
            response = engine.delete(
                DeleteRequest(
                    directory=args.directory,
                    branches=args.branches,
                    all=args.all,
                    include_remote=args.include_remote,
                    force=args.force,
                    all_users=args.all_users,
                )
            ).model_dump(mode="json")

        _print_payload(response, as_json=as_json)
        return 0 if response.get("status") in ("success", "cancelled") else 1
    except Exception as exc:  # noqa: BLE001
        logger.debug("Command failed", exc_info=True)
        payload = _error_payload(exc)
        _print_payload(payload, as_json=as_json)
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
