"""MCP server entrypoint and tool definitions for git-wippy."""

from __future__ import annotations

import argparse
import json
import logging
import time
import uuid
from typing import Annotated, Any, Callable

from mcp.server.fastmcp import FastMCP
from pydantic import Field, ValidationError

from . import __version__
from .engine import WippyEngine
from .errors import ErrorCode, WippyError
from .models import DeleteRequest, ListRequest, RestoreRequest, SaveRequest, Scope
from .prompts import ScriptedPrompter
from .runtime import configure_logging, get_runtime_defaults

logger = logging.getLogger(__name__)


def _build_fastmcp() -> FastMCP:
    """Instantiate FastMCP with compatibility fallbacks for older SDK versions."""
    kwargs: dict[str, Any] = {
        "name": "git-wippy",
        "instructions": (
            "Save and restore git work in progress as wip/<user>/<timestamp> branches. "
            "Use wip_save to snapshot staged, unstaged and untracked changes, wip_list to "
            "enumerate snapshots, wip_restore to bring one back onto its source branch, "
            "and wip_delete to remove snapshots. Destructive tools only act when "
            "confirm=true or force=true."
        ),
        "version": __version__,
        "json_response": True,
    }
    optional_keys = ("version", "json_response")

    while True:
        try:
            return FastMCP(**kwargs)
        except TypeError as exc:
            message = str(exc).lower()
            if "unexpected keyword argument" not in message:
                raise

            removed_key = next((key for key in optional_keys if key in message and key in kwargs), None)
            if removed_key is None:
                raise
            kwargs.pop(removed_key, None)
            logger.debug(
                "FastMCP constructor does not support '%s'; using compatibility fallback.",
                removed_key,
            )


mcp = _build_fastmcp()

READ_ONLY_TOOL_ANNOTATIONS = {
    "readOnlyHint": True,
    "idempotentHint": True,
    "destructiveHint": False,
    "openWorldHint": True,
}

WRITE_TOOL_ANNOTATIONS = {
    "readOnlyHint": False,
    "idempotentHint": False,
    "destructiveHint": False,
    "openWorldHint": True,
}

DESTRUCTIVE_WRITE_TOOL_ANNOTATIONS = {
    "readOnlyHint": False,
    "idempotentHint": False,
    "destructiveHint": True,
    "openWorldHint": True,
}


def _register_tool(annotations: dict[str, bool]):
    """Register tool with annotations, with backwards-compatible fallback."""

    def decorator(func):
        try:
            return mcp.tool(annotations=annotations)(func)
        except TypeError as exc:
            message = str(exc).lower()
            if "annotations" not in message and "unexpected keyword argument" not in message:
                raise
            logger.debug("FastMCP tool annotations not supported in this SDK version; using fallback.")
            return mcp.tool()(func)

    return decorator


def _build_engine(confirm: bool = False) -> WippyEngine:
    """Engine whose prompts are answered with `confirm`; selections always cancel."""
    return WippyEngine(
        defaults=get_runtime_defaults(),
        prompter=ScriptedPrompter(default_confirm=confirm),
    )


def _error_payload_from_exception(exc: Exception) -> dict[str, Any]:
    """Convert internal exceptions into stable MCP error payloads."""
    if isinstance(exc, WippyError):
        payload = exc.to_payload()
    elif isinstance(exc, ValidationError):
        payload = {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT.value,
            "message": "Input validation failed",
            "suggestion": "Check field constraints and request schema.",
            "details": {"errors": exc.errors(include_context=False, include_input=False)},
        }
    elif isinstance(exc, ValueError):
        payload = {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT.value,
            "message": str(exc),
            "suggestion": "Fix the WIPPY_* environment of the server process.",
            "details": {},
        }
    else:
        logger.exception("Unhandled server exception", exc_info=exc)
        payload = {
            "status": "error",
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "message": str(exc),
            "suggestion": "Check server logs and retry the operation.",
            "details": {},
        }
    return payload


def _build_correlation_id() -> str:
    """Generate short operation correlation IDs for diagnostics."""
    return uuid.uuid4().hex[:12]


def _log_tool_phase(
    *,
    correlation_id: str,
    tool_name: str,
    phase: str,
    status: str,
    elapsed_seconds: float,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit structured phase-level diagnostics for tool execution."""
    payload: dict[str, Any] = {
        "event_type": "mcp_tool_phase",
        "correlation_id": correlation_id,
        "tool_name": tool_name,
        "phase": phase,
        "status": status,
        "elapsed_ms": round(elapsed_seconds * 1000, 3),
    }
    if details:
        payload["details"] = details
    logger.info("mcp_tool_phase %s", json.dumps(payload, ensure_ascii=True, sort_keys=True))


def _run_tool(
    tool_name: str,
    request_payload: dict[str, Any],
    operation: Callable[[], dict[str, Any]],
) -> dict[str, Any]:
    """Execute a tool operation, converting failures into error payloads."""
    start = time.perf_counter()
    correlation_id = _build_correlation_id()
    logger.debug("%s request %s", tool_name, json.dumps(request_payload, default=str, sort_keys=True))
    try:
        response_payload = dict(operation())
    except Exception as exc:  # noqa: BLE001
        error_payload = _error_payload_from_exception(exc)
        error_payload["correlation_id"] = correlation_id
        _log_tool_phase(
            correlation_id=correlation_id,
            tool_name=tool_name,
            phase="total",
            status="error",
            elapsed_seconds=time.perf_counter() - start,
            details={"error_code": error_payload.get("error_code"), "exception": exc.__class__.__name__},
        )
        return error_payload

    response_payload["correlation_id"] = correlation_id
    _log_tool_phase(
        correlation_id=correlation_id,
        tool_name=tool_name,
        phase="total",
        status=str(response_payload.get("status", "ok")),
        elapsed_seconds=time.perf_counter() - start,
    )
    return response_payload


@_register_tool(WRITE_TOOL_ANNOTATIONS)
def wip_save(
    directory: Annotated[str, Field(description="Path inside the git work tree to snapshot")],
    local: Annotated[bool, Field(description="Keep the WIP branch local; do not push it")] = False,
    username: Annotated[
        str | None,
        Field(description="Owner name used in the branch name (defaults to git user.name)"),
    ] = None,
    timestamp: Annotated[
        str | None,
        Field(description="ISO timestamp used in the branch name (defaults to now)"),
    ] = None,
    label: Annotated[
        str | None,
        Field(max_length=100, description="Suffix appended to the branch name"),
    ] = None,
) -> dict[str, Any]:
    """Save staged, unstaged and untracked changes to a new WIP branch."""
    request_payload = {
        "directory": directory,
        "local": local,
        "username": username,
        "timestamp": timestamp,
        "label": label,
    }

    def _operation() -> dict[str, Any]:
        request = SaveRequest(
            directory=directory,
            local=local,
            username=username,
            timestamp=timestamp,
            label=label,
        )
        return _build_engine().save(request).model_dump(mode="json")

    return _run_tool("wip_save", request_payload=request_payload, operation=_operation)


@_register_tool(READ_ONLY_TOOL_ANNOTATIONS)
def wip_list(
    directory: Annotated[str, Field(description="Path inside the git work tree")],
    all_users: Annotated[bool, Field(description="Include WIP branches of every user")] = False,
    include_remote: Annotated[bool, Field(description="Also list branches on the remote")] = True,
) -> dict[str, Any]:
    """List WIP branches newest first, with their locality."""
    request_payload = {
        "directory": directory,
        "all_users": all_users,
        "include_remote": include_remote,
    }

    def _operation() -> dict[str, Any]:
        request = ListRequest(
            directory=directory,
            scope=Scope.ALL if all_users else Scope.MINE,
            include_remote=include_remote,
        )
        return _build_engine().list_snapshots(request).model_dump(mode="json")

    return _run_tool("wip_list", request_payload=request_payload, operation=_operation)


@_register_tool(DESTRUCTIVE_WRITE_TOOL_ANNOTATIONS)
def wip_restore(
    directory: Annotated[str, Field(description="Path inside the git work tree")],
    branch: Annotated[
        str | None,
        Field(description="WIP branch to restore; optional when exactly one exists"),
    ] = None,
    autostash: Annotated[
        bool,
        Field(description="Stash local changes first and reapply them after the restore"),
    ] = False,
    force: Annotated[bool, Field(description="Delete the remote copy without confirmation")] = False,
    confirm: Annotated[
        bool,
        Field(description="Answer yes to the remote deletion prompt"),
    ] = False,
    all_users: Annotated[bool, Field(description="Allow restoring another user's branch")] = False,
) -> dict[str, Any]:
    """Restore a WIP branch onto its source branch and delete it."""
    request_payload = {
        "directory": directory,
        "branch": branch,
        "autostash": autostash,
        "force": force,
        "confirm": confirm,
        "all_users": all_users,
    }

    def _operation() -> dict[str, Any]:
        request = RestoreRequest(
            directory=directory,
            branch=branch,
            autostash=autostash,
            force=force,
            all_users=all_users,
        )
        return _build_engine(confirm).restore(request).model_dump(mode="json")

    return _run_tool("wip_restore", request_payload=request_payload, operation=_operation)


@_register_tool(DESTRUCTIVE_WRITE_TOOL_ANNOTATIONS)
def wip_delete(
    directory: Annotated[str, Field(description="Path inside the git work tree")],
    branches: Annotated[
        list[str] | None,
        Field(description="WIP branches to delete", max_length=100),
    ] = None,
    all: Annotated[bool, Field(description="Delete every WIP branch in scope")] = False,
    include_remote: Annotated[
        bool | None,
        Field(
            description=(
                "true: also delete remote copies (error without a remote); "
                "false: local only; null: remote copies when a remote exists"
            )
        ),
    ] = None,
    force: Annotated[bool, Field(description="Skip every confirmation")] = False,
    confirm: Annotated[bool, Field(description="Answer yes to the confirmation prompts")] = False,
    all_users: Annotated[bool, Field(description="Allow deleting other users' branches")] = False,
) -> dict[str, Any]:
    """Delete WIP branches locally and on the remote."""
    request_payload = {
        "directory": directory,
        "branches": branches or [],
        "all": all,
        "include_remote": include_remote,
        "force": force,
        "confirm": confirm,
        "all_users": all_users,
    }

    def _operation() -> dict[str, Any]:
        request = DeleteRequest(
            directory=directory,
            branches=branches or [],
            all=all,
            include_remote=include_remote,
            force=force,
            all_users=all_users,
        )
        return _build_engine(confirm).delete(request).model_dump(mode="json")

    return _run_tool("wip_delete", request_payload=request_payload, operation=_operation)


def main() -> None:
    """Run the git-wippy MCP server over stdio."""
    parser = argparse.ArgumentParser(description="git-wippy MCP server")
    try:
        defaults = get_runtime_defaults()
    except ValueError as exc:
        parser.error(str(exc))
    parser.add_argument(
        "--log-level",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        default=defaults.log_level,
        help="Log level for stderr diagnostics.",
    )
    args = parser.parse_args()
    configure_logging(args.log_level)
    mcp.run()


if __name__ == "__main__":
    main()
