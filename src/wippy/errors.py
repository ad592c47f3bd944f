"""Domain-specific error types for git-wippy operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Supported error codes exposed by the CLI and MCP tools."""

    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    BRANCH_NOT_FOUND = "BRANCH_NOT_FOUND"
    BRANCH_EXISTS = "BRANCH_EXISTS"
    DIRTY_WORKING_TREE = "DIRTY_WORKING_TREE"
    DIRTY_TARGET_CONFLICT = "DIRTY_TARGET_CONFLICT"
    REMOTE_UNAVAILABLE = "REMOTE_UNAVAILABLE"
    PARTIAL_DELETE_FAILURE = "PARTIAL_DELETE_FAILURE"
    USER_CANCELLED = "USER_CANCELLED"
    STASH_CONFLICT = "STASH_CONFLICT"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_SNAPSHOT = "INVALID_SNAPSHOT"
    NOT_A_REPOSITORY = "NOT_A_REPOSITORY"
    TOOL_OPERATION_FAILED = "TOOL_OPERATION_FAILED"
    INTERRUPTED = "INTERRUPTED"
    INVALID_INPUT = "INVALID_INPUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class WippyError(Exception):
    """Structured exception carrying a stable error contract."""

    code: ErrorCode
    message: str
    suggestion: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": "error",
            "error_code": self.code.value,
            "message": self.message,
            "suggestion": self.suggestion or "",
            "details": self.details,
        }
