"""Step bookkeeping and compensating rollback for multi-step operations."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from .errors import ErrorCode, WippyError
from .git import GitCommandError
from .models import EventKind, OutcomeEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationTrail:
    """Runs the named steps of one operation and remembers how to undo them.

    Each completed step may register a compensation. On failure (or user
    interrupt) `fail` runs the compensations newest-first and returns an error
    describing which steps completed and what could not be undone.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.completed_steps: list[str] = []
        self.events: list[OutcomeEvent] = []
        self._compensations: list[tuple[str, str, Callable[[], Any]]] = []

    def emit(self, kind: EventKind, branch: str = "", **details: Any) -> None:
        self.events.append(OutcomeEvent(kind=kind, branch=branch, details=details))

    def run(
        self,
        step: str,
        action: Callable[[], T],
        *,
        compensate: Callable[[], Any] | None = None,
        residual: str = "",
    ) -> T:
        """Execute `action` as `step`, wrapping git failures with the step name.

        `residual` describes the repository state left behind if the
        compensation for this step cannot run.
        """
        logger.info("%s: %s", self.operation, step)
        try:
            result = action()
        except GitCommandError as exc:
            raise WippyError(
                ErrorCode.TOOL_OPERATION_FAILED,
                f"{self.operation} failed at step '{step}': {exc.stderr or exc}",
                "Inspect the repository state reported in details and finish manually.",
                {
                    "step": step,
                    "command": ["git", *exc.command],
                    "returncode": exc.returncode,
                    "stderr": exc.stderr,
                },
            ) from exc
        except WippyError as exc:
            exc.details.setdefault("step", step)
            raise
        self.completed_steps.append(step)
        if compensate is not None:
            self._compensations.append((step, residual or f"step '{step}' not undone", compensate))
        return result

    def settle(self) -> None:
        """Forget every pending compensation."""
        self._compensations.clear()

    def rollback(self) -> tuple[list[str], list[str]]:
        rolled_back: list[str] = []
        residual_state: list[str] = []
        while self._compensations:
            step, residual, compensate = self._compensations.pop()
            try:
                compensate()
            except (GitCommandError, WippyError, OSError) as exc:
                logger.warning("%s: rollback of '%s' failed: %s", self.operation, step, exc)
                residual_state.append(f"{residual} ({exc})")
                continue
            rolled_back.append(step)
            self.emit(EventKind.ROLLED_BACK_STEP, step=step)
        return rolled_back, residual_state

    def fail(self, exc: BaseException) -> WippyError:
        """Roll back and return the error to raise in place of `exc`."""
        rolled_back, residual_state = self.rollback()
        if isinstance(exc, WippyError):
            error = exc
        elif isinstance(exc, KeyboardInterrupt):
            error = WippyError(
                ErrorCode.INTERRUPTED,
                f"{self.operation} interrupted",
                "Check details.residual_state before running another command.",
            )
        else:
            error = WippyError(
                ErrorCode.INTERNAL_ERROR,
                f"{self.operation} failed: {exc}",
                "Check details.residual_state and the logs.",
            )
        error.details["completed_steps"] = list(self.completed_steps)
        error.details["rolled_back"] = rolled_back
        residual_state = [*error.details.get("residual_state", []), *residual_state]
        error.details["residual_state"] = residual_state
        if residual_state:
            error.suggestion = (
                "Rollback was incomplete; fix the repository state listed in "
                "details.residual_state manually."
            )
        return error
