"""Confirmation and selection capability used by restore and delete."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Protocol, Sequence

import click


class ConfirmKind(str, Enum):
    DELETE_BRANCH = "delete-branch"
    DELETE_ALL = "delete-all"
    DELETE_SELECTED = "delete-selected"
    DELETE_REMOTE = "delete-remote"


class Prompter(Protocol):
    def confirm(self, kind: ConfirmKind, *, count: int | None = None, name: str | None = None) -> bool:
        """Ask a yes/no question; `count` or `name` identifies what is affected."""
        ...

    def select(self, options: Sequence[str], *, multiple: bool) -> list[str] | None:
        """Return the chosen options, or None when the user cancels."""
        ...


_CONFIRM_TEXT = {
    ConfirmKind.DELETE_BRANCH: "Delete WIP branch '{name}'?",
    ConfirmKind.DELETE_ALL: "Delete all {count} WIP branches?",
    ConfirmKind.DELETE_SELECTED: "Delete {count} selected WIP branches?",
    ConfirmKind.DELETE_REMOTE: "Also delete {count} branch(es) from the remote? This cannot be undone.",
}


class TerminalPrompter:
    """Interactive prompts on the controlling terminal."""

    def confirm(self, kind: ConfirmKind, *, count: int | None = None, name: str | None = None) -> bool:
        text = _CONFIRM_TEXT[kind].format(count=count if count is not None else 1, name=name or "")
        try:
            return bool(click.confirm(text, default=False))
        except click.Abort:
            return False

    def select(self, options: Sequence[str], *, multiple: bool) -> list[str] | None:
        if not options:
            return None
        for index, option in enumerate(options, start=1):
            click.echo(f"  {index}) {option}")
        hint = "comma-separated numbers, empty to cancel" if multiple else "number, empty to cancel"
        try:
            answer = click.prompt(f"Select ({hint})", default="", show_default=False)
        except click.Abort:
            return None
        indexes = _parse_indexes(answer, len(options))
        if not indexes or (not multiple and len(indexes) != 1):
            return None
        return [options[index] for index in indexes]


def _parse_indexes(answer: str, size: int) -> list[int]:
    indexes: list[int] = []
    for token in answer.replace(" ", ",").split(","):
        if not token:
            continue
        if not token.isdigit() or not 1 <= int(token) <= size:
            return []
        index = int(token) - 1
        if index not in indexes:
            indexes.append(index)
    return indexes


class ScriptedPrompter:
    """Answers prompts from fixed scripts and records what was asked."""

    def __init__(
        self,
        confirmations: Iterable[bool] | None = None,
        selections: Iterable[list[str] | None] | None = None,
        *,
        default_confirm: bool = False,
    ) -> None:
        self._confirmations = list(confirmations or [])
        self._selections = list(selections or [])
        self.default_confirm = default_confirm
        self.prompts: list[dict[str, object]] = []

    def confirm(self, kind: ConfirmKind, *, count: int | None = None, name: str | None = None) -> bool:
        self.prompts.append({"type": "confirm", "kind": kind, "count": count, "name": name})
        if self._confirmations:
            return self._confirmations.pop(0)
        return self.default_confirm

    def select(self, options: Sequence[str], *, multiple: bool) -> list[str] | None:
        self.prompts.append({"type": "select", "options": list(options), "multiple": multiple})
        if not self._selections:
            return None
        chosen = self._selections.pop(0)
        if chosen is None:
            return None
        return [option for option in chosen if option in options]

    @property
    def confirm_prompts(self) -> list[dict[str, object]]:
        return [prompt for prompt in self.prompts if prompt["type"] == "confirm"]
