"""Runtime configuration helpers."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from .constants import DEFAULT_REMOTE

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


@dataclass(frozen=True)
class RuntimeDefaults:
    """Runtime settings sourced from environment variables."""

    remote: str = DEFAULT_REMOTE
    username: str = ""
    git_executable: str = "git"
    log_level: str = "WARNING"
    push: bool = True


def get_runtime_defaults(env: Mapping[str, str] | None = None) -> RuntimeDefaults:
    """Validate and return runtime defaults from environment variables."""
    source = os.environ if env is None else env

    remote = source.get("WIPPY_REMOTE", DEFAULT_REMOTE).strip()
    if not remote or any(char.isspace() for char in remote):
        raise ValueError("WIPPY_REMOTE must be a non-empty remote name without whitespace.")

    git_executable = source.get("WIPPY_GIT", "git").strip()
    if not git_executable:
        raise ValueError("WIPPY_GIT must not be empty.")

    log_level = source.get("WIPPY_LOG_LEVEL", "WARNING").strip().upper() or "WARNING"
    if log_level not in LOG_LEVELS:
        raise ValueError(f"WIPPY_LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}.")

    return RuntimeDefaults(
        remote=remote,
        username=source.get("WIPPY_USERNAME", "").strip(),
        git_executable=git_executable,
        log_level=log_level,
        push=_parse_bool_env(source=source, key="WIPPY_PUSH", default=True),
    )


def configure_logging(level: str | int = "WARNING") -> None:
    """Route log records to stderr; stdout is reserved for command output."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


def _parse_bool_env(source: Mapping[str, str], key: str, default: bool) -> bool:
    raw = source.get(key)
    if raw is None or not str(raw).strip():
        return default
    normalized = str(raw).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean value (true/false).")
