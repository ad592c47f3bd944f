from __future__ import annotations

import logging

import pytest

from wippy.runtime import RuntimeDefaults, configure_logging, get_runtime_defaults


def test_runtime_defaults_without_environment() -> None:
    assert get_runtime_defaults({}) == RuntimeDefaults(
        remote="origin",
        username="",
        git_executable="git",
        log_level="WARNING",
        push=True,
    )


def test_runtime_defaults_from_environment() -> None:
    defaults = get_runtime_defaults(
        {
            "WIPPY_REMOTE": "upstream",
            "WIPPY_USERNAME": " Jane Doe ",
            "WIPPY_GIT": "/usr/local/bin/git",
            "WIPPY_LOG_LEVEL": "debug",
            "WIPPY_PUSH": "off",
        }
    )
    assert defaults.remote == "upstream"
    assert defaults.username == "Jane Doe"
    assert defaults.git_executable == "/usr/local/bin/git"
    assert defaults.log_level == "DEBUG"
    assert defaults.push is False


@pytest.mark.parametrize(
    ("env", "fragment"),
    [
        ({"WIPPY_PUSH": "maybe"}, "WIPPY_PUSH"),
        ({"WIPPY_LOG_LEVEL": "chatty"}, "WIPPY_LOG_LEVEL"),
        ({"WIPPY_REMOTE": "my remote"}, "WIPPY_REMOTE"),
        ({"WIPPY_GIT": "  "}, "WIPPY_GIT"),
    ],
)
def test_runtime_defaults_reject_invalid_values(env: dict[str, str], fragment: str) -> None:
    with pytest.raises(ValueError, match=fragment):
        get_runtime_defaults(env)


def test_runtime_defaults_read_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WIPPY_REMOTE", "mirror")
    assert get_runtime_defaults().remote == "mirror"


def test_configure_logging_sets_root_level() -> None:
    configure_logging("info")
    assert logging.getLogger().level == logging.INFO
    configure_logging(logging.WARNING)
    assert logging.getLogger().level == logging.WARNING
