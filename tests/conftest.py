"""Shared fixtures: a scripted git double and request factory."""

import asyncio
from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from git_autosaver.config import Config
from git_autosaver.git_wrapper import CommandResult
from git_autosaver.pipeline import SaveRequest

HANG = object()
"""Sentinel result: the command never finishes (used for timeout tests)."""


class FakeGit:
    """An in-memory stand-in for `GitRunner`.

    Commands succeed with empty output unless a result was scripted for them.
    `remote get-url` / `remote set-url` read and write `self.url`.
    """

    def __init__(self, url: str = "https://github.com/me/notes.git"):
        self.url = url
        self.calls: list[list[str]] = []
        self.cwds: list[str] = []
        self.results: dict[str, list[Any]] = {}

    def script(self, command: str, *results: Any) -> None:
        """Queues results for a command key ('add', 'push', 'remote set-url'...)."""
        self.results.setdefault(command, []).extend(results)

    async def run(self, args: list[str], cwd: str) -> CommandResult:
        self.calls.append(list(args))
        self.cwds.append(str(cwd))
        key = f"remote {args[1]}" if args[0] == "remote" else args[0]

        queued = self.results.get(key)
        result = queued.pop(0) if queued else None
        if result is HANG:
            await asyncio.Event().wait()
        if result is None:
            if key == "remote get-url":
                result = CommandResult(0, self.url + "\n")
            else:
                result = CommandResult(0, "")
        if key == "remote set-url" and result.ok:
            self.url = args[3]
        return result

    def commands(self) -> list[str]:
        return [" ".join(call[:2]) if call[0] == "remote" else call[0] for call in self.calls]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory: pytest.TempPathFactory, mocker: MagicMock) -> Any:
    """Keeps the user's global config file out of every test."""
    missing = tmp_path_factory.mktemp("config") / "config.toml"
    mocker.patch("git_autosaver.config.CONFIG_FILE", missing)
    Config._global_cache = None
    yield
    Config._global_cache = None


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def make_request(tmp_path: Path) -> Callable[..., SaveRequest]:
    """Builds SaveRequests rooted in the test's temporary directory."""

    def factory(name: str = "notes.md", timestamp: str = "2024-01-01 12:00:00") -> SaveRequest:
        return SaveRequest(
            path=str(tmp_path / name),
            display_name=name,
            working_directory=str(tmp_path),
            timestamp=timestamp,
        )

    return factory


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A directory that looks like a git checkout, with one markdown file."""
    (tmp_path / ".git").mkdir()
    (tmp_path / "notes.md").write_text("# Notes\n")
    return tmp_path
