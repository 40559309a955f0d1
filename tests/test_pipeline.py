"""Tests for the add/commit/push pipeline and its transport fallback."""

import datetime
import logging

import pytest
from conftest import HANG, FakeGit

from git_autosaver.config import PipelineConfig
from git_autosaver.errors import (
    CommandTimeout,
    CommitFailure,
    PublishFailure,
    PublishFallbackFailure,
    RemoteFetchFailure,
    SetUrlFailure,
    StageFailure,
)
from git_autosaver.git_wrapper import CommandResult
from git_autosaver.pipeline import GitOperationPipeline, PipelineState, SaveRequest

REJECTED = CommandResult(1, "! [rejected] main -> main (non-fast-forward)\n")


def test_save_request_admit_formats_timestamp() -> None:
    """Verifies that admission stamps the request with a second-resolution time."""
    moment = datetime.datetime(2024, 3, 9, 7, 5, 1)
    request = SaveRequest.admit("/r/notes.md", "notes.md", "/r", now=moment)
    assert request.timestamp == "2024-03-09 07:05:01"


@pytest.mark.asyncio
async def test_happy_path_runs_stages_in_order(fake_git: FakeGit, make_request) -> None:
    """Verifies add, commit (timestamp message) and push run once each, in order."""
    request = make_request()
    outcome = await GitOperationPipeline(fake_git).run(request)

    assert outcome.state is PipelineState.DONE
    assert outcome.ok
    assert fake_git.calls == [
        ["add", request.path],
        ["commit", "-m", request.timestamp],
        ["push"],
    ]
    assert set(fake_git.cwds) == {request.working_directory}


@pytest.mark.asyncio
async def test_stage_failure_stops_pipeline(fake_git: FakeGit, make_request) -> None:
    """Verifies that a failing `git add` fails the request before committing."""
    fake_git.script("add", CommandResult(128, "fatal: pathspec 'x' did not match"))

    outcome = await GitOperationPipeline(fake_git).run(make_request())

    assert outcome.state is PipelineState.FAILED
    assert isinstance(outcome.failure, StageFailure)
    assert "pathspec" in outcome.failure.detail
    assert fake_git.commands() == ["add"]


@pytest.mark.parametrize(
    "output",
    [
        "On branch main\nnothing to commit, working tree clean\n",
        "On branch main\nYour branch is up to date with 'origin/main'.\n",
    ],
)
@pytest.mark.asyncio
async def test_benign_commit_skips_publish(
    fake_git: FakeGit, make_request, output: str
) -> None:
    """Verifies that a no-op commit finishes DONE without pushing."""
    fake_git.script("commit", CommandResult(1, output))

    outcome = await GitOperationPipeline(fake_git).run(make_request())

    assert outcome.state is PipelineState.DONE
    assert outcome.noop_commit
    assert "push" not in fake_git.commands()


@pytest.mark.asyncio
async def test_benign_commit_publishes_when_configured(
    fake_git: FakeGit, make_request
) -> None:
    """Verifies the opt-in that pushes earlier unpushed commits after a no-op commit."""
    fake_git.script("commit", CommandResult(1, "nothing to commit"))
    config = PipelineConfig(publish_after_noop_commit=True)

    outcome = await GitOperationPipeline(fake_git, config).run(make_request())

    assert outcome.state is PipelineState.DONE
    assert outcome.noop_commit
    assert fake_git.commands() == ["add", "commit", "push"]


@pytest.mark.asyncio
async def test_commit_failure_carries_output(fake_git: FakeGit, make_request) -> None:
    """Verifies that an unexpected commit error fails with the raw output."""
    fake_git.script("commit", CommandResult(1, "error: gpg failed to sign the data"))

    outcome = await GitOperationPipeline(fake_git).run(make_request())

    assert outcome.state is PipelineState.FAILED
    assert isinstance(outcome.failure, CommitFailure)
    assert "gpg failed" in str(outcome.failure)
    assert "push" not in fake_git.commands()


@pytest.mark.asyncio
async def test_push_up_to_date_is_success(fake_git: FakeGit, make_request) -> None:
    """Verifies that an up-to-date push never touches the remote URL."""
    fake_git.script("push", CommandResult(1, "Everything up-to-date\n"))

    outcome = await GitOperationPipeline(fake_git).run(make_request())

    assert outcome.state is PipelineState.DONE
    assert fake_git.commands() == ["add", "commit", "push"]


@pytest.mark.asyncio
async def test_https_push_failure_falls_back_to_ssh(make_request) -> None:
    """Verifies that a rejected HTTPS push is retried over SSH and the URL is kept."""
    git = FakeGit(url="https://host/o/r.git")
    git.script("push", REJECTED, CommandResult(0, ""))

    outcome = await GitOperationPipeline(git).run(make_request())

    assert outcome.state is PipelineState.DONE
    assert ["remote", "set-url", "origin", "git@host:o/r.git"] in git.calls
    assert git.commands()[-1] == "push"
    assert git.url == "git@host:o/r.git"
    assert outcome.switched_url == "git@host:o/r.git"


@pytest.mark.asyncio
async def test_ssh_push_failure_falls_back_to_https(make_request) -> None:
    """Verifies the notes.md scenario: SSH rejected, HTTPS retry succeeds."""
    git = FakeGit(url="git@github.com:me/notes.git")
    git.script("push", REJECTED, CommandResult(0, ""))

    outcome = await GitOperationPipeline(git).run(make_request("notes.md"))

    assert outcome.state is PipelineState.DONE
    assert git.url == "https://github.com/me/notes.git"
    assert git.commands() == [
        "add",
        "commit",
        "push",
        "remote get-url",
        "remote set-url",
        "push",
    ]


@pytest.mark.asyncio
async def test_fallback_failure_restores_original_url(make_request) -> None:
    """Verifies that failing on both transports restores the original URL."""
    git = FakeGit(url="https://github.com/me/notes.git")
    git.script("push", REJECTED, CommandResult(128, "Permission denied (publickey)."))

    outcome = await GitOperationPipeline(git).run(make_request())

    assert outcome.state is PipelineState.FAILED
    assert isinstance(outcome.failure, PublishFallbackFailure)
    assert "both https and ssh" in outcome.failure.message
    assert "publickey" in outcome.failure.detail
    assert git.url == "https://github.com/me/notes.git"
    assert git.calls[-1] == [
        "remote",
        "set-url",
        "origin",
        "https://github.com/me/notes.git",
    ]


@pytest.mark.asyncio
async def test_restore_failure_is_logged_not_surfaced(
    make_request, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a failed restore keeps the fallback failure as the outcome."""
    caplog.set_level(logging.WARNING)
    git = FakeGit(url="https://github.com/me/notes.git")
    git.script("push", REJECTED, REJECTED)
    git.script("remote set-url", CommandResult(0, ""), CommandResult(1, "lock held"))

    outcome = await GitOperationPipeline(git).run(make_request())

    assert isinstance(outcome.failure, PublishFallbackFailure)
    assert "RESTORE ERROR" in caplog.text


@pytest.mark.asyncio
async def test_get_url_failure(fake_git: FakeGit, make_request) -> None:
    """Verifies that an unreadable remote URL ends the request."""
    fake_git.script("push", REJECTED)
    fake_git.script("remote get-url", CommandResult(2, "error: No such remote 'origin'"))

    outcome = await GitOperationPipeline(fake_git).run(make_request())

    assert isinstance(outcome.failure, RemoteFetchFailure)
    assert outcome.failure.message == "failed to get remote URL"
    assert "remote set-url" not in fake_git.commands()


@pytest.mark.asyncio
async def test_unsupported_url_reports_original_push_error(make_request) -> None:
    """Verifies that a local-path remote fails with the first push's output."""
    git = FakeGit(url="/srv/git/notes.git")
    git.script("push", REJECTED)

    outcome = await GitOperationPipeline(git).run(make_request())

    assert isinstance(outcome.failure, PublishFailure)
    assert "non-fast-forward" in outcome.failure.detail
    assert git.commands()[-1] == "remote get-url"


@pytest.mark.asyncio
async def test_set_url_failure(make_request) -> None:
    """Verifies that a failed URL switch ends the request without retrying."""
    git = FakeGit(url="https://github.com/me/notes.git")
    git.script("push", REJECTED)
    git.script("remote set-url", CommandResult(1, "error: could not lock config file"))

    outcome = await GitOperationPipeline(git).run(make_request())

    assert isinstance(outcome.failure, SetUrlFailure)
    assert git.url == "https://github.com/me/notes.git"
    assert git.commands().count("push") == 1


@pytest.mark.asyncio
async def test_custom_remote_name(make_request) -> None:
    """Verifies that the fallback targets the configured remote."""
    git = FakeGit(url="https://github.com/me/notes.git")
    git.script("push", REJECTED)

    await GitOperationPipeline(git, remote_name="backup").run(make_request())

    assert ["remote", "get-url", "backup"] in git.calls
    assert ["remote", "set-url", "backup", "git@github.com:me/notes.git"] in git.calls
    assert git.url == "git@github.com:me/notes.git"


@pytest.mark.asyncio
async def test_disabled_stages_are_skipped(fake_git: FakeGit, make_request) -> None:
    """Verifies the git_add / git_commit / git_push toggles."""
    config = PipelineConfig(git_add=False, git_commit=False)

    outcome = await GitOperationPipeline(fake_git, config).run(make_request())

    assert outcome.ok
    assert fake_git.commands() == ["push"]

    fake_git.calls.clear()
    config = PipelineConfig(git_push=False)
    outcome = await GitOperationPipeline(fake_git, config).run(make_request())

    assert outcome.ok
    assert fake_git.commands() == ["add", "commit"]


@pytest.mark.asyncio
async def test_command_timeout_fails_request(fake_git: FakeGit, make_request) -> None:
    """Verifies that a hung command is abandoned after the deadline."""
    fake_git.script("push", HANG)
    config = PipelineConfig(command_timeout=0.05)

    outcome = await GitOperationPipeline(fake_git, config).run(make_request())

    assert outcome.state is PipelineState.FAILED
    assert isinstance(outcome.failure, CommandTimeout)
    assert "git push timed out" in outcome.failure.message


@pytest.mark.asyncio
async def test_timeout_during_retry_restores_url(make_request) -> None:
    """Verifies that a hung fallback push still puts the original URL back."""
    git = FakeGit(url="git@github.com:me/notes.git")
    git.script("push", REJECTED, HANG)
    config = PipelineConfig(command_timeout=0.05)

    outcome = await GitOperationPipeline(git, config).run(make_request())

    assert isinstance(outcome.failure, CommandTimeout)
    assert git.url == "git@github.com:me/notes.git"
