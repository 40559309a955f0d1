import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from . import remote
from .config import PipelineConfig
from .constants import (
    APP_NAME,
    DEFAULT_REMOTE,
    NOTHING_TO_COMMIT_PHRASES,
    TIMESTAMP_FORMAT,
    UP_TO_DATE_PHRASES,
)
from .errors import (
    CommandTimeout,
    CommitFailure,
    PipelineFailure,
    PublishFailure,
    PublishFallbackFailure,
    RemoteFetchFailure,
    SetUrlFailure,
    StageFailure,
)
from .git_wrapper import CommandResult

logger = logging.getLogger(APP_NAME)


class CommandRunner(Protocol):
    async def run(self, args: list[str], cwd: str) -> CommandResult: ...


@dataclass(frozen=True)
class SaveRequest:
    """A single file save waiting to be committed and pushed.

    Attributes:
        path (str): Absolute path of the saved file.
        display_name (str): Short name used in messages (usually the file name).
        working_directory (str): Directory git commands run in.
        timestamp (str): Admission time, also used as the commit message.
    """

    path: str
    display_name: str
    working_directory: str
    timestamp: str

    @classmethod
    def admit(
        cls,
        path: str,
        display_name: str,
        working_directory: str,
        now: datetime.datetime | None = None,
    ) -> "SaveRequest":
        """Creates a request stamped with the current (or given) time."""
        moment = now or datetime.datetime.now()
        return cls(
            path=path,
            display_name=display_name,
            working_directory=working_directory,
            timestamp=moment.strftime(TIMESTAMP_FORMAT),
        )


class PipelineState(Enum):
    STAGE = "stage"
    COMMIT = "commit"
    PUBLISH = "publish"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineOutcome:
    """The terminal result of one pipeline run.

    Attributes:
        request (SaveRequest): The request that was processed.
        state (PipelineState): DONE or FAILED once `run` returns.
        failure (PipelineFailure | None): The error that ended a FAILED run.
        noop_commit (bool): The commit step found nothing new to record.
        switched_url (str | None): The alternate remote URL left in place after
                                   a successful fallback push.
    """

    request: SaveRequest
    state: PipelineState = PipelineState.STAGE
    failure: PipelineFailure | None = None
    noop_commit: bool = False
    switched_url: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.DONE


@dataclass
class RemoteState:
    """Remote URL bookkeeping for a single publish attempt."""

    original_url: str
    current_url: str = field(default="")

    def __post_init__(self) -> None:
        if not self.current_url:
            self.current_url = self.original_url


def _mentions(output: str, phrases: tuple[str, ...]) -> bool:
    lowered = output.lower()
    return any(phrase in lowered for phrase in phrases)


def _first_line(output: str) -> str:
    lines = [line for line in output.strip().splitlines() if line.strip()]
    return lines[0].strip() if lines else "no output"


class GitOperationPipeline:
    """Drives one save through `git add`, `git commit` and `git push`.

    The pipeline is a linear state machine (STAGE -> COMMIT -> PUBLISH ->
    DONE | FAILED). Each stage awaits the command runner; a stage that fails
    raises a `PipelineFailure`, which `run` turns into a FAILED outcome.

    A rejected push triggers one transport fallback: the remote URL is swapped
    between its HTTPS and SSH forms and the push is retried. If the retry
    succeeds the remote stays on the new transport; if it fails the original
    URL is put back.

    Attributes:
        runner (CommandRunner): Executes git commands asynchronously.
        config (PipelineConfig): Stage toggles, timeout and no-op commit policy.
        remote_name (str): The remote whose URL the fallback rewrites.
    """

    def __init__(
        self,
        runner: CommandRunner,
        config: PipelineConfig | None = None,
        remote_name: str = DEFAULT_REMOTE,
    ):
        self.runner = runner
        self.config = config or PipelineConfig()
        self.remote_name = remote_name

    async def run(self, request: SaveRequest) -> PipelineOutcome:
        """Processes a request to a terminal state.

        Args:
            request (SaveRequest): The save to commit and push.

        Returns:
            PipelineOutcome: Always DONE or FAILED; pipeline failures are
            captured in the outcome rather than raised.
        """
        outcome = PipelineOutcome(request=request)
        try:
            await self._stage(request)

            outcome.state = PipelineState.COMMIT
            if not await self._commit(request):
                outcome.noop_commit = True
                if not self.config.publish_after_noop_commit:
                    logger.info(
                        f"UNCHANGED {request.display_name}: Nothing to commit. Push skipped."
                    )
                    outcome.state = PipelineState.DONE
                    return outcome

            outcome.state = PipelineState.PUBLISH
            outcome.switched_url = await self._publish(request)
            outcome.state = PipelineState.DONE

        except PipelineFailure as e:
            logger.error(
                f"{outcome.state.name} ERROR {request.display_name}: {e.message}"
            )
            if e.detail:
                logger.debug(f"git output:\n{e.detail}")
            outcome.state = PipelineState.FAILED
            outcome.failure = e

        return outcome

    async def _git(self, args: list[str], request: SaveRequest) -> CommandResult:
        """Runs one git command for a request, enforcing the command deadline."""
        timeout = self.config.command_timeout or None
        try:
            return await asyncio.wait_for(
                self.runner.run(args, request.working_directory), timeout
            )
        except TimeoutError:
            raise CommandTimeout(
                f"git {' '.join(args[:2])} timed out after {timeout}s"
            ) from None

    async def _stage(self, request: SaveRequest) -> None:
        if not self.config.git_add:
            return
        result = await self._git(["add", request.path], request)
        if not result.ok:
            raise StageFailure("git add failed", result.output)
        logger.debug(f"STAGED {request.display_name}")

    async def _commit(self, request: SaveRequest) -> bool:
        """Commits the staged file.

        Returns:
            bool: True if a commit was created (or committing is disabled),
            False if git reported there was nothing to commit.
        """
        if not self.config.git_commit:
            return True
        result = await self._git(["commit", "-m", request.timestamp], request)
        if result.ok:
            logger.info(f"COMMITTED {request.display_name} at {request.timestamp}")
            return True
        if _mentions(result.output, NOTHING_TO_COMMIT_PHRASES + UP_TO_DATE_PHRASES):
            return False
        raise CommitFailure("git commit failed", result.output)

    @staticmethod
    def _pushed(result: CommandResult) -> bool:
        return result.ok or _mentions(result.output, UP_TO_DATE_PHRASES)

    async def _publish(self, request: SaveRequest) -> str | None:
        """Pushes, falling back to the alternate transport on rejection.

        Returns:
            str | None: The alternate URL if the fallback was used, else None.
        """
        if not self.config.git_push:
            return None
        result = await self._git(["push"], request)
        if self._pushed(result):
            logger.info(f"PUSHED {request.display_name}")
            return None

        logger.warning(
            f"PUSH REJECTED {request.display_name}: {_first_line(result.output)}"
        )
        return await self._fallback(request, result)

    async def _fallback(self, request: SaveRequest, rejected: CommandResult) -> str:
        fetched = await self._git(["remote", "get-url", self.remote_name], request)
        if not fetched.ok:
            raise RemoteFetchFailure("failed to get remote URL", fetched.output)

        state = RemoteState(original_url=fetched.output.strip())
        alternate = remote.to_alternate(state.original_url)
        if alternate is None:
            raise PublishFailure("git push failed", rejected.output)

        swapped = await self._git(
            ["remote", "set-url", self.remote_name, alternate], request
        )
        if not swapped.ok:
            raise SetUrlFailure(
                f"failed to set remote URL to {alternate}", swapped.output
            )
        state.current_url = alternate
        logger.info(
            f"FALLBACK {request.display_name}: Retrying push via "
            f"{remote.classify(alternate).value}."
        )

        try:
            retry = await self._git(["push"], request)
        except BaseException:
            # Timeouts and cancellation must not leave the alternate URL behind.
            await asyncio.shield(self._restore(request, state))
            raise

        if self._pushed(retry):
            logger.info(
                f"PUSHED {request.display_name}: Remote '{self.remote_name}' "
                f"now uses {alternate}"
            )
            return alternate

        await self._restore(request, state)
        original = remote.classify(state.original_url).value
        raise PublishFallbackFailure(
            f"git push failed over both {original} and "
            f"{remote.classify(alternate).value}",
            f"{rejected.output.strip()}\n{retry.output.strip()}",
        )

    async def _restore(self, request: SaveRequest, state: RemoteState) -> None:
        """Puts the original remote URL back. Failures are logged, not raised."""
        if state.current_url == state.original_url:
            return
        try:
            result = await self._git(
                ["remote", "set-url", self.remote_name, state.original_url], request
            )
        except (CommandTimeout, OSError) as e:
            logger.warning(f"RESTORE ERROR {request.display_name}: {e}")
            return
        if not result.ok:
            logger.warning(
                f"RESTORE ERROR {request.display_name}: "
                f"{_first_line(result.output)}"
            )
            return
        state.current_url = state.original_url
