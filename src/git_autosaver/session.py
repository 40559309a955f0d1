import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .constants import APP_NAME
from .git_wrapper import GitRunner, find_repo_root
from .notifier import Notifier
from .pipeline import CommandRunner, GitOperationPipeline, SaveRequest
from .save_queue import SaveQueue
from .scheduler import DebounceScheduler

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class Trigger:
    """A save event that has passed filtering but not yet the debounce window."""

    path: str
    display_name: str
    working_directory: str


@dataclass(frozen=True)
class QueueStatus:
    """Read-only snapshot of a session.

    Attributes:
        enabled (bool): Whether new saves are admitted.
        pending (int): Requests waiting for the pipeline.
        active (bool): Whether a pipeline run is in flight.
    """

    enabled: bool
    pending: int
    active: bool

    def __str__(self) -> str:
        return (
            f"enabled={str(self.enabled).lower()} pending={self.pending} "
            f"active={str(self.active).lower()}"
        )


class AutosaveSession:
    """Host-side entry point that wires the scheduler, queue and pipeline.

    An editor integration creates one session and calls `submit` every time a
    buffer is written. The session filters out files it should not track,
    debounces the rest and lets the queue commit and push them one at a time.

    Attributes:
        config (Config): Effective configuration.
        enabled (bool): Whether `submit` admits saves.
        notifier (Notifier): Receives terminal outcomes.
        pipeline (GitOperationPipeline): Add/commit/push state machine.
        queue (SaveQueue): Serializes pipeline runs.
        scheduler (DebounceScheduler): Coalesces bursts of saves.
        succeeded (int): Requests that reached DONE.
        failed (int): Requests that reached FAILED.
    """

    def __init__(
        self,
        config: Config | None = None,
        runner: CommandRunner | None = None,
        notifier: Notifier | None = None,
    ):
        self.config = config or Config.load()
        self.enabled = self.config.core.enabled
        self.notifier = notifier or Notifier(self.config.notify)
        self.pipeline = GitOperationPipeline(
            runner or GitRunner(),
            self.config.pipeline,
            remote_name=self.config.core.remote_name,
        )
        self.succeeded = 0
        self.failed = 0
        self.queue = SaveQueue(
            self.pipeline, on_success=self._succeeded, on_error=self._failed
        )
        self.scheduler: DebounceScheduler[Trigger] = DebounceScheduler(
            self._admit,
            debounce_ms=self.config.debounce.debounce_ms,
            per_path=self.config.debounce.per_path,
        )
        self._pattern = re.compile(self.config.core.file_pattern)

    def submit(
        self,
        path: str | Path,
        display_name: str | None = None,
        working_directory: str | Path | None = None,
    ) -> bool:
        """Reports that a file was saved.

        Must be called from within the running event loop.

        Args:
            path (str | Path): The saved file.
            display_name (str | None, optional): Name used in messages.
                                                 Defaults to the file name.
            working_directory (str | Path | None, optional): Directory git runs
                in. Defaults to the repository containing the file.

        Returns:
            bool: True if the save was handed to the debounce scheduler.
        """
        if not self.enabled:
            return False

        file_path = Path(path).expanduser().resolve()
        name = display_name or file_path.name

        if not self._pattern.search(file_path.name):
            logger.debug(f"IGNORED {name}: Does not match '{self._pattern.pattern}'.")
            return False

        if not file_path.is_file():
            logger.debug(f"IGNORED {name}: File not found.")
            return False

        if working_directory is None:
            root = find_repo_root(file_path)
            if root is None:
                self.notifier.warn(f"{name}: Not in a git repository")
                return False
            working_directory = root

        trigger = Trigger(str(file_path), name, str(working_directory))
        self.scheduler.notify(trigger, key=trigger.path)
        return True

    def _admit(self, trigger: Trigger) -> None:
        request = SaveRequest.admit(
            trigger.path, trigger.display_name, trigger.working_directory
        )
        logger.debug(f"ADMITTED {request.display_name} at {request.timestamp}")
        self.queue.enqueue(request)

    def _succeeded(self, request: SaveRequest) -> None:
        self.succeeded += 1
        self.notifier.on_success(request)

    def _failed(self, request: SaveRequest, message: str) -> None:
        self.failed += 1
        self.notifier.on_error(request, message)

    def status(self) -> QueueStatus:
        return QueueStatus(
            enabled=self.enabled,
            pending=self.queue.pending_count,
            active=self.queue.active is not None,
        )

    def enable(self) -> None:
        self.enabled = True
        logger.info("Autosaver enabled.")

    def disable(self) -> None:
        """Stops admitting saves. A push already in flight still completes."""
        self.enabled = False
        self.scheduler.cancel()
        logger.info("Autosaver disabled.")

    def toggle(self) -> bool:
        if self.enabled:
            self.disable()
        else:
            self.enable()
        return self.enabled

    async def drain(self) -> None:
        """Waits for the queue to empty. Armed debounce timers are not awaited."""
        await self.queue.join()

    async def shutdown(self, flush: bool = True) -> None:
        """Stops the session.

        Args:
            flush (bool, optional): Admit saves still inside the debounce window
                and wait for every queued push. If False, armed timers and
                pending requests are dropped and the running job is cancelled.
                Defaults to True.
        """
        if flush:
            self.scheduler.flush()
            await self.queue.join()
        else:
            self.scheduler.cancel()
            await self.queue.cancel()
