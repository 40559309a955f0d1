import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from .constants import APP_NAME
from .pipeline import PipelineOutcome, SaveRequest

logger = logging.getLogger(APP_NAME)

OnSuccess = Callable[[SaveRequest], None]
OnError = Callable[[SaveRequest, str], None]


class Pipeline(Protocol):
    async def run(self, request: SaveRequest) -> PipelineOutcome: ...


class SaveQueue:
    """Serializes pipeline runs: one active job, one pending request per path.

    A request for a path that is already pending replaces the older one, so a
    burst of saves to the same file while a push is in flight collapses into a
    single follow-up job. Only one job runs at a time across all paths; each
    completion pulls the next pending request.

    All state is touched from the event loop thread only, so no locking is
    needed.

    Attributes:
        pipeline (Pipeline): Processes one request to a terminal outcome.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        on_success: OnSuccess | None = None,
        on_error: OnError | None = None,
    ):
        self.pipeline = pipeline
        self._on_success = on_success
        self._on_error = on_error
        self._pending: dict[str, SaveRequest] = {}
        self._active: SaveRequest | None = None
        self._task: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def active(self) -> SaveRequest | None:
        """The request currently owned by the pipeline, if any."""
        return self._active

    @property
    def pending(self) -> dict[str, SaveRequest]:
        """A snapshot of the pending requests keyed by path."""
        return dict(self._pending)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def idle(self) -> bool:
        return self._active is None and not self._pending

    def enqueue(self, request: SaveRequest) -> None:
        """Adds a request, overwriting any pending request for the same path.

        Must be called from within the running event loop.
        """
        if request.path in self._pending:
            logger.debug(f"REPLACED pending save for {request.display_name}")
        self._pending[request.path] = request
        self._idle.clear()
        if self._active is None:
            self.advance()

    def advance(self) -> None:
        """Starts the next pending request unless a job is already running.

        Selection among distinct paths is deterministic: the oldest timestamp
        wins, ties broken by path.
        """
        if self._active is not None:
            return
        if not self._pending:
            self._idle.set()
            return

        request = min(self._pending.values(), key=lambda r: (r.timestamp, r.path))
        del self._pending[request.path]
        self._active = request
        self._task = asyncio.get_running_loop().create_task(self._drive(request))

    def on_job_complete(self) -> None:
        """Frees the active slot and moves on to the next pending request."""
        self._active = None
        self._task = None
        self.advance()

    async def join(self) -> None:
        """Waits until no job is running and nothing is pending."""
        await self._idle.wait()

    async def cancel(self) -> None:
        """Drops pending requests and cancels the running job, if any."""
        self._pending.clear()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        # A task cancelled before its first step never reaches its finally block.
        if self._task is task and task is not None:
            self._active = None
            self._task = None
        if self._active is None:
            self._idle.set()

    async def _drive(self, request: SaveRequest) -> None:
        try:
            outcome = await self.pipeline.run(request)
        except Exception as e:
            logger.exception(f"JOB ERROR {request.display_name}")
            self._report_error(request, f"unexpected error - {e}")
        else:
            if outcome.ok:
                self._report_success(request)
            else:
                self._report_error(request, str(outcome.failure))
        finally:
            self.on_job_complete()

    def _report_success(self, request: SaveRequest) -> None:
        if self._on_success is None:
            return
        try:
            self._on_success(request)
        except Exception:
            logger.exception(f"CALLBACK ERROR {request.display_name}")

    def _report_error(self, request: SaveRequest, message: str) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(request, message)
        except Exception:
            logger.exception(f"CALLBACK ERROR {request.display_name}")
