import asyncio
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

T = TypeVar("T")

_GLOBAL_SLOT = ""


class DebounceScheduler(Generic[T]):
    """Collapses bursts of triggers into one delayed admission.

    Every `notify` re-arms the timer with the latest context; only when
    `debounce_ms` passes without another trigger does `on_fire` run, once,
    with that context. By default one timer is shared by all files, so the
    last file touched within the window wins. With `per_path` each key gets
    its own timer.

    Attributes:
        debounce_ms (int): Quiet period in milliseconds; 0 fires immediately.
        per_path (bool): Keep one timer per key instead of a shared one.
    """

    def __init__(
        self,
        on_fire: Callable[[T], None],
        debounce_ms: int = 1000,
        per_path: bool = False,
    ):
        self.debounce_ms = debounce_ms
        self.per_path = per_path
        self._on_fire = on_fire
        self._armed: dict[str, tuple[asyncio.TimerHandle, T]] = {}

    @property
    def armed(self) -> bool:
        """Whether any timer is waiting to fire."""
        return bool(self._armed)

    def notify(self, context: T, key: str = _GLOBAL_SLOT) -> None:
        """Records a trigger, replacing any timer armed for the same slot.

        Args:
            context (T): Passed to `on_fire` if this trigger survives the window.
            key (str, optional): Timer slot used when `per_path` is enabled.
        """
        slot = key if self.per_path else _GLOBAL_SLOT
        self._disarm(slot)

        if self.debounce_ms <= 0:
            self._fire(context)
            return

        handle = asyncio.get_running_loop().call_later(
            self.debounce_ms / 1000, self._expire, slot
        )
        self._armed[slot] = (handle, context)

    def cancel(self) -> None:
        """Drops every armed timer without firing it."""
        for slot in list(self._armed):
            self._disarm(slot)

    def flush(self) -> None:
        """Fires every armed timer now instead of waiting out the window."""
        for slot in list(self._armed):
            handle, context = self._armed.pop(slot)
            handle.cancel()
            self._fire(context)

    def _disarm(self, slot: str) -> None:
        entry = self._armed.pop(slot, None)
        if entry is not None:
            entry[0].cancel()

    def _expire(self, slot: str) -> None:
        entry = self._armed.pop(slot, None)
        if entry is not None:
            self._fire(entry[1])

    def _fire(self, context: T) -> None:
        try:
            self._on_fire(context)
        except Exception:
            logger.exception("ADMIT ERROR: Debounced save could not be admitted.")
