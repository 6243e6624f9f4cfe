import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set

from structlog import get_logger

from rentmatch.config import settings

logger = get_logger(__name__)

SaveFn = Callable[[str, Any], Awaitable[Any]]


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


@dataclass
class PendingSave:
    field: str
    value: Any
    handle: asyncio.TimerHandle


class DebouncedSaver:
    """Coalesces rapid edits into one save per debounce window.

    States:
      idle       nothing scheduled, nothing running
      pending    one (field, value) waiting on a timer
      in_flight  no timer, but dispatched saves still running

    ``edit`` replaces a pending save of the same field (last write wins). An edit
    to a different field dispatches the waiting one immediately so it is not
    lost. ``flush`` dispatches whatever is pending and waits for every
    outstanding save; ``cancel`` drops the pending save. Saves already
    dispatched are never aborted.
    """

    def __init__(self, save: SaveFn, delay: Optional[float] = None):
        self._save = save
        self.delay = settings.AUTOSAVE_DEBOUNCE_SECONDS if delay is None else delay
        self._pending: Optional[PendingSave] = None
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def state(self) -> DebounceState:
        if self._pending is not None:
            return DebounceState.PENDING
        if self._in_flight:
            return DebounceState.IN_FLIGHT
        return DebounceState.IDLE

    @property
    def pending(self) -> Optional[PendingSave]:
        return self._pending

    def edit(self, field: str, value: Any) -> None:
        previous = self._take_pending()
        if previous is not None and previous.field != field:
            self._dispatch(previous.field, previous.value)
        handle = asyncio.get_running_loop().call_later(self.delay, self._timer_fires)
        self._pending = PendingSave(field, value, handle)

    def cancel(self) -> None:
        self._take_pending()

    async def flush(self) -> None:
        pending = self._take_pending()
        if pending is not None:
            self._dispatch(pending.field, pending.value)
        await self.drain()

    async def drain(self) -> None:
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def _take_pending(self) -> Optional[PendingSave]:
        pending, self._pending = self._pending, None
        if pending is not None:
            pending.handle.cancel()
        return pending

    def _timer_fires(self) -> None:
        pending, self._pending = self._pending, None
        if pending is not None:
            self._dispatch(pending.field, pending.value)

    def _dispatch(self, field: str, value: Any) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run(field, value))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _run(self, field: str, value: Any) -> None:
        try:
            await self._save(field, value)
        except Exception as e:
            logger.warning("Debounced save failed", field=field, error=str(e))
