import asyncio
from abc import ABC, abstractmethod
from typing import Optional


class SessionProvider(ABC):
    """Tells the wizard when the caller's authenticated session is usable."""

    @abstractmethod
    async def await_ready(self) -> None:
        ...


class ReadySession(SessionProvider):
    """Session that is already established (server side, tests)."""

    async def await_ready(self) -> None:
        return None


class EventSessionProvider(SessionProvider):
    """Session that becomes ready, or fails, at some later point."""

    def __init__(self, timeout: Optional[float] = None):
        self._ready = asyncio.Event()
        self._error: Optional[BaseException] = None
        self.timeout = timeout

    def mark_ready(self) -> None:
        self._ready.set()

    def mark_failed(self, error: BaseException) -> None:
        self._error = error
        self._ready.set()

    async def await_ready(self) -> None:
        if self.timeout is None:
            await self._ready.wait()
        else:
            await asyncio.wait_for(self._ready.wait(), self.timeout)
        if self._error is not None:
            raise self._error
