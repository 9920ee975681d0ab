from __future__ import annotations

"""Producer/consumer plumbing for a run.

- ``EventChannel``: the engine's producer task puts events, the host drains
  them with ``async for``. ``close()`` ends iteration.
- ``CancellationToken``: one shared signal per run (nested subagent runs
  share their parent's token). ``race()`` awaits work and the signal
  together; whichever finishes first wins and unfinished work is cancelled.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Optional, TypeVar

from ..errors import RunCancelled
from ..schemas.events import AgentEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled(self._reason or "Run cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        Raises:
            RunCancelled: the token fired before ``awaitable`` completed; the
                underlying task has been cancelled and awaited.
        """
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
        if work.cancelled():
            raise RunCancelled(self._reason or "Run cancelled")
        return work.result()


class EventChannel:
    """Unbounded async queue of ``AgentEvent`` with an explicit close."""

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, event: AgentEvent) -> None:
        if self._closed:
            logger.debug("dropping %s event on closed channel", event.type.value)
            return
        await self._queue.put(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[AgentEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
