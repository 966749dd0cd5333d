"""
Cooperative cancellation for translation runs.

A CancelToken is shared between a run and whoever may abort it. The run
checks it between batches and races every network wait and backoff sleep
against it, so an abandoned run unwinds at the next suspension point.
cancel() may be called from any thread.
"""

import asyncio
import threading
from typing import Awaitable, Optional, TypeVar

from vnlocalize.engines.exceptions import RunCancelled

T = TypeVar("T")


class CancelToken:
    """Cancellation flag that can wake an asyncio loop from any thread."""

    def __init__(self):
        self._cancelled = False
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            loop, event = self._loop, self._event
        if loop is None or event is None:
            return
        try:
            loop.call_soon_threadsafe(event.set)
        except RuntimeError:
            # Loop already closed, nothing left to wake
            pass

    def raise_if_cancelled(self):
        if self._cancelled:
            raise RunCancelled()

    def _get_event(self) -> asyncio.Event:
        with self._lock:
            if self._event is None:
                self._loop = asyncio.get_running_loop()
                self._event = asyncio.Event()
                if self._cancelled:
                    self._event.set()
            return self._event

    async def sleep(self, delay: float):
        """Sleep for delay seconds, raising RunCancelled as soon as the token fires."""
        self.raise_if_cancelled()
        event = self._get_event()
        try:
            await asyncio.wait_for(event.wait(), timeout=max(0.0, delay))
        except asyncio.TimeoutError:
            return
        raise RunCancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await awaitable unless the token fires first; then cancel it and raise RunCancelled."""
        self.raise_if_cancelled()
        event = self._get_event()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        # Let the abandoned request unwind before reporting the cancellation
        await asyncio.gather(task, return_exceptions=True)
        raise RunCancelled()
