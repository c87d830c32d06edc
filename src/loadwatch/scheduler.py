from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .app_logging import log_with_fields

TimerCallback = Callable[[], Awaitable[None]]


class Scheduler:
    """One-shot timers on the running event loop, at most one armed per key.

    Cancelling a key drops the pending timer only; a callback that already
    started keeps running to completion.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def arm(self, key: str, delay: float, callback: TimerCallback) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(max(delay, 0.0), self._fire, key, callback)

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_armed(self, key: str) -> bool:
        return key in self._handles

    def armed_keys(self) -> set[str]:
        return set(self._handles)

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)

    async def drain(self) -> None:
        """Wait for callbacks that already fired."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, key: str, callback: TimerCallback) -> None:
        self._handles.pop(key, None)
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finished(key, done))

    def _finished(self, key: str, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_with_fields(
                self.logger,
                logging.ERROR,
                "timer_callback_failed",
                key=key,
                error=repr(exc),
            )
