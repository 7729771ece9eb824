"""Cancellable interval timers on asyncio."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog


logger = structlog.get_logger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class Timer(Protocol):
    def start(self) -> None: ...

    async def cancel(self) -> None: ...


TimerFactory = Callable[[float, TickCallback], Timer]


class IntervalTimer:
    """Calls ``callback`` every ``interval`` seconds until cancelled.

    Ticks never overlap: the next sleep starts after the callback returns.
    Once cancelled, the callback is not invoked again, even when ``cancel``
    is called from inside the callback itself.
    """

    def __init__(self, interval: float, callback: TickCallback):
        self.interval = interval
        self.callback = callback
        self._task: asyncio.Task | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self) -> None:
        if self._task is not None:
            msg = "Timer already started"
            raise RuntimeError(msg)
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.interval)
            if self._stopped:
                break
            try:
                await self.callback()
            except Exception:
                logger.exception("timer_callback_failed")

    async def cancel(self) -> None:
        self._stopped = True
        task = self._task
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # Called from our own callback; the loop exits when it returns
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
