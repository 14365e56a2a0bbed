"""
Periodic ticker on the event loop.

Used for the 100 ms frame sampler and the once-per-second image feed to the
narration endpoint; the two run as independent tickers.

- start() schedules one asyncio task
- stop() cancels it synchronously; no tick runs after stop() returns
- a failing callback is logged and that tick is skipped
"""

from __future__ import annotations

import asyncio
import inspect
from asyncio import Task
from typing import Any, Awaitable, Callable

from observability.logger import log_event

TickCallback = Callable[[], Awaitable[None] | None]


class PeriodicTicker:
    """
    Fixed-period ticker.

    The first tick fires one interval after start(). Periods are measured
    from the loop clock so a slow callback does not accumulate drift; ticks
    missed while a callback overran are dropped.
    """

    def __init__(
        self,
        *,
        interval_s: float,
        callback: TickCallback,
        name: str,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")

        self._interval_s = interval_s
        self._callback = callback
        self._name = name
        self._task: Task[None] | None = None
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking. No-op when already running."""
        if self.running:
            return
        self._generation += 1
        self._task = asyncio.create_task(
            self._run(self._generation), name=f"ticker-{self._name}"
        )

    def stop(self) -> None:
        """Cancel the ticker. Safe to call multiple times."""
        self._generation += 1
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval_s
        try:
            while True:
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                next_tick += self._interval_s
                if generation != self._generation:
                    return
                await self._invoke()
                if next_tick < loop.time():
                    # Overran one or more periods: skip them, never burst.
                    next_tick = loop.time() + self._interval_s
        except asyncio.CancelledError:
            return

    async def _invoke(self) -> None:
        try:
            result: Any = self._callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "TICKER_CALLBACK_ERROR",
                "ticker": self._name,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
