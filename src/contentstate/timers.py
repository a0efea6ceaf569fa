"""
Cancellable timers owned by the engines that start them.

Two clocks share one interface:
- AsyncioScheduler: the running asyncio loop (call_later / call_soon)
- ManualScheduler: a deterministic clock advanced explicitly, for headless
  use and tests

"call_soon" is the next-frame hook: the callback runs after the current
synchronous pass has finished, never inline.
"""
import asyncio
import heapq
import itertools
import logging
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle to a pending callback. cancel() is idempotent."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._cancel()


class Scheduler:
    """Timer interface used by history, stabilization and the session."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def call_soon(self, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = self.loop.call_later(delay, callback)
        return TimerHandle(handle.cancel)

    def call_soon(self, callback: Callable[[], None]) -> TimerHandle:
        handle = self.loop.call_soon(callback)
        return TimerHandle(handle.cancel)


class ManualScheduler(Scheduler):
    """Deterministic clock: nothing fires until advance() or run_soon().

        scheduler = ManualScheduler()
        scheduler.call_later(0.5, fire)
        scheduler.advance(0.5)   # fire() runs here
    """

    def __init__(self):
        self.now = 0.0
        self._counter = itertools.count()
        self._timers: List[Tuple[float, int, Callable[[], None], TimerHandle]] = []
        self._soon: List[Tuple[Callable[[], None], TimerHandle]] = []

    @property
    def pending(self) -> int:
        """Live (uncancelled) timers, including next-frame callbacks."""
        return (sum(1 for *_, h in self._timers if not h.cancelled)
                + sum(1 for _, h in self._soon if not h.cancelled))

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(lambda: None)
        heapq.heappush(self._timers, (self.now + delay, next(self._counter), callback, handle))
        return handle

    def call_soon(self, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(lambda: None)
        self._soon.append((callback, handle))
        return handle

    def run_soon(self) -> int:
        """Run queued next-frame callbacks, including ones they queue. Returns count run."""
        ran = 0
        while self._soon:
            batch, self._soon = self._soon, []
            for callback, handle in batch:
                if not handle.cancelled:
                    handle._cancelled = True
                    callback()
                    ran += 1
        return ran

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in deadline order.

        Next-frame callbacks are flushed before the clock moves and after
        every timer fires. Returns the number of callbacks run.
        """
        target = self.now + seconds
        ran = self.run_soon()
        while self._timers and self._timers[0][0] <= target:
            when, _, callback, handle = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            self.now = when
            handle._cancelled = True
            callback()
            ran += 1 + self.run_soon()
        self.now = target
        return ran
