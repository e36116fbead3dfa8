"""
Deterministic timer backend with a manually advanced clock.

VirtualTimerBackend stands in for the asyncio loop wherever timing has to
be reproducible: the test suite and the `trace` CLI command. Timers fire
strictly in (fire time, registration order), and the clock jumps to each
timer's fire time before its callback runs, so callbacks observe the same
now_ms they would have seen in real time.
"""

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable


@dataclass(order=True)
class VirtualTimer:
    """One pending call on the virtual clock."""

    fire_at_ms: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class VirtualTimerBackend:
    """
    TimerBackend driven by advance() instead of wall-clock time.

    Example:
        backend = VirtualTimerBackend()
        scheduler = TimerScheduler(backend)
        scheduler.schedule(100, callback)
        backend.advance(100)  # callback runs here

    Attributes:
        honour_cancel: When False, cancelled timers are still delivered.
            This models callbacks already queued in the host event loop
            at the moment they were cancelled.
        fired: Number of callbacks delivered
    """

    def __init__(self, honour_cancel: bool = True) -> None:
        self.honour_cancel = honour_cancel
        self._now = 0.0
        self._queue: list[VirtualTimer] = []
        self._seq = itertools.count()
        self.fired = 0

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> VirtualTimer:
        timer = VirtualTimer(
            fire_at_ms=self._now + max(0.0, delay_ms),
            seq=next(self._seq),
            callback=callback,
        )
        heapq.heappush(self._queue, timer)
        return timer

    @property
    def pending(self) -> int:
        """Timers still waiting to be delivered."""
        if self.honour_cancel:
            return sum(1 for t in self._queue if not t.cancelled)
        return len(self._queue)

    def advance(self, delta_ms: float) -> None:
        """Move the clock forward by delta_ms, firing due timers in order."""
        self.advance_to(self._now + max(0.0, delta_ms))

    def advance_to(self, target_ms: float) -> None:
        """
        Move the clock to target_ms, firing due timers in order.

        Timers scheduled by callbacks during the advance are delivered too
        if they fall due before target_ms.
        """
        while self._queue and self._queue[0].fire_at_ms <= target_ms:
            timer = heapq.heappop(self._queue)
            self._now = max(self._now, timer.fire_at_ms)
            if timer.cancelled and self.honour_cancel:
                continue
            self.fired += 1
            timer.callback()
        self._now = max(self._now, target_ms)

    def run_until_idle(self, limit_ms: float = 600_000.0) -> None:
        """Deliver timers until none remain or the clock passes limit_ms."""
        while self._queue and self._queue[0].fire_at_ms <= limit_ms:
            self.advance_to(self._queue[0].fire_at_ms)
