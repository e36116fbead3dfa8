"""
TimerScheduler with generation-tagged dispatch.

This module provides the single cancellation discipline shared by both
narrative engines:
- RunToken: generation counter invalidating stale callbacks
- Handle: opaque reference to a scheduled task
- TimerBackend: protocol for the host's deferred-call facility
- AsyncioTimerBackend: TimerBackend over the running asyncio loop
- TimerScheduler: one-shot/repeating scheduling with bulk cancellation

Every task captures the RunToken generation when it is scheduled. The
dispatch wrapper compares it against the current generation before the
action runs, so a callback that is already sitting in the host's event
queue when cancel_all() is called still cannot touch shared state.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

# Repeating tasks never fire faster than this
MIN_REPEAT_INTERVAL_MS = 1.0


class Cancellable(Protocol):
    """Anything returned by a backend's call_later."""

    def cancel(self) -> None:
        ...


class TimerBackend(Protocol):
    """
    Protocol for the host clock and deferred-call facility.

    Implementations:
    - AsyncioTimerBackend: real wall clock via asyncio
    - VirtualTimerBackend: manually advanced clock for tests and traces
    """

    def now_ms(self) -> float:
        """Current host time in milliseconds."""
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Cancellable:
        """Invoke callback once after delay_ms."""
        ...


class RunToken:
    """
    Generation counter for the current run.

    Incremented on every cancel_all(); a captured generation that no
    longer matches means the callback belongs to a dead run.
    """

    def __init__(self) -> None:
        self._generation = 0

    @property
    def current(self) -> int:
        return self._generation

    def advance(self) -> int:
        """Start a new generation and return it."""
        self._generation += 1
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation


@dataclass(frozen=True)
class Handle:
    """Opaque handle for cancelling a scheduled task."""

    task_id: int
    generation: int


@dataclass
class ScheduledTask:
    """
    Bookkeeping for one deferred action.

    Owned exclusively by the TimerScheduler that created it.

    Attributes:
        id: Scheduler-unique task id
        fire_at_ms: Host time of the next firing
        action: Callable to invoke
        generation: RunToken generation captured at schedule time
        interval_ms: Repeat interval, None for one-shot tasks
        max_runs: Upper bound on repeat count (None = unbounded)
        runs: Number of times the action has run
        cancelled: Set by cancel()/cancel_all()
    """

    id: int
    fire_at_ms: float
    action: Callable[[], None]
    generation: int
    interval_ms: float | None = None
    max_runs: int | None = None
    runs: int = 0
    cancelled: bool = False
    timer: Cancellable | None = None


class AsyncioTimerBackend:
    """
    TimerBackend over an asyncio event loop.

    Uses loop.call_later for deferral and loop.time() for the clock.
    A speed multiplier compresses or stretches playback: delays are
    divided by speed, the clock is multiplied by it.

    Example:
        backend = AsyncioTimerBackend(speed=2.0)  # inside a running loop
        scheduler = TimerScheduler(backend)
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        speed: float = 1.0,
    ) -> None:
        """
        Initialize backend.

        Args:
            loop: Event loop to schedule on (defaults to the running loop)
            speed: Playback speed multiplier, must be positive
        """
        if speed <= 0:
            raise ValueError(f"speed must be positive, got {speed}")
        self._loop = loop
        self._speed = speed

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> float:
        return self.loop.time() * 1000.0 * self._speed

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000.0 / self._speed, callback)


class TimerScheduler:
    """
    Schedules deferred actions under a shared RunToken.

    The scheduler is the only owner of ScheduledTask objects; callers get
    opaque Handles. cancel_all() advances the RunToken, so every task
    scheduled before it is dead even if its backend timer still fires.

    Attributes:
        token: RunToken shared by every task of this scheduler
        suppressed: Count of stale or cancelled callbacks dropped at dispatch
        dispatched: Count of actions actually invoked
    """

    def __init__(self, backend: TimerBackend, token: RunToken | None = None) -> None:
        """
        Initialize scheduler.

        Args:
            backend: Host clock and deferral facility
            token: RunToken to use (creates a fresh one if None)
        """
        self._backend = backend
        self.token = token if token is not None else RunToken()
        self._tasks: dict[int, ScheduledTask] = {}
        self._ids = itertools.count(1)
        self.suppressed = 0
        self.dispatched = 0

    @property
    def now_ms(self) -> float:
        return self._backend.now_ms()

    @property
    def generation(self) -> int:
        return self.token.current

    @property
    def outstanding(self) -> int:
        """Number of live tasks in the registry."""
        return len(self._tasks)

    def schedule(self, delay_ms: float, action: Callable[[], None]) -> Handle:
        """
        Run action once after delay_ms.

        Negative delays are treated as 0.

        Args:
            delay_ms: Delay in milliseconds
            action: Zero-argument callable

        Returns:
            Handle for cancel()
        """
        delay_ms = max(0.0, delay_ms)
        task = ScheduledTask(
            id=next(self._ids),
            fire_at_ms=self.now_ms + delay_ms,
            action=action,
            generation=self.token.current,
        )
        return self._register(task, delay_ms)

    def schedule_repeating(
        self,
        interval_ms: float,
        action: Callable[[], None],
        max_runs: int | None = None,
    ) -> Handle:
        """
        Run action every interval_ms until cancelled.

        The first run happens one interval from now. Intervals below
        MIN_REPEAT_INTERVAL_MS are raised to it.

        Args:
            interval_ms: Interval in milliseconds
            action: Zero-argument callable
            max_runs: Stop after this many runs (None = until cancelled)

        Returns:
            Handle for cancel()
        """
        interval_ms = max(MIN_REPEAT_INTERVAL_MS, interval_ms)
        task = ScheduledTask(
            id=next(self._ids),
            fire_at_ms=self.now_ms + interval_ms,
            action=action,
            generation=self.token.current,
            interval_ms=interval_ms,
            max_runs=max_runs,
        )
        if max_runs is not None and max_runs <= 0:
            # Nothing to run; hand back a handle to an already-finished task
            return Handle(task_id=task.id, generation=task.generation)
        return self._register(task, interval_ms)

    def cancel(self, handle: Handle) -> None:
        """Cancel a single task. Unknown or finished handles are ignored."""
        task = self._tasks.pop(handle.task_id, None)
        if task is None:
            return
        task.cancelled = True
        if task.timer is not None:
            task.timer.cancel()

    def cancel_all(self) -> int:
        """
        Cancel every outstanding task and start a new generation.

        Returns:
            The new RunToken generation
        """
        generation = self.token.advance()
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancelled = True
            if task.timer is not None:
                task.timer.cancel()
        if tasks:
            logger.debug(f"cancel_all dropped {len(tasks)} task(s), generation={generation}")
        return generation

    def is_active(self, handle: Handle) -> bool:
        """Check whether a handle still refers to a live task."""
        return handle.task_id in self._tasks

    def _register(self, task: ScheduledTask, delay_ms: float) -> Handle:
        self._tasks[task.id] = task
        self._arm(task, delay_ms)
        return Handle(task_id=task.id, generation=task.generation)

    def _arm(self, task: ScheduledTask, delay_ms: float) -> None:
        task.timer = self._backend.call_later(delay_ms, lambda: self._dispatch(task))

    def _dispatch(self, task: ScheduledTask) -> None:
        """Generation-checked wrapper around every scheduled action."""
        if task.cancelled or not self.token.is_current(task.generation):
            self.suppressed += 1
            self._tasks.pop(task.id, None)
            logger.debug(
                f"Suppressed stale task {task.id} "
                f"(generation {task.generation}, current {self.token.current})"
            )
            return

        task.runs += 1
        repeating = task.interval_ms is not None
        finished = not repeating or (
            task.max_runs is not None and task.runs >= task.max_runs
        )
        if finished:
            self._tasks.pop(task.id, None)

        self.dispatched += 1
        try:
            task.action()
        except Exception:
            # A failed task is dropped, never re-armed
            task.cancelled = True
            self._tasks.pop(task.id, None)
            logger.error(f"Task {task.id} raised, dropping it (runs={task.runs})")
            raise

        # The action may have cancelled this task or the whole generation
        if finished or task.cancelled or not self.token.is_current(task.generation):
            return
        if task.interval_ms is not None:
            task.fire_at_ms += task.interval_ms
            self._arm(task, max(0.0, task.fire_at_ms - self.now_ms))
