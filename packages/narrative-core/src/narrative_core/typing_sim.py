"""
Character-by-character text reveal.

TypingSimulator turns a target string into a timed sequence of prefixes
("f", "fo", "foo", "food"), one per interval, on top of the scheduler's
repeating facility. One simulator drives one text field, and it never
runs two jobs at once: start() on a running simulator stops the old job
first.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Callable

from narrative_core.scheduler import Handle, TimerScheduler


def prefixes(target: str) -> Iterator[str]:
    """Yield target[:1], target[:2], ... target[:len(target)]."""
    for end in range(1, len(target) + 1):
        yield target[:end]


@dataclass
class TypingJob:
    """
    One typing run for a single field.

    Attributes:
        target: Full text being typed
        interval_ms: Delay between characters
        cursor: Number of characters emitted so far
        done: True once every prefix has been emitted
    """

    target: str
    interval_ms: float
    cursor: int = 0
    done: bool = False
    handle: Handle | None = None


class TypingSimulator:
    """
    Restartable prefix emitter for one text field.

    Example:
        typed = []
        sim = TypingSimulator(scheduler, on_prefix=typed.append)
        sim.start("food", 150)
        # after 600 ms: typed == ["f", "fo", "foo", "food"]
    """

    def __init__(
        self,
        scheduler: TimerScheduler,
        on_prefix: Callable[[str], None],
    ) -> None:
        """
        Initialize simulator.

        Args:
            scheduler: Scheduler that owns the typing timer
            on_prefix: Receives each prefix as it is revealed
        """
        self._scheduler = scheduler
        self._on_prefix = on_prefix
        self._job: TypingJob | None = None

    @property
    def job(self) -> TypingJob | None:
        return self._job

    @property
    def running(self) -> bool:
        """True while the current job still has characters to emit."""
        job = self._job
        if job is None or job.done or job.handle is None:
            return False
        return self._scheduler.is_active(job.handle)

    def start(
        self,
        target: str,
        interval_ms: float,
        on_complete: Callable[[], None] | None = None,
    ) -> TypingJob:
        """
        Start typing target, replacing any job in progress.

        Emits exactly len(target) prefixes, interval_ms apart, starting
        one interval from now, then calls on_complete.

        Args:
            target: Text to reveal
            interval_ms: Delay between characters
            on_complete: Called once after the last prefix

        Returns:
            The new TypingJob
        """
        self.stop()
        job = TypingJob(target=target, interval_ms=interval_ms)
        self._job = job
        sequence = prefixes(target)

        def finish() -> None:
            job.done = True
            if on_complete is not None:
                on_complete()

        def step() -> None:
            # A restarted simulator owns a different job object
            if self._job is not job:
                return
            prefix = next(sequence, None)
            if prefix is None:
                return
            job.cursor = len(prefix)
            self._on_prefix(prefix)
            if job.cursor == len(job.target):
                finish()

        if not target:
            job.handle = self._scheduler.schedule(0, finish)
        else:
            job.handle = self._scheduler.schedule_repeating(
                interval_ms, step, max_runs=len(target)
            )
        return job

    def stop(self) -> None:
        """Cancel the current job immediately."""
        job = self._job
        self._job = None
        if job is not None and job.handle is not None and not job.done:
            self._scheduler.cancel(job.handle)
