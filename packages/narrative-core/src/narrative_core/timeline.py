"""
Continuous-clock narrative engine.

This module provides:
- Stage: Immutable stage definition (id, duration, payload, narrator text)
- StageTimeline: Ordered stages with elapsed-time resolution
- StageEntered / Tick: Events emitted by the runner
- TimelineRunner: Re-evaluates the clock every frame and fires
  stage-entered events

Stage k owns the half-open interval [sum(d[:k]), sum(d[:k+1])), so a
boundary instant belongs to the next stage. Looping timelines wrap
elapsed time modulo the total and re-enter stage 0 on every cycle.

Intra-stage effects are scheduled by the stage-entered consumer as plain
delays on the scheduler. The runner calls cancel_all() before announcing
a new stage, which kills whatever the previous stage left pending.
"""

import itertools
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from narrative_core.errors import ConfigurationError
from narrative_core.scheduler import TimerScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    """
    Immutable stage definition.

    Attributes:
        id: Stage identifier, unique within its timeline
        duration_ms: How long the stage lasts, finite and positive
        payload: Opaque data owned by the vignette configuration
        title: Narrator title for the stage
        description: Narrator text for the stage
    """

    id: str
    duration_ms: float
    payload: Any = None
    title: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if not (math.isfinite(self.duration_ms) and self.duration_ms > 0):
            raise ConfigurationError(
                f"duration must be finite and positive, got {self.duration_ms}", subject=self.id
            )


class StageTimeline:
    """
    Ordered stage configuration resolved by elapsed time.

    Example:
        timeline = StageTimeline([Stage("a", 3000), Stage("b", 4000)], loop=True)
        timeline.resolve(3000)  # 1
    """

    def __init__(self, stages: Sequence[Stage], loop: bool = False) -> None:
        """
        Initialize timeline.

        Args:
            stages: Stages in playback order
            loop: Wrap elapsed time at the end instead of stopping

        Raises:
            ConfigurationError: If stages is empty or ids repeat
        """
        if not stages:
            raise ConfigurationError("timeline has no stages")
        seen: set[str] = set()
        for stage in stages:
            if stage.id in seen:
                raise ConfigurationError("duplicate stage id", subject=stage.id)
            seen.add(stage.id)

        self.stages: tuple[Stage, ...] = tuple(stages)
        self.loop = loop
        # Cumulative end offset of each stage
        self._ends = list(itertools.accumulate(s.duration_ms for s in self.stages))

    @property
    def total_ms(self) -> float:
        return self._ends[-1]

    def __len__(self) -> int:
        return len(self.stages)

    def __getitem__(self, index: int) -> Stage:
        return self.stages[index]

    def wrap(self, elapsed_ms: float) -> float:
        """Reduce elapsed time into [0, total) for looping timelines."""
        if self.loop:
            return elapsed_ms % self.total_ms
        return elapsed_ms

    def resolve(self, elapsed_ms: float) -> int:
        """
        Get the index of the stage active at elapsed_ms.

        Linear scan with strict < at each boundary. Looping timelines wrap
        first. Anything that matches no stage falls back to stage 0.

        Args:
            elapsed_ms: Time since the timeline started

        Returns:
            Stage index in [0, len(self))
        """
        elapsed_ms = max(0.0, self.wrap(elapsed_ms))
        for index, end in enumerate(self._ends):
            if elapsed_ms < end:
                return index
        logger.debug(f"No stage owns elapsed={elapsed_ms}ms, falling back to stage 0")
        return 0

    def start_offset(self, index: int) -> float:
        """Offset of stage index from timeline start."""
        return self._ends[index] - self.stages[index].duration_ms

    def index_of(self, stage_id: str) -> int:
        for index, stage in enumerate(self.stages):
            if stage.id == stage_id:
                return index
        raise KeyError(stage_id)


@dataclass(frozen=True)
class StageEntered:
    """
    Fired once when the runner moves into a stage.

    Attributes:
        stage: Stage entered
        index: Position of the stage in its timeline
        start_offset_ms: Offset of the stage within one cycle
        cycle: Loop iteration (0 for the first pass)
    """

    stage: Stage
    index: int
    start_offset_ms: float
    cycle: int


@dataclass(frozen=True)
class Tick:
    """
    Result of one frame of clock re-evaluation.

    Attributes:
        elapsed_ms: Raw time since the runner started
        progress: Position in the current cycle, 0-100
        index: Active stage index
        cycle: Loop iteration
    """

    elapsed_ms: float
    progress: float
    index: int
    cycle: int


class TimelineRunner:
    """
    Drives a StageTimeline from the scheduler clock.

    Each frame is a fresh one-shot task, scheduled frame_ms after the
    previous one, the way an animation-frame loop re-requests itself.
    A non-looping timeline stops framing once elapsed time reaches its
    total and stays parked in the last stage.

    Example:
        runner = TimelineRunner(timeline, scheduler, on_stage_entered=enter)
        runner.start()
    """

    def __init__(
        self,
        timeline: StageTimeline,
        scheduler: TimerScheduler,
        on_stage_entered: Callable[[StageEntered], None],
        on_tick: Callable[[Tick], None] | None = None,
        frame_ms: float = 16.0,
    ) -> None:
        """
        Initialize runner.

        Args:
            timeline: Stage configuration to play
            scheduler: Scheduler owning every frame and sub-effect
            on_stage_entered: Called once per stage entry, after the
                previous stage's timers have been cancelled
            on_tick: Called after every frame
            frame_ms: Delay between frames
        """
        self.timeline = timeline
        self._scheduler = scheduler
        self._on_stage_entered = on_stage_entered
        self._on_tick = on_tick
        self._frame_ms = frame_ms
        self._start_ms: float | None = None
        self._current: int | None = None
        self._cycle = 0
        self.finished = False

    @property
    def running(self) -> bool:
        return self._start_ms is not None and not self.finished

    @property
    def current_index(self) -> int | None:
        return self._current

    def start(self) -> None:
        """Start from stage 0 at the current scheduler time."""
        self._start_ms = self._scheduler.now_ms
        self._current = None
        self._cycle = 0
        self.finished = False
        self._frame()

    def halt(self) -> None:
        """Forget the run. Pending frames die with the caller's cancel_all()."""
        self._start_ms = None
        self._current = None
        self._cycle = 0
        self.finished = False

    def _frame(self) -> None:
        if self._start_ms is None:
            return

        timeline = self.timeline
        elapsed = max(0.0, self._scheduler.now_ms - self._start_ms)
        if timeline.loop:
            cycle = int(elapsed // timeline.total_ms)
            position = elapsed - cycle * timeline.total_ms
        else:
            cycle = 0
            position = min(elapsed, timeline.total_ms)
            self.finished = elapsed >= timeline.total_ms

        index = len(timeline) - 1 if self.finished else timeline.resolve(position)

        if index != self._current or cycle != self._cycle:
            self._current = index
            self._cycle = cycle
            # Previous stage's sub-effects go first, then the next frame
            # and the new stage's effects join the new generation
            self._scheduler.cancel_all()
            if not self.finished:
                self._scheduler.schedule(self._frame_ms, self._frame)
            stage = timeline[index]
            logger.debug(f"Entering stage '{stage.id}' (cycle {cycle}) at {elapsed:.0f}ms")
            self._on_stage_entered(
                StageEntered(
                    stage=stage,
                    index=index,
                    start_offset_ms=timeline.start_offset(index),
                    cycle=cycle,
                )
            )
        elif not self.finished:
            self._scheduler.schedule(self._frame_ms, self._frame)

        if self._on_tick is not None:
            self._on_tick(
                Tick(
                    elapsed_ms=elapsed,
                    progress=position / timeline.total_ms * 100.0,
                    index=index,
                    cycle=cycle,
                )
            )
