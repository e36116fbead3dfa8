"""
Discrete-chain narrative engine.

ChainedRunner plays an explicit list of (offset, action) steps. Every
offset is measured from the start of the run, not from the previous
step, and the whole run lives under one RunToken generation.

Actions read live flags when they fire. A step that branches on a
protection toggle must look the toggle up inside its action, so a change
made mid-run is honoured by every later step.
"""

import functools
import logging
import math
from dataclasses import dataclass
from typing import Callable, Sequence

from narrative_core.errors import ConfigurationError
from narrative_core.scheduler import TimerScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainStep:
    """
    One step of a chained narrative.

    Attributes:
        offset_ms: Offset from run start, finite and >= 0
        action: Zero-argument callable run at that offset
        label: Name for logs and the presentation layer
    """

    offset_ms: float
    action: Callable[[], None]
    label: str = ""

    def __post_init__(self) -> None:
        if not (math.isfinite(self.offset_ms) and self.offset_ms >= 0):
            raise ConfigurationError(
                f"offset must be finite and >= 0, got {self.offset_ms}", subject=self.label or None
            )


def validate_steps(steps: Sequence[ChainStep], loop: bool = False) -> tuple[ChainStep, ...]:
    """
    Check a step list and order it by offset.

    Steps sharing an offset keep their authored order.

    Raises:
        ConfigurationError: If steps is empty, or a looping chain would
            restart at the same instant it started
    """
    if not steps:
        raise ConfigurationError("chain has no steps")
    ordered = tuple(sorted(steps, key=lambda step: step.offset_ms))
    if loop and not ordered[-1].offset_ms > 0:
        raise ConfigurationError(
            "looping chain needs a final step after offset 0",
            subject=ordered[-1].label or None,
        )
    return ordered


class ChainedRunner:
    """
    Runs a chain of absolute-offset steps on a TimerScheduler.

    When the final step has run, a looping runner calls on_restart and
    runs the same steps again; a non-looping runner parks and waits for
    the host (e.g. a toggle-and-replay control) to call run() again.

    Example:
        runner = ChainedRunner(scheduler, [
            ChainStep(0, show_login, "login"),
            ChainStep(1500, submit, "submit"),
        ])
        runner.start()
    """

    def __init__(
        self,
        scheduler: TimerScheduler,
        steps: Sequence[ChainStep],
        loop: bool = False,
        on_step: Callable[[ChainStep], None] | None = None,
        on_restart: Callable[[], None] | None = None,
    ) -> None:
        """
        Initialize runner.

        Args:
            scheduler: Scheduler owning the run's timers
            steps: Steps to run by default
            loop: Re-run automatically after the final step
            on_step: Called after each step's action
            on_restart: Called before an automatic re-run

        Raises:
            ConfigurationError: If steps is empty, or loop is set and the
                final step sits at offset 0
        """
        self._scheduler = scheduler
        self.steps = validate_steps(steps, loop=loop)
        self.loop = loop
        self._on_step = on_step
        self._on_restart = on_restart
        self.current_label: str | None = None
        self.run_started_ms: float | None = None
        self.parked = False
        self.runs = 0

    def start(self) -> None:
        """Run the configured steps from the beginning."""
        self.run()

    def halt(self) -> None:
        """Forget the run. Pending steps die with the caller's cancel_all()."""
        self.current_label = None
        self.run_started_ms = None
        self.parked = False

    def run(self, steps: Sequence[ChainStep] | None = None) -> None:
        """
        Start a run, cancelling anything still pending first.

        Args:
            steps: Steps for this run (defaults to the configured steps)

        Raises:
            ConfigurationError: If an explicit step list is empty, or
                ends at offset 0 on a looping runner
        """
        chain = self.steps if steps is None else validate_steps(steps, loop=self.loop)

        generation = self._scheduler.cancel_all()
        self.run_started_ms = self._scheduler.now_ms
        self.current_label = None
        self.parked = False
        self.runs += 1
        logger.debug(f"Chain run {self.runs}: {len(chain)} step(s), generation={generation}")

        final = len(chain) - 1
        for position, step in enumerate(chain):
            self._scheduler.schedule(
                step.offset_ms,
                functools.partial(self._fire, step, position == final, chain),
            )

    def _fire(self, step: ChainStep, is_final: bool, chain: tuple[ChainStep, ...]) -> None:
        self.current_label = step.label
        step.action()
        if self._on_step is not None:
            self._on_step(step)
        if not is_final:
            return
        if self.loop:
            if self._on_restart is not None:
                self._on_restart()
            self.run(chain)
        else:
            self.parked = True
            logger.debug(f"Chain parked after '{step.label}'")
