"""
Playback control for a mounted narrative.

This module provides:
- PlaybackState: PLAYING / STOPPED
- NarrativeEngine: Protocol satisfied by TimelineRunner and ChainedRunner
- PlaybackControls: What the host's play/pause and reset buttons call
- PlaybackController: Owns the scheduler's RunToken and gates the engine

Pausing is stop-and-rewind: it cancels every timer and restores the
initial snapshot rather than freezing mid-animation. play() always
starts again from the first stage.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Sequence

from narrative_core.scheduler import TimerScheduler

logger = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    """
    Playback states.

    Transitions:
        PLAYING --pause()--> STOPPED --play()--> PLAYING
    """

    PLAYING = "playing"
    """Engine running from its first stage."""

    STOPPED = "stopped"
    """No timers outstanding, state rewound to initial values."""


class NarrativeEngine(Protocol):
    """Engine a PlaybackController can start and halt."""

    def start(self) -> None:
        ...

    def halt(self) -> None:
        ...


class Resettable(Protocol):
    """Anything holding derived state with pristine initial values."""

    def reset(self) -> None:
        ...


@dataclass(frozen=True)
class PlaybackControls:
    """
    Host-facing playback controls.

    Attributes:
        is_playing: Playback state at the time the controls were taken
        on_play_pause: Toggle between PLAYING and STOPPED
        on_reset: Stop, rewind and play again
    """

    is_playing: bool
    on_play_pause: Callable[[], None]
    on_reset: Callable[[], None]


class PlaybackController:
    """
    Play/pause/reset gate for one engine.

    Every transition starts with scheduler.cancel_all(), which advances
    the RunToken before anything new is scheduled, so a late callback
    from the old generation can never write into the new one.

    Example:
        controller = PlaybackController(scheduler, runner, resettables=[state])
        controller.pause()   # STOPPED, state rewound
        controller.play()    # PLAYING from stage 0
    """

    def __init__(
        self,
        scheduler: TimerScheduler,
        engine: NarrativeEngine,
        resettables: Sequence[Resettable] = (),
        autostart: bool = True,
        on_change: Callable[[PlaybackState], None] | None = None,
    ) -> None:
        """
        Initialize controller.

        Args:
            scheduler: Scheduler whose RunToken the controller owns
            engine: TimelineRunner or ChainedRunner to gate
            resettables: State objects rewound on every transition
            autostart: Enter PLAYING immediately (the default)
            on_change: Called after every transition with the new state
        """
        self._scheduler = scheduler
        self._engine = engine
        self._resettables = list(resettables)
        self._on_change = on_change
        self.state = PlaybackState.STOPPED
        self.closed = False
        if autostart:
            self.play()

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def scheduler(self) -> TimerScheduler:
        return self._scheduler

    def play(self) -> None:
        """Rewind and start the engine from its first stage."""
        if self.closed:
            return
        generation = self._rewind()
        self._engine.start()
        self._set_state(PlaybackState.PLAYING, generation)

    def pause(self) -> None:
        """Stop every timer and rewind to the initial snapshot."""
        if self.closed:
            return
        generation = self._rewind()
        self._engine.halt()
        self._set_state(PlaybackState.STOPPED, generation)

    def reset(self) -> None:
        """Equivalent to pause() followed by play()."""
        self.pause()
        self.play()

    def toggle(self) -> None:
        """Host play/pause button."""
        if self.is_playing:
            self.pause()
        else:
            self.play()

    def close(self) -> None:
        """Unmount: cancel everything and refuse further transitions."""
        if self.closed:
            return
        self._scheduler.cancel_all()
        self._engine.halt()
        self.state = PlaybackState.STOPPED
        self.closed = True
        logger.debug("Playback closed")

    def controls(self) -> PlaybackControls:
        return PlaybackControls(
            is_playing=self.is_playing,
            on_play_pause=self.toggle,
            on_reset=self.reset,
        )

    def _rewind(self) -> int:
        generation = self._scheduler.cancel_all()
        for resettable in self._resettables:
            resettable.reset()
        return generation

    def _set_state(self, state: PlaybackState, generation: int) -> None:
        self.state = state
        logger.debug(f"Playback {state.value} (generation {generation})")
        if self._on_change is not None:
            self._on_change(state)
