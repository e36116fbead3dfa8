"""Timed narrative engine for interactive vignettes."""

from narrative_core.chain import ChainedRunner, ChainStep
from narrative_core.errors import ConfigurationError, UnknownCommandError
from narrative_core.playback import (
    NarrativeEngine,
    PlaybackController,
    PlaybackControls,
    PlaybackState,
)
from narrative_core.scheduler import (
    AsyncioTimerBackend,
    Handle,
    RunToken,
    TimerBackend,
    TimerScheduler,
)
from narrative_core.state import LiveFlags, Snapshot, VignetteState
from narrative_core.timeline import Stage, StageEntered, StageTimeline, Tick, TimelineRunner
from narrative_core.typing_sim import TypingJob, TypingSimulator, prefixes
from narrative_core.virtual import VirtualTimerBackend

__all__ = [
    "AsyncioTimerBackend",
    "ChainedRunner",
    "ChainStep",
    "ConfigurationError",
    "Handle",
    "LiveFlags",
    "NarrativeEngine",
    "PlaybackController",
    "PlaybackControls",
    "PlaybackState",
    "RunToken",
    "Snapshot",
    "Stage",
    "StageEntered",
    "StageTimeline",
    "Tick",
    "TimelineRunner",
    "TimerBackend",
    "TimerScheduler",
    "TypingJob",
    "TypingSimulator",
    "UnknownCommandError",
    "VignetteState",
    "VirtualTimerBackend",
    "prefixes",
]
