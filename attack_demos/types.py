"""
Shared types for the attack vignettes.

This module defines:
- StageScript: Declarative payload for a continuous-clock stage
- Narration: Narrator title/text for one stage
- HostCommand: A vignette-specific control (toggle, replay, ...)
- Vignette: Base class wiring state, live flags and an engine together
- TimelineVignette: Vignette driven by a looping StageTimeline
- ChainVignette: Vignette driven by a ChainedRunner

Each concrete vignette only declares its stages or steps; timing,
cancellation and playback are handled by narrative_core.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Callable, ClassVar

from rich.markup import escape

from narrative_core.chain import ChainedRunner, ChainStep
from narrative_core.config import Settings, settings as default_settings
from narrative_core.playback import NarrativeEngine, Resettable
from narrative_core.scheduler import TimerScheduler
from narrative_core.state import FlagValue, LiveFlags, Snapshot, VignetteState
from narrative_core.timeline import Stage, StageEntered, StageTimeline, Tick, TimelineRunner
from narrative_core.typing_sim import TypingSimulator


@dataclass(frozen=True)
class StageScript:
    """
    What a continuous-clock stage does when it is entered.

    Attributes:
        flags: Sub-animation flags set on entry
        fields: Text fields set on entry
        typing: (field, text) pairs typed one after another
        effects: (delay_ms, flag, value) set relative to stage start
    """

    flags: Mapping[str, FlagValue] = field(default_factory=dict)
    fields: Mapping[str, str] = field(default_factory=dict)
    typing: tuple[tuple[str, str], ...] = ()
    effects: tuple[tuple[float, str, FlagValue], ...] = ()


@dataclass(frozen=True)
class Narration:
    """Narrator text for one stage."""

    stage_id: str
    title: str
    text: str = ""


@dataclass(frozen=True)
class HostCommand:
    """
    Vignette-specific control exposed to the host.

    Attributes:
        name: Command name used by DemoSession.invoke()
        key: Keyboard binding in the player
        label: Short label for key hints
        handler: Zero-argument callable
        needs_playing: Ignore the command while playback is stopped
    """

    name: str
    key: str
    label: str
    handler: Callable[[], None]
    needs_playing: bool = True


class Vignette(ABC):
    """
    One demonstration: initial state, live flags and an engine.

    Subclasses set the class attributes and implement build_state()
    and build_engine(). A Vignette is created per mount and bound to
    that mount's scheduler.
    """

    key: ClassVar[str]
    title: ClassVar[str]
    description: ClassVar[str]
    # Whether pause/reset also clears host-controlled flags
    rewind_flags: ClassVar[bool] = True

    def __init__(self, scheduler: TimerScheduler, settings: Settings | None = None) -> None:
        """
        Initialize vignette for one mount.

        Args:
            scheduler: Scheduler owned by the mount's PlaybackController
            settings: Engine settings (module defaults if None)
        """
        self.scheduler = scheduler
        self.settings = settings if settings is not None else default_settings
        self.flags = LiveFlags(self.initial_flags())
        self.state = self.build_state()
        self.state.bind(domain=self.flags, generation=lambda: scheduler.generation)
        self.engine = self.build_engine()

    def initial_flags(self) -> dict[str, FlagValue]:
        """Host-controlled flags and their initial values."""
        return {}

    @abstractmethod
    def build_state(self) -> VignetteState:
        ...

    @abstractmethod
    def build_engine(self) -> NarrativeEngine:
        ...

    @abstractmethod
    def narration(self) -> list[Narration]:
        """Narrator text for every stage, in playback order."""
        ...

    def describe(self, stage_id: str) -> Narration:
        """Narrator text for a stage (may depend on live flags)."""
        for item in self.narration():
            if item.stage_id == stage_id:
                return item
        return Narration(stage_id=stage_id, title=stage_id)

    def commands(self) -> list[HostCommand]:
        return []

    def scene(self, snapshot: Snapshot) -> str:
        """
        Render the scene panel body as Rich markup.

        The default lists text fields and sub-animation flags; vignettes
        override it with a picture of their own.
        """
        lines = [f"{name}: [bold]{escape(value)}[/bold]" for name, value in snapshot.typed_text.items()]
        lines += [
            f"[dim]{name}[/dim] = {value}"
            for name, value in snapshot.sub_animation_flags.items()
        ]
        return "\n".join(lines)

    def alert(self, snapshot: Snapshot) -> bool:
        """True while the snapshot shows an attack succeeding."""
        return False

    def resettables(self) -> list[Resettable]:
        """Objects a playback transition rewinds."""
        if self.rewind_flags:
            return [self.state, self.flags]
        return [self.state]

    def later(self, delay_ms: float, action: Callable[[], None]) -> None:
        """Schedule a sub-effect relative to now, inside the current generation."""
        self.scheduler.schedule(delay_ms, action)


class TimelineVignette(Vignette):
    """
    Vignette whose stages are re-derived from the clock every frame.

    STAGES carry a StageScript payload. On entry the base class applies
    ENTRY_FLAGS, then the stage's flags and fields, starts its typing
    sequence and schedules its effects. A `progress` counter follows the
    position in the cycle.
    """

    STAGES: ClassVar[tuple[Stage, ...]]
    LOOP: ClassVar[bool] = True
    # Flags every stage entry starts from
    ENTRY_FLAGS: ClassVar[Mapping[str, FlagValue]] = {}

    def build_engine(self) -> TimelineRunner:
        self.timeline = StageTimeline(self.STAGES, loop=self.LOOP)
        self.typists: dict[str, TypingSimulator] = {}
        return TimelineRunner(
            self.timeline,
            self.scheduler,
            on_stage_entered=self._enter,
            on_tick=self._tick,
            frame_ms=self.settings.frame_interval_ms,
        )

    def narration(self) -> list[Narration]:
        return [Narration(s.id, s.title, s.description) for s in self.STAGES]

    def typist(self, field_name: str) -> TypingSimulator:
        """One TypingSimulator per field, created on first use."""
        if field_name not in self.typists:
            self.typists[field_name] = TypingSimulator(
                self.scheduler, on_prefix=self.state.text_setter(field_name)
            )
        return self.typists[field_name]

    def type_sequence(self, pairs: tuple[tuple[str, str], ...]) -> None:
        """Clear the fields, then type each (field, text) after the previous one."""
        for field_name, _ in pairs:
            self.state.set_text(field_name, "")
        interval = self.settings.typing_interval_ms

        def type_from(position: int) -> None:
            if position >= len(pairs):
                return
            field_name, text = pairs[position]
            self.typist(field_name).start(
                text, interval, on_complete=lambda: type_from(position + 1)
            )

        type_from(0)

    def on_stage(self, event: StageEntered) -> None:
        """Hook for stage entry behaviour beyond the StageScript."""

    def _enter(self, event: StageEntered) -> None:
        self.state.enter_stage(event.stage.id)
        for name, value in self.ENTRY_FLAGS.items():
            self.state.set_flag(name, value)

        script = event.stage.payload
        if isinstance(script, StageScript):
            for name, value in script.flags.items():
                self.state.set_flag(name, value)
            for name, value in script.fields.items():
                self.state.set_text(name, value)
            if script.typing:
                self.type_sequence(script.typing)
            for delay_ms, name, value in script.effects:
                self.later(delay_ms, self._flag_setter(name, value))

        self.on_stage(event)

    def _flag_setter(self, name: str, value: FlagValue) -> Callable[[], None]:
        return lambda: self.state.set_flag(name, value)

    def _tick(self, tick: Tick) -> None:
        self.state.set_counter("progress", round(tick.progress, 2))
        self.state.publish()


class ChainVignette(Vignette):
    """
    Vignette authored as absolute-offset steps.

    Subclasses implement build_steps(). Steps run under one RunToken per
    run; LOOP re-runs them after the final step, calling on_restart()
    first.
    """

    LOOP: ClassVar[bool] = False

    @abstractmethod
    def build_steps(self) -> list[ChainStep]:
        ...

    def build_engine(self) -> ChainedRunner:
        self.runner = ChainedRunner(
            self.scheduler,
            self.build_steps(),
            loop=self.LOOP,
            on_step=lambda step: self.state.publish(),
            on_restart=self.on_restart,
        )
        return self.runner

    def on_restart(self) -> None:
        """Called before an automatic re-run of a looping chain."""

    def enter(self, stage_id: str) -> Callable[[], None]:
        """Step action that only switches the active stage."""
        return lambda: self.state.enter_stage(stage_id)
