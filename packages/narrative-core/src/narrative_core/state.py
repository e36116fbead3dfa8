"""
Derived vignette state and the read-only snapshots built from it.

This module provides:
- Snapshot: Immutable view handed to the presentation layer
- LiveFlags: Domain flags (e.g. a protection toggle) read at fire time
- VignetteState: Mutable state with pristine initial values

Engines and vignette callbacks mutate VignetteState; the presentation
layer only ever sees Snapshots. reset() restores the exact initial
values, which is what makes pause a stop-and-rewind.

Per project patterns:
- Pydantic BaseModel for validation and serialization
- Field() with descriptions for documentation
"""

from copy import deepcopy
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

from narrative_core.buffer import ConsoleLog

FlagValue = bool | str | int | None


class Snapshot(BaseModel):
    """
    Read-only state of a vignette at one tick or step.
    """

    model_config = ConfigDict(frozen=True)

    vignette: str = Field(..., description="Vignette key")
    active_stage_id: str = Field(..., description="Id of the stage currently on screen")
    sub_animation_flags: dict[str, FlagValue] = Field(
        default_factory=dict, description="Visual effect flags (arrow status, door open, ...)"
    )
    typed_text: dict[str, str] = Field(
        default_factory=dict, description="Text fields, possibly mid-typing"
    )
    derived_counters: dict[str, float] = Field(
        default_factory=dict, description="Animated numbers (balances, progress)"
    )
    log_lines: list[str] = Field(default_factory=list, description="Console/narrator lines")
    domain_flags: dict[str, FlagValue] = Field(
        default_factory=dict, description="Host-controlled live flags"
    )
    is_playing: bool = Field(default=True, description="Playback state when taken")
    generation: int = Field(default=0, description="RunToken generation when taken")


class LiveFlags:
    """
    Host-controlled domain flags read at the moment an action runs.

    Scheduled actions must hold a reference to this object and call
    get() when they fire, never a copy of the value taken earlier.

    Example:
        flags = LiveFlags({"protection_on": False})
        step = lambda: branch(flags.get("protection_on"))
    """

    def __init__(self, initial: dict[str, FlagValue] | None = None) -> None:
        self._initial = dict(initial or {})
        self._values = dict(self._initial)

    def get(self, name: str) -> FlagValue:
        return self._values[name]

    def set(self, name: str, value: FlagValue) -> None:
        if name not in self._values:
            raise KeyError(f"Unknown flag '{name}' (known: {', '.join(self._values) or 'none'})")
        self._values[name] = value

    def toggle(self, name: str) -> bool:
        value = not bool(self.get(name))
        self.set(name, value)
        return value

    def names(self) -> list[str]:
        return list(self._values)

    def as_dict(self) -> dict[str, FlagValue]:
        return dict(self._values)

    def reset(self) -> None:
        self._values = dict(self._initial)

    def pristine(self) -> "LiveFlags":
        """Fresh copy holding only the initial values."""
        return LiveFlags(self._initial)


class VignetteState:
    """
    Mutable derived state of one mounted vignette.

    Holds the active stage id, sub-animation flags, typed text fields,
    counters and log lines, each with a pristine initial value that
    reset() restores. publish() builds a Snapshot and hands it to every
    subscriber.

    Attributes:
        vignette: Vignette key stamped into snapshots
    """

    def __init__(
        self,
        vignette: str,
        initial_stage: str,
        flags: dict[str, FlagValue] | None = None,
        fields: dict[str, str] | None = None,
        counters: dict[str, float] | None = None,
        log_lines: int = 20,
    ) -> None:
        """
        Initialize state with its pristine values.

        Args:
            vignette: Vignette key
            initial_stage: Stage id shown before anything runs
            flags: Initial sub-animation flags
            fields: Initial typed text fields
            counters: Initial counter values
            log_lines: Maximum retained log lines
        """
        self.vignette = vignette
        self._initial = {
            "stage": initial_stage,
            "flags": dict(flags or {}),
            "fields": dict(fields or {}),
            "counters": dict(counters or {}),
        }
        self._log = ConsoleLog(maxlen=log_lines)
        self._subscribers: list[Callable[[Snapshot], None]] = []
        self._domain: LiveFlags | None = None
        self._playing: Callable[[], bool] = lambda: True
        self._generation: Callable[[], int] = lambda: 0
        self.reset()

    def bind(
        self,
        domain: LiveFlags | None = None,
        is_playing: Callable[[], bool] | None = None,
        generation: Callable[[], int] | None = None,
    ) -> None:
        """Attach live sources that snapshots report alongside state."""
        if domain is not None:
            self._domain = domain
        if is_playing is not None:
            self._playing = is_playing
        if generation is not None:
            self._generation = generation

    def reset(self) -> None:
        """Restore every value to its pristine initial state."""
        self.active_stage_id: str = self._initial["stage"]
        self._flags: dict[str, FlagValue] = deepcopy(self._initial["flags"])
        self._fields: dict[str, str] = dict(self._initial["fields"])
        self._counters: dict[str, float] = dict(self._initial["counters"])
        self._log.clear()

    # Stage

    def enter_stage(self, stage_id: str) -> None:
        self.active_stage_id = stage_id

    # Flags

    def set_flag(self, name: str, value: FlagValue) -> None:
        self._flags[name] = value

    def flag(self, name: str) -> FlagValue:
        return self._flags.get(name)

    # Text fields

    def set_text(self, name: str, value: str) -> None:
        self._fields[name] = value

    def text(self, name: str) -> str:
        return self._fields.get(name, "")

    def text_setter(self, name: str) -> Callable[[str], None]:
        """Return a callback that writes into one field (for TypingSimulator)."""
        return lambda value: self.set_text(name, value)

    # Counters

    def set_counter(self, name: str, value: float) -> None:
        self._counters[name] = value

    def add_to_counter(self, name: str, delta: float, floor: float | None = None) -> float:
        value = self._counters.get(name, 0.0) + delta
        if floor is not None:
            value = max(floor, value)
        self._counters[name] = value
        return value

    def counter(self, name: str) -> float:
        return self._counters.get(name, 0.0)

    # Log

    def log(self, line: str) -> None:
        self._log.write(line)

    def set_log(self, lines: list[str]) -> None:
        self._log.replace(lines)

    def clear_log(self) -> None:
        self._log.clear()

    # Output

    def subscribe(self, callback: Callable[[Snapshot], None]) -> None:
        self._subscribers.append(callback)

    def snapshot(self) -> Snapshot:
        return Snapshot(
            vignette=self.vignette,
            active_stage_id=self.active_stage_id,
            sub_animation_flags=dict(self._flags),
            typed_text=dict(self._fields),
            derived_counters=dict(self._counters),
            log_lines=self._log.tail(),
            domain_flags=self._domain.as_dict() if self._domain is not None else {},
            is_playing=self._playing(),
            generation=self._generation(),
        )

    def publish(self) -> Snapshot:
        """Build a snapshot and deliver it to every subscriber."""
        snapshot = self.snapshot()
        for callback in self._subscribers:
            callback(snapshot)
        return snapshot

    def pristine(self) -> Snapshot:
        """Snapshot of the initial values, without touching current state."""
        probe = VignetteState(
            vignette=self.vignette,
            initial_stage=self._initial["stage"],
            flags=self._initial["flags"],
            fields=self._initial["fields"],
            counters=self._initial["counters"],
        )
        probe.bind(is_playing=self._playing, generation=self._generation)
        if self._domain is not None:
            probe.bind(domain=self._domain.pristine())
        return probe.snapshot()
