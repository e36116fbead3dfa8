"""
DemoSession: one mounted vignette and its playback controller.

The session is what a host (the TUI player, the trace command, tests)
holds. It owns the scheduler, builds the vignette against it and gates
the vignette's engine with a PlaybackController. Host commands and
live-flag changes go through the session so they follow the same
rules everywhere.
"""

import logging

from narrative_core.config import Settings
from narrative_core.errors import UnknownCommandError
from narrative_core.playback import PlaybackController, PlaybackControls, PlaybackState
from narrative_core.scheduler import TimerBackend, TimerScheduler
from narrative_core.state import FlagValue, Snapshot

from attack_demos.types import HostCommand, Narration, Vignette

logger = logging.getLogger(__name__)


class DemoSession:
    """
    A vignette mounted on a timer backend.

    Example:
        backend = VirtualTimerBackend()
        session = DemoSession(CSRFVignette, backend)
        backend.advance_to(9000)
        session.set_flag("protection_on", True)
        session.snapshot().active_stage_id
    """

    def __init__(
        self,
        vignette_cls: type[Vignette],
        backend: TimerBackend,
        settings: Settings | None = None,
        autostart: bool = True,
    ) -> None:
        """
        Mount a vignette.

        Args:
            vignette_cls: Vignette class to instantiate
            backend: Timer backend (asyncio for the player, virtual for traces)
            settings: Engine settings (module defaults if None)
            autostart: Start playing immediately
        """
        self.scheduler = TimerScheduler(backend)
        self.vignette = vignette_cls(self.scheduler, settings)
        self.controller = PlaybackController(
            self.scheduler,
            self.vignette.engine,
            resettables=self.vignette.resettables(),
            autostart=False,
            on_change=self._on_change,
        )
        self.vignette.state.bind(is_playing=lambda: self.controller.is_playing)
        logger.info(f"Mounted vignette '{self.vignette.key}'")
        if autostart:
            self.controller.play()

    @property
    def is_playing(self) -> bool:
        return self.controller.is_playing

    def snapshot(self) -> Snapshot:
        return self.vignette.state.snapshot()

    def narration(self) -> Narration:
        """Narrator text for the stage currently on screen."""
        return self.vignette.describe(self.vignette.state.active_stage_id)

    def controls(self) -> PlaybackControls:
        return self.controller.controls()

    def commands(self) -> list[HostCommand]:
        return self.vignette.commands()

    def set_flag(self, name: str, value: FlagValue) -> Snapshot:
        """
        Change a live domain flag.

        Allowed while stopped as well; already scheduled actions see the
        new value when they fire.

        Raises:
            KeyError: If the vignette has no such flag
        """
        self.vignette.flags.set(name, value)
        logger.debug(f"Flag {name}={value!r} (generation {self.scheduler.generation})")
        return self.vignette.state.publish()

    def invoke(self, name: str) -> bool:
        """
        Run a vignette host command.

        Args:
            name: Command name from commands()

        Returns:
            True if the command ran, False if ignored because playback is stopped

        Raises:
            UnknownCommandError: If the vignette has no such command
        """
        commands = {command.name: command for command in self.commands()}
        if name not in commands:
            raise UnknownCommandError(name, list(commands))
        command = commands[name]
        if command.needs_playing and not self.controller.is_playing:
            logger.debug(f"Ignoring '{name}' while stopped")
            return False
        command.handler()
        self.vignette.state.publish()
        return True

    def close(self) -> None:
        """Unmount: no timer of this session fires afterwards."""
        self.controller.close()
        logger.info(f"Unmounted vignette '{self.vignette.key}'")

    def _on_change(self, state: PlaybackState) -> None:
        self.vignette.state.publish()
