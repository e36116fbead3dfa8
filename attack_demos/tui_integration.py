"""
TUI player for the attack vignettes.

This module provides TUIDemoController which combines:
- The 5-panel Rich layout (from narrative_core.tui.layout)
- A DemoSession running on the asyncio event loop clock
- Keyboard control for play/pause, reset and vignette commands

Usage:
    from attack_demos import SQLInjectionVignette

    controller = TUIDemoController(SQLInjectionVignette)
    await controller.run()
"""

import asyncio
import functools
import logging
import signal

from rich.console import Console
from rich.live import Live
from rich.markup import escape

from attack_demos.session import DemoSession
from attack_demos.types import Vignette
from narrative_core.config import Settings, settings as default_settings
from narrative_core.scheduler import AsyncioTimerBackend
from narrative_core.tui.keyboard import KeyboardTask
from narrative_core.tui.layout import (
    create_layout,
    make_console_panel,
    make_panel,
    make_progress_line,
    make_stages_panel,
)

logger = logging.getLogger(__name__)

PLAY_KEYS = ("space", "enter")
RESET_KEYS = ("r",)
QUIT_KEYS = ("q", "escape")


class TUIDemoController:
    """
    Interactive player for one vignette.

    The vignette's timers run on the event loop through an
    AsyncioTimerBackend, so the update loop only has to render the
    latest snapshot; nothing in the render path advances the story.

    Attributes:
        vignette_cls: Vignette being played
        settings: Engine and player settings
        console: Rich Console for rendering
    """

    def __init__(
        self,
        vignette_cls: type[Vignette],
        settings: Settings | None = None,
        console: Console | None = None,
    ) -> None:
        """
        Initialize TUI demo controller.

        Args:
            vignette_cls: Vignette class to play
            settings: Settings (module defaults if None)
            console: Rich Console (creates default if None)
        """
        self.vignette_cls = vignette_cls
        self.settings = settings if settings is not None else default_settings
        self.console = console if console is not None else Console()

        self._shutdown = asyncio.Event()
        self._layout = create_layout()
        self._keyboard: KeyboardTask | None = None
        self._session: DemoSession | None = None

    async def run(self) -> None:
        """
        Run the player until quit or shutdown signal.

        Order:
        1. Register signal handlers BEFORE Live context
        2. Mount the session on the running loop's clock
        3. Enter Live context for rendering
        4. Run TaskGroup with keyboard reader and update loop
        5. Unmount so no timer fires after the player exits
        """
        loop = asyncio.get_running_loop()

        # 1. Register signal handlers BEFORE Live context
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(
                sig,
                functools.partial(self._handle_signal, sig),
            )

        # 2. Mount the vignette; it starts playing immediately
        backend = AsyncioTimerBackend(loop=loop, speed=self.settings.speed)
        self._session = DemoSession(self.vignette_cls, backend, settings=self.settings)
        self._keyboard = KeyboardTask(on_key=self._handle_key)
        self._refresh_panels()

        # 3. Enter Live context for flicker-free rendering
        with Live(
            self._layout,
            console=self.console,
            refresh_per_second=self.settings.refresh_per_second,
            screen=False,
        ) as live:
            # 4. Keyboard reader and update loop
            try:
                async with asyncio.TaskGroup() as tg:
                    tg.create_task(self._keyboard.run())
                    tg.create_task(self._update_loop(live))
            except* Exception as group:
                for exc in group.exceptions:
                    logger.error(f"Player task failed: {exc!r}")

        # 5. Unmount
        self._session.close()
        self.console.print("[green]Demo shutdown complete[/green]")

    def _handle_signal(self, sig: signal.Signals) -> None:
        """
        Handle shutdown signal by stopping the keyboard and update loop.

        Args:
            sig: Signal received (SIGINT or SIGTERM)
        """
        logger.debug(f"Received {sig.name}")
        self._stop()

    def _stop(self) -> None:
        self._shutdown.set()
        if self._keyboard is not None:
            self._keyboard.stop()

    def _handle_key(self, key: str) -> None:
        """
        Handle keypress.

        SPACE/ENTER: Play or pause (pause rewinds to the start)
        R: Reset and play from the first stage
        Q/ESC: Quit
        Other keys: Vignette commands (see the controls panel)

        Args:
            key: Normalised key name
        """
        session = self._session
        if session is None:
            return

        if key in QUIT_KEYS:
            self._stop()
            return
        if key in PLAY_KEYS:
            session.controls().on_play_pause()
        elif key in RESET_KEYS:
            session.controls().on_reset()
        else:
            for command in session.commands():
                if command.key == key:
                    session.invoke(command.name)
                    break
        self._refresh_panels()

    async def _update_loop(self, live: Live) -> None:
        """
        Update loop that refreshes panels until shutdown.

        Uses wait_for with timeout for an interruptible loop.

        Args:
            live: Rich Live context for refreshing display
        """
        interval = 1.0 / self.settings.refresh_per_second
        while not self._shutdown.is_set():
            self._refresh_panels()
            live.refresh()
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass  # Normal refresh interval

    def _refresh_panels(self) -> None:
        """Render every panel from the session's latest snapshot."""
        session = self._session
        if session is None:
            return

        vignette = session.vignette
        snapshot = session.snapshot()
        narration = session.narration()
        stage_ids = [item.stage_id for item in vignette.narration()]
        titles = {item.stage_id: item.title for item in vignette.narration()}

        self._layout["stages"].update(
            make_stages_panel(
                [(stage_id, titles[stage_id]) for stage_id in stage_ids],
                snapshot.active_stage_id,
            )
        )

        header = f"[bold cyan]{escape(narration.title)}[/bold cyan]"
        progress = snapshot.derived_counters.get("progress")
        if progress is not None:
            header += f"\n{make_progress_line(progress)}"
        self._layout["main"]["narration"].update(
            make_panel(f"{header}\n\n{escape(narration.text)}", vignette.title, "magenta")
        )

        self._layout["main"]["scene"].update(
            make_panel(vignette.scene(snapshot), "Scene", "red" if vignette.alert(snapshot) else "blue")
        )

        lines = [escape(line) for line in snapshot.log_lines[-self.settings.log_lines:]]
        self._layout["main"]["console"].update(
            make_console_panel(lines, alert=vignette.alert(snapshot))
        )

        state = "[green]▶ playing[/green]" if snapshot.is_playing else "[yellow]■ stopped[/yellow]"
        hints = ["space play/pause", "r reset", "q quit"]
        hints += [f"{command.key} {command.label}" for command in session.commands()]
        flags = "  ".join(f"{name}={value}" for name, value in snapshot.domain_flags.items())
        self._layout["main"]["controls"].update(
            make_panel(f"{state}  {flags}\n[dim]{' | '.join(hints)}[/dim]", "Controls", "yellow")
        )
