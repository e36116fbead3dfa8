"""Attack demos CLI.

This module provides the CLI commands for the vignettes:
- list: Table of available vignettes
- play: Interactive Rich Live player
- trace: Run a vignette on the virtual clock and print sampled snapshots

Per project patterns:
- typer.Typer() app with one function per command
- asyncio.run() to execute the async player in a sync CLI command
- Rich Table for formatted output, JSON for automation
"""

import asyncio
import json
import logging
from dataclasses import dataclass

import typer
from rich.console import Console
from rich.table import Table

from attack_demos import VIGNETTES, get_vignette
from attack_demos.session import DemoSession
from attack_demos.types import Vignette
from narrative_core.config import Settings, settings
from narrative_core.errors import ConfigurationError, UnknownCommandError
from narrative_core.state import FlagValue, Snapshot
from narrative_core.virtual import VirtualTimerBackend

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="attack-demos",
    help="Timed vignettes that show how common web attacks work",
    no_args_is_help=True,
)


@dataclass(frozen=True)
class TraceEvent:
    """A host action applied at a fixed offset during a trace."""

    offset_ms: float
    name: str
    value: FlagValue = None
    is_command: bool = False


def parse_value(raw: str) -> FlagValue:
    """Parse a flag value: true/false, none, integers, otherwise a string."""
    lowered = raw.lower()
    if lowered in ("true", "on", "yes"):
        return True
    if lowered in ("false", "off", "no"):
        return False
    if lowered == "none":
        return None
    try:
        return int(raw)
    except ValueError:
        return raw


def parse_set(raw: str) -> TraceEvent:
    """
    Parse an OFFSET:FLAG=VALUE option.

    Raises:
        typer.BadParameter: If the value is malformed
    """
    offset, sep, assignment = raw.partition(":")
    name, eq, value = assignment.partition("=")
    if not sep or not eq or not name:
        raise typer.BadParameter(f"expected OFFSET:FLAG=VALUE, got '{raw}'")
    return TraceEvent(_parse_offset(offset, raw), name, parse_value(value))


def parse_invoke(raw: str) -> TraceEvent:
    """
    Parse an OFFSET:COMMAND option.

    Raises:
        typer.BadParameter: If the value is malformed
    """
    offset, sep, name = raw.partition(":")
    if not sep or not name:
        raise typer.BadParameter(f"expected OFFSET:COMMAND, got '{raw}'")
    return TraceEvent(_parse_offset(offset, raw), name, is_command=True)


def _parse_offset(offset: str, raw: str) -> float:
    try:
        value = float(offset)
    except ValueError:
        raise typer.BadParameter(f"offset must be a number of milliseconds, got '{raw}'") from None
    if value < 0:
        raise typer.BadParameter(f"offset must not be negative, got '{raw}'")
    return value


def _resolve(key: str) -> type[Vignette]:
    try:
        return get_vignette(key)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e)) from None


def trace_session(
    vignette_cls: type[Vignette],
    until_ms: float,
    every_ms: float,
    events: list[TraceEvent] | None = None,
    config: Settings | None = None,
) -> list[tuple[float, Snapshot]]:
    """
    Play a vignette on the virtual clock and sample snapshots.

    Events scheduled at the same offset as a sample are applied before
    that sample is taken.

    Args:
        vignette_cls: Vignette to run
        until_ms: Last sample time
        every_ms: Time between samples
        events: Flag changes and commands to apply at fixed offsets
        config: Engine settings

    Returns:
        (time, snapshot) pairs in time order
    """
    backend = VirtualTimerBackend()
    session = DemoSession(vignette_cls, backend, settings=config)
    pending = sorted(events or [], key=lambda event: event.offset_ms)
    samples = []
    logger.debug(
        f"Tracing '{vignette_cls.key}' to {until_ms:.0f}ms every {every_ms:.0f}ms "
        f"with {len(pending)} event(s)"
    )
    t = 0.0
    try:
        while t <= until_ms:
            while pending and pending[0].offset_ms <= t:
                event = pending.pop(0)
                backend.advance_to(event.offset_ms)
                if event.is_command:
                    session.invoke(event.name)
                else:
                    session.set_flag(event.name, event.value)
            backend.advance_to(t)
            samples.append((t, session.snapshot()))
            t += every_ms
    finally:
        session.close()
    return samples


def _format_mapping(values: dict) -> str:
    return " ".join(f"{name}={value}" for name, value in values.items())


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        settings.log_level,
        "--log-level",
        "-l",
        envvar="NARRATIVE_LOG_LEVEL",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    ),
) -> None:
    """Configure logging before any command runs."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("list")
def list_vignettes(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List available vignettes."""
    if json_output:
        data = [
            {"key": key, "title": cls.title, "description": cls.description}
            for key, cls in VIGNETTES.items()
        ]
        typer.echo(json.dumps(data, indent=2))
        return

    console = Console()
    table = Table(title="Vignettes")
    table.add_column("Key", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Description")
    for key, cls in VIGNETTES.items():
        table.add_row(key, cls.title, cls.description)
    console.print(table)


@app.command("play")
def play(
    key: str = typer.Argument(..., help=f"Vignette to play ({', '.join(VIGNETTES)})"),
    speed: float = typer.Option(
        settings.speed, "--speed", "-s", help="Playback speed multiplier"
    ),
) -> None:
    """
    Play a vignette in the terminal.

    SPACE toggles play/pause, R resets, Q quits. Vignette-specific keys
    are listed in the controls panel.
    """
    from attack_demos.tui_integration import TUIDemoController

    vignette_cls = _resolve(key)
    if speed <= 0:
        raise typer.BadParameter("speed must be positive")
    config = settings.model_copy(update={"speed": speed})
    asyncio.run(TUIDemoController(vignette_cls, settings=config).run())


@app.command("trace")
def trace(
    key: str = typer.Argument(..., help=f"Vignette to trace ({', '.join(VIGNETTES)})"),
    until: float = typer.Option(30000.0, "--until", "-u", help="Last sample time in ms"),
    every: float = typer.Option(1000.0, "--every", "-e", help="Sample interval in ms"),
    set_flags: list[str] = typer.Option(
        [], "--set", help="Set a live flag: OFFSET:FLAG=VALUE (repeatable)"
    ),
    invoke: list[str] = typer.Option(
        [], "--invoke", help="Run a vignette command: OFFSET:COMMAND (repeatable)"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output JSON lines"),
) -> None:
    """Run a vignette on the virtual clock and print sampled snapshots."""
    vignette_cls = _resolve(key)
    if every <= 0:
        raise typer.BadParameter("--every must be positive")
    if until < 0:
        raise typer.BadParameter("--until must not be negative")
    events = [parse_set(raw) for raw in set_flags] + [parse_invoke(raw) for raw in invoke]

    try:
        samples = trace_session(vignette_cls, until, every, events)
    except (KeyError, UnknownCommandError) as e:
        raise typer.BadParameter(str(e)) from None

    if json_output:
        for t, snapshot in samples:
            typer.echo(json.dumps({"t_ms": t, **snapshot.model_dump()}))
        return

    console = Console()
    table = Table(title=f"Trace: {vignette_cls.title}")
    table.add_column("t (ms)", justify="right", style="cyan")
    table.add_column("Stage", style="green")
    table.add_column("Text")
    table.add_column("Counters")
    table.add_column("Flags")
    table.add_column("Live", style="magenta")
    for t, snapshot in samples:
        table.add_row(
            f"{t:.0f}",
            snapshot.active_stage_id,
            _format_mapping(snapshot.typed_text),
            _format_mapping(snapshot.derived_counters),
            _format_mapping(snapshot.sub_animation_flags),
            _format_mapping(snapshot.domain_flags),
        )
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
