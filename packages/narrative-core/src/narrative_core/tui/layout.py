"""
Layout factory for the vignette player.

This module provides the layout structure for the player TUI:
- create_layout(): Creates the 5-panel layout structure
- make_panel(): Helper for creating styled panels
- make_stages_panel(): Stage list with the active stage highlighted
- make_progress_line(): Text progress bar for continuous timelines

Layout structure:
+------------------+----------------------------------------+
|                  |  Narration (ratio=2)                   |
|  Stages          +----------------------------------------+
|  (30 cols fixed) |  Scene (ratio=4)                       |
|                  +----------------------------------------+
|                  |  Console (ratio=3)                     |
|                  +----------------------------------------+
|                  |  Controls (4 rows fixed)               |
+------------------+----------------------------------------+
"""

from collections.abc import Sequence

from rich.layout import Layout
from rich.panel import Panel

PROGRESS_WIDTH = 40


def create_layout() -> Layout:
    """
    Create the 5-panel player layout.

    Access panels via:
    - layout["stages"]
    - layout["main"]["narration"]
    - layout["main"]["scene"]
    - layout["main"]["console"]
    - layout["main"]["controls"]

    Returns:
        Layout with 5 named panel regions
    """
    layout = Layout(name="root")

    layout.split_row(
        Layout(name="stages", size=30),
        Layout(name="main"),
    )
    layout["main"].split_column(
        Layout(name="narration", ratio=2),
        Layout(name="scene", ratio=4),
        Layout(name="console", ratio=3),
        Layout(name="controls", size=4),
    )

    return layout


def make_panel(content: str, title: str, style: str = "blue") -> Panel:
    """
    Create a styled panel with content.

    Args:
        content: Text content for the panel
        title: Panel title (will be bolded)
        style: Border style color (default "blue")

    Returns:
        Panel with formatted title and border style
    """
    return Panel(
        content,
        title=f"[bold]{title}[/bold]",
        border_style=style,
        padding=(0, 1),
    )


def make_stages_panel(stages: Sequence[tuple[str, str]], active_id: str) -> Panel:
    """
    Create the stage list panel.

    Args:
        stages: (stage id, title) pairs in playback order
        active_id: Id of the stage on screen

    Returns:
        Panel listing every stage, active one marked and bolded
    """
    lines = []
    for stage_id, title in stages:
        label = title or stage_id
        if stage_id == active_id:
            lines.append(f"[bold magenta]▶ {label}[/bold magenta]")
        else:
            lines.append(f"[dim]  {label}[/dim]")
    return make_panel("\n".join(lines), "Stages", "cyan")


def make_progress_line(progress: float, width: int = PROGRESS_WIDTH) -> str:
    """
    Render progress (0-100) as a text bar like "[=====     ]  50%".
    """
    progress = min(100.0, max(0.0, progress))
    filled = int(round(progress / 100.0 * width))
    return f"[{'=' * filled}{' ' * (width - filled)}] {progress:3.0f}%"


def make_console_panel(lines: Sequence[str], alert: bool = False) -> Panel:
    """
    Create the console panel with alert-aware border color.

    Args:
        lines: Console lines, newest last
        alert: True when the vignette is showing an attack succeeding

    Returns:
        Panel with red border on alert, green otherwise
    """
    content = "\n".join(lines) if lines else "[dim]Waiting for system logs...[/dim]"
    border_style = "bold red" if alert else "green"
    return make_panel(content, "Console", border_style)
