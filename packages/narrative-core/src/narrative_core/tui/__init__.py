"""
TUI building blocks for the vignette player.

This module provides:
- KeyReader / KeyboardTask: Terminal key reads and the async reader for TUI control
- create_layout: Factory for the 5-panel layout structure
- make_panel and friends: Helpers for styled panels
"""

from narrative_core.tui.keyboard import KeyboardTask, KeyReader, normalize_key
from narrative_core.tui.layout import (
    create_layout,
    make_console_panel,
    make_panel,
    make_progress_line,
    make_stages_panel,
)

__all__ = [
    "KeyboardTask",
    "KeyReader",
    "normalize_key",
    "create_layout",
    "make_console_panel",
    "make_panel",
    "make_progress_line",
    "make_stages_panel",
]
