"""
Cross-site scripting vignette.

Six 4-second stages on a looping clock. A harmless search, a script
typed into the search box, the database leaking, an explanation, the
script blocked, and a closing safety message.
"""

from typing import ClassVar

from rich.markup import escape

from narrative_core.state import Snapshot, VignetteState
from narrative_core.timeline import Stage

from attack_demos.types import StageScript, TimelineVignette

SCRIPT_PAYLOAD = '<script>alert("XSS")</script>'

LEAKED_ROWS = (
    ("alice", "alice@mail.com", "****1234"),
    ("bob", "bob@mail.com", "****5678"),
    ("carol", "carol@mail.com", "****9012"),
)

XSS_STAGES = (
    Stage(
        id="normal",
        duration_ms=4000,
        title="Normal Search",
        description="User searches safely - database stays protected",
        payload=StageScript(
            flags={"shield_active": False, "database_exposed": False},
            typing=(("input", "user search"),),
            effects=((1500, "arrow_status", "moving-normal"),),
        ),
    ),
    Stage(
        id="trick",
        duration_ms=4000,
        title="Malicious Script",
        description="Attacker injects XSS script into search field",
        payload=StageScript(
            flags={"shield_active": False, "database_exposed": False},
            typing=(("input", SCRIPT_PAYLOAD),),
            effects=((2000, "arrow_status", "moving-danger"),),
        ),
    ),
    Stage(
        id="leaked",
        duration_ms=4000,
        title="Database Exposed!",
        description="Script executes and reveals all user data!",
        payload=StageScript(
            flags={"shield_active": False, "database_exposed": True},
            fields={"input": SCRIPT_PAYLOAD},
            effects=((500, "show_database", True),),
        ),
    ),
    Stage(
        id="explanation",
        duration_ms=4000,
        title="What is XSS?",
        description="XSS tricks websites into running malicious code",
        payload=StageScript(
            flags={"shield_active": False, "database_exposed": True, "show_database": True},
            fields={"input": SCRIPT_PAYLOAD},
        ),
    ),
    Stage(
        id="protection",
        duration_ms=4000,
        title="Security ON",
        description="Input validation blocks the malicious script!",
        payload=StageScript(
            flags={"shield_active": True, "database_exposed": False, "show_database": False},
            fields={"input": SCRIPT_PAYLOAD},
            effects=((500, "arrow_status", "moving-danger"), (1500, "arrow_status", "blocked")),
        ),
    ),
    Stage(
        id="safety",
        duration_ms=4000,
        title="Stay Safe",
        description="Always validate and sanitize user inputs",
        payload=StageScript(
            flags={"shield_active": True, "database_exposed": False},
            fields={"input": ""},
        ),
    ),
)


class XSSVignette(TimelineVignette):
    """Search box, request arrow and a user table that leaks."""

    key: ClassVar[str] = "xss"
    title: ClassVar[str] = "Cross-Site Scripting"
    description: ClassVar[str] = "A script typed into a search box runs and leaks user data"

    STAGES = XSS_STAGES
    ENTRY_FLAGS = {"arrow_status": "idle", "show_database": False}

    def build_state(self) -> VignetteState:
        return VignetteState(
            vignette=self.key,
            initial_stage="normal",
            flags={
                "shield_active": False,
                "database_exposed": False,
                "show_database": False,
                "arrow_status": "idle",
            },
            fields={"input": ""},
            counters={"progress": 0.0},
        )

    def scene(self, snapshot: Snapshot) -> str:
        flags = snapshot.sub_animation_flags
        arrow = {
            "moving-normal": "[cyan]→ → →[/cyan]",
            "moving-danger": "[bold red]→ → →[/bold red]",
            "blocked": "[bold green]→ ✖[/bold green]",
        }.get(str(flags.get("arrow_status")), "[dim]· · ·[/dim]")
        typed = escape(snapshot.typed_text.get("input", ""))
        lines = [
            f"🔍 Search: [bold]{typed}[/bold]",
            "",
            f"\\[browser] {arrow} \\[website]",
        ]
        if flags.get("shield_active"):
            lines.append("[bold green]🛡 Input validation ON[/bold green]")
        if flags.get("show_database"):
            lines.append("[bold red]⚠ USER DATABASE[/bold red]")
            lines += [f"  {name:<6} {email:<16} {card}" for name, email, card in LEAKED_ROWS]
        elif flags.get("database_exposed"):
            lines.append("[red]Database unlocking...[/red]")
        return "\n".join(lines)

    def alert(self, snapshot: Snapshot) -> bool:
        return bool(snapshot.sub_animation_flags.get("database_exposed"))
