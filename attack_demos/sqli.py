"""
SQL injection vignette.

Five 4-second stages on a looping clock: a normal login, an injected
login that opens the vault door, an explanation, the same payload
blocked by input validation, and a closing safety message.
"""

from typing import ClassVar

from rich.markup import escape

from narrative_core.state import Snapshot, VignetteState
from narrative_core.timeline import Stage

from attack_demos.types import StageScript, TimelineVignette

INJECTED_PASSWORD = "' OR 1=1 --"

SQLI_STAGES = (
    Stage(
        id="normal",
        duration_ms=4000,
        title="Normal Login",
        description="User enters correct credentials - database stays secure",
        payload=StageScript(
            flags={"door_open": False, "shield_active": False},
            typing=(("username", "admin"), ("password", "password123")),
            effects=((1500, "arrow_status", "moving"), (2500, "door_shake", True)),
        ),
    ),
    Stage(
        id="injection",
        duration_ms=4000,
        title="SQL Injection Attack",
        description="Malicious SQL code bypasses authentication!",
        payload=StageScript(
            flags={"door_open": False, "shield_active": False},
            typing=(("username", "admin"), ("password", INJECTED_PASSWORD)),
            effects=((1500, "arrow_status", "success"), (2500, "door_open", True)),
        ),
    ),
    Stage(
        id="explanation",
        duration_ms=4000,
        title="How It Works",
        description="The injected code tricks the database into granting access",
        payload=StageScript(
            flags={"door_open": True, "shield_active": False},
            fields={"username": "admin", "password": INJECTED_PASSWORD},
        ),
    ),
    Stage(
        id="protection",
        duration_ms=4000,
        title="Security Enabled",
        description="Input validation blocks the malicious SQL code!",
        payload=StageScript(
            flags={"door_open": False, "shield_active": True},
            fields={"username": "admin", "password": INJECTED_PASSWORD},
            effects=((1000, "arrow_status", "blocked"),),
        ),
    ),
    Stage(
        id="safety",
        duration_ms=4000,
        title="Stay Protected",
        description="Always validate and sanitize user inputs",
        payload=StageScript(
            flags={"door_open": False, "shield_active": True},
            fields={"username": "", "password": ""},
        ),
    ),
)

ARROW_STYLES = {
    "idle": "[dim]  ·  ·  ·  [/dim]",
    "moving": "[cyan]  →  →  →  [/cyan]",
    "success": "[bold red]  →  →  →  [/bold red]",
    "blocked": "[bold green]  →  ✖     [/bold green]",
}


class SQLInjectionVignette(TimelineVignette):
    """Login form, query arrow and vault door."""

    key: ClassVar[str] = "sqli"
    title: ClassVar[str] = "SQL Injection"
    description: ClassVar[str] = "Malicious input rewrites a login query and opens the vault"

    STAGES = SQLI_STAGES
    ENTRY_FLAGS = {"door_shake": False, "arrow_status": "idle"}

    def build_state(self) -> VignetteState:
        return VignetteState(
            vignette=self.key,
            initial_stage="normal",
            flags={
                "door_open": False,
                "door_shake": False,
                "shield_active": False,
                "arrow_status": "idle",
            },
            fields={"username": "", "password": ""},
            counters={"progress": 0.0},
        )

    def scene(self, snapshot: Snapshot) -> str:
        flags = snapshot.sub_animation_flags
        fields = snapshot.typed_text
        if flags.get("door_open"):
            door = "[bold red]🔓 VAULT OPEN[/bold red]"
        elif flags.get("door_shake"):
            door = "[yellow]🔒 vault (rattling)[/yellow]"
        else:
            door = "[green]🔒 vault locked[/green]"
        shield = "[bold green]🛡 validation ON[/bold green]" if flags.get("shield_active") else ""
        arrow = ARROW_STYLES.get(str(flags.get("arrow_status")), ARROW_STYLES["idle"])
        return "\n".join(
            [
                f"Username: [bold]{escape(fields.get('username', ''))}[/bold]",
                f"Password: [bold]{escape(fields.get('password', ''))}[/bold]",
                "",
                f"\\[login] {arrow} \\[database]  {door}",
                shield,
            ]
        )

    def alert(self, snapshot: Snapshot) -> bool:
        return bool(snapshot.sub_animation_flags.get("door_open"))
