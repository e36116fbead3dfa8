"""
Command injection vignette.

A looping chain: a harmless search for "food", then a command typed
into the same search box. The outcome stage reads the live safety
switch when it fires, so flipping it at any point before the result
changes what the console prints. The switch survives pause and reset.
"""

from typing import ClassVar

from rich.markup import escape

from narrative_core.chain import ChainStep
from narrative_core.state import FlagValue, Snapshot, VignetteState
from narrative_core.typing_sim import TypingSimulator

from attack_demos.types import ChainVignette, HostCommand, Narration

NORMAL_QUERY = "food"
ATTACK_QUERY = "DROP TABLE users; --"
NORMAL_TYPING_MS = 150
ATTACK_TYPING_MS = 100

# (stage id, time on screen after any typing finishes)
SEQUENCE = (
    ("IDLE", 1000),
    ("TYPING_NORMAL", 1000),
    ("SEARCHING_NORMAL", 3000),
    ("CLEARING", 1000),
    ("TYPING_ATTACK", 800),
    ("ATTACK_THINKING", 1500),
    ("ATTACK_RESULT", 6000),
    ("RESET", 1000),
)
TYPED = {
    "TYPING_NORMAL": (NORMAL_QUERY, NORMAL_TYPING_MS),
    "TYPING_ATTACK": (ATTACK_QUERY, ATTACK_TYPING_MS),
}

SAFE_OUTPUT = [
    "[SAFE] Input validation active...",
    "[SAFE] Dangerous command blocked: 'DROP TABLE'",
    "[SAFE] Input treated as search text only.",
]
DANGER_OUTPUT = [
    "[DANGER] Executing: 'DROP TABLE users; --'",
    "[CRITICAL] Deleting database table...",
    "[ERROR] All user data permanently lost!",
    "[SYSTEM] Database connection terminated.",
    "[ALERT] Security breach detected!",
]

TRANSACTIONS = (
    ("2025-01-01", "Lunch", 10),
    ("2025-01-02", "Bus Ticket", 3),
    ("2025-01-03", "Books", 25),
    ("2025-01-04", "Ice Cream", 5),
)

WATCHING = Narration("IDLE", "👀 Watch the demo...", "Wait for the search...")
TRICK = Narration(
    "TYPING_ATTACK",
    "⚡ Attempting Trick...",
    "Someone is typing a command instead of a search word!",
)
CI_NARRATION = [
    WATCHING,
    Narration("TYPING_NORMAL", WATCHING.title, WATCHING.text),
    Narration(
        "SEARCHING_NORMAL",
        "🔍 Normal Search",
        "The app just looks for the word 'food' in the list. It's safe.",
    ),
    Narration("CLEARING", WATCHING.title, WATCHING.text),
    TRICK,
    Narration("ATTACK_THINKING", TRICK.title, TRICK.text),
    Narration(
        "ATTACK_RESULT",
        "🚨 Command Injection!",
        "The app got confused! It ran 'show database' as a command "
        "instead of just searching for text.",
    ),
    Narration("RESET", WATCHING.title, WATCHING.text),
]
BLOCKED_RESULT = Narration(
    "ATTACK_RESULT",
    "🛡️ Attack Blocked",
    "The safety shield stopped the command. It treated 'show database' "
    "as just text, not an instruction.",
)


def sequence_offsets() -> list[tuple[str, float]]:
    """
    Absolute start offset of each stage, plus the loop point.

    Typing stages stay on screen for their typing time and then their
    listed hold time.
    """
    offsets = []
    offset = 0.0
    for stage_id, hold_ms in SEQUENCE:
        offsets.append((stage_id, offset))
        if stage_id in TYPED:
            text, interval = TYPED[stage_id]
            offset += len(text) * interval
        offset += hold_ms
    offsets.append(("LOOP", offset))
    return offsets


def system_stage(stage_id: str, safety_on: bool) -> str:
    """What the backend is doing: idle, thinking, hacked or blocked."""
    if stage_id in ("ATTACK_THINKING", "SEARCHING_NORMAL"):
        return "thinking"
    if stage_id == "ATTACK_RESULT":
        return "blocked" if safety_on else "hacked"
    return "idle"


def flow_stage(stage_id: str, safety_on: bool) -> str:
    """Which request arrow is shown between search box and backend."""
    if stage_id == "SEARCHING_NORMAL":
        return "normal_flow"
    if stage_id in ("ATTACK_THINKING", "ATTACK_RESULT"):
        return "blocked_flow" if safety_on else "attack_flow"
    return "idle"


class CommandInjectionVignette(ChainVignette):
    """Search box, transaction list, backend brain and console."""

    key: ClassVar[str] = "cmdi"
    title: ClassVar[str] = "Command Injection"
    description: ClassVar[str] = "A search box passes a typed command straight to the database"

    LOOP = True
    rewind_flags = False

    def initial_flags(self) -> dict[str, FlagValue]:
        return {"safety_on": False}

    def build_state(self) -> VignetteState:
        return VignetteState(
            vignette=self.key,
            initial_stage="IDLE",
            fields={"search": ""},
        )

    def build_engine(self):
        self.typist = TypingSimulator(self.scheduler, on_prefix=self.state.text_setter("search"))
        return super().build_engine()

    def narration(self) -> list[Narration]:
        return CI_NARRATION

    def describe(self, stage_id: str) -> Narration:
        if stage_id == "ATTACK_RESULT" and self.flags.get("safety_on"):
            return BLOCKED_RESULT
        return super().describe(stage_id)

    def build_steps(self) -> list[ChainStep]:
        actions = {
            "IDLE": self.clear_all,
            "TYPING_NORMAL": self.type_query,
            "SEARCHING_NORMAL": self.enter("SEARCHING_NORMAL"),
            "CLEARING": self.clear_search,
            "TYPING_ATTACK": self.type_query,
            "ATTACK_THINKING": self.enter("ATTACK_THINKING"),
            "ATTACK_RESULT": self.attack_result,
            "RESET": self.clear_all,
        }
        steps = []
        for stage_id, offset in sequence_offsets():
            if stage_id == "LOOP":
                # Loop marker: the runner restarts after this step
                steps.append(ChainStep(offset, lambda: None, "loop"))
            else:
                steps.append(ChainStep(offset, self._stage_action(stage_id, actions[stage_id]), stage_id))
        return steps

    def _stage_action(self, stage_id: str, action):
        def run() -> None:
            self.state.enter_stage(stage_id)
            action()

        return run

    # Step actions

    def clear_all(self) -> None:
        self.state.set_text("search", "")
        self.state.clear_log()

    def clear_search(self) -> None:
        self.state.set_text("search", "")

    def type_query(self) -> None:
        text, interval = TYPED[self.state.active_stage_id]
        self.typist.start(text, interval, on_complete=self.state.publish)

    def attack_result(self) -> None:
        if self.flags.get("safety_on"):
            self.state.set_log(SAFE_OUTPUT)
        else:
            self.state.set_log(DANGER_OUTPUT)

    # Host commands

    def commands(self) -> list[HostCommand]:
        return [
            HostCommand(
                "toggle_safety", "s", "safety shield", self.toggle_safety, needs_playing=False
            ),
        ]

    def toggle_safety(self) -> None:
        self.flags.toggle("safety_on")

    # Presentation

    def scene(self, snapshot: Snapshot) -> str:
        stage = snapshot.active_stage_id
        safety = bool(snapshot.domain_flags.get("safety_on"))
        search = escape(snapshot.typed_text.get("search", ""))
        system = system_stage(stage, safety)
        flow = flow_stage(stage, safety)
        shield = (
            "[bold green]🛡️ Safety Shield: ON[/bold green]"
            if safety
            else "[bold red]⚠️ Safety Shield: OFF[/bold red]"
        )
        arrow = {
            "normal_flow": "[blue]→ → →[/blue]",
            "attack_flow": "[bold red]→ → →[/bold red]",
            "blocked_flow": "[bold green]→ 🔒[/bold green]",
        }.get(flow, "[dim]· · ·[/dim]")
        brain = {
            "thinking": "[yellow]🧠 thinking...[/yellow]",
            "hacked": "[bold red]💀 HACKED[/bold red]",
            "blocked": "[bold green]✅ blocked[/bold green]",
        }.get(system, "[dim]🧠 idle[/dim]")

        lines = [shield, "", f"🔍 [bold]{search}[/bold]▏", "", f"\\[search] {arrow} {brain}", ""]
        if system == "hacked":
            lines.append("[bold red]🗄  users table: DELETED[/bold red]")
        else:
            for date, desc, amount in TRANSACTIONS:
                lines.append(f"  {date}  {desc:<11} ${amount}")
        return "\n".join(lines)

    def alert(self, snapshot: Snapshot) -> bool:
        return system_stage(
            snapshot.active_stage_id, bool(snapshot.domain_flags.get("safety_on"))
        ) == "hacked"
