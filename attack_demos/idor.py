"""
Insecure direct object reference vignette.

A looping chain of absolute-offset steps. Alex opens their own profile,
the ownership check disappears and changing the id in the URL shows
Sam's account, then a safety shield blocks the same request. The chain
closes on a checklist and restarts from a clean state at 29s.
"""

from dataclasses import dataclass
from typing import ClassVar

from rich.markup import escape

from narrative_core.chain import ChainStep
from narrative_core.state import Snapshot, VignetteState

from attack_demos.types import ChainVignette, Narration

URL_BASE = "www.bank.com/user?id="

CHECKLIST = (
    "Website checks who you are",
    "Numbers alone are not trusted",
    "You only see YOUR data",
)


@dataclass(frozen=True)
class UserProfile:
    id: str
    name: str
    balance: int


USERS = {
    "101": UserProfile("101", "Alex", 100),
    "102": UserProfile("102", "Sam", 500),
    "103": UserProfile("103", "Hidden", 999),
}

IDOR_NARRATION = [
    Narration("normal_access", "Normal Access", "Alex opens their own profile page"),
    Narration("unsafe_access", "Unsafe Access", "The lock is gone and the ID can be changed"),
    Narration("explanation", "What is IDOR?", "The website trusted the number too much"),
    Narration("security_on", "Safety Shield ON", "The shield checks who you are first"),
    Narration("checklist", "Safety Checklist", "Restarting demo..."),
]


class IDORVignette(ChainVignette):
    """Browser URL bar, profile card and a lock that goes missing."""

    key: ClassVar[str] = "idor"
    title: ClassVar[str] = "IDOR"
    description: ClassVar[str] = "Changing an id in the URL reveals someone else's account"

    LOOP = True

    def build_state(self) -> VignetteState:
        return VignetteState(
            vignette=self.key,
            initial_stage="normal_access",
            flags={
                "lock_visible": True,
                "shield_active": False,
                "arrow_status": "idle",
                "show_checklist": False,
            },
            fields={"url": "", "message": "", "profile": ""},
            counters={"balance": 0.0},
        )

    def narration(self) -> list[Narration]:
        return IDOR_NARRATION

    def build_steps(self) -> list[ChainStep]:
        return [
            ChainStep(0, lambda: self.type_url(""), "url_base"),
            ChainStep(500, lambda: self.type_url("1"), "url_1"),
            ChainStep(800, lambda: self.type_url("10"), "url_10"),
            ChainStep(1100, lambda: self.type_url("101"), "url_101"),
            ChainStep(1500, self.request_own_page, "request_own"),
            ChainStep(2500, self.own_page_served, "own_served"),
            ChainStep(6000, self.lock_removed, "lock_removed"),
            ChainStep(7000, lambda: self.type_url("10"), "url_edit"),
            ChainStep(7300, self.change_id, "url_102"),
            ChainStep(8000, lambda: self.state.set_flag("arrow_status", "moving"), "request_other"),
            ChainStep(9000, self.other_page_served, "other_served"),
            ChainStep(12000, self.explain, "explanation"),
            ChainStep(15000, self.shield_on, "shield_on"),
            ChainStep(17000, self.retry_other_page, "retry_other"),
            ChainStep(18000, self.blocked, "blocked"),
            ChainStep(20000, self.back_to_own_page, "back_to_own"),
            ChainStep(23000, self.checklist, "checklist"),
            # Loop marker: the runner restarts after this step
            ChainStep(29000, lambda: None, "restart"),
        ]

    def on_restart(self) -> None:
        self.state.reset()

    # Step actions

    def say(self, message: str) -> None:
        self.state.set_text("message", message)
        self.state.log(message)

    def type_url(self, suffix: str) -> None:
        self.state.set_text("url", URL_BASE + suffix)

    def show_profile(self, user_id: str | None) -> None:
        if user_id is None:
            self.state.set_text("profile", "")
            self.state.set_counter("balance", 0.0)
            return
        user = USERS[user_id]
        self.state.set_text("profile", user.id)
        self.state.set_counter("balance", float(user.balance))

    def request_own_page(self) -> None:
        self.state.set_flag("arrow_status", "moving")
        self.say("Alex asks for his page (ID: 101)...")

    def own_page_served(self) -> None:
        self.state.set_flag("arrow_status", "success")
        self.show_profile("101")
        self.say("Website checks ID 101. It matches Alex. Safe! ✅")

    def lock_removed(self) -> None:
        self.state.enter_stage("unsafe_access")
        self.state.set_flag("arrow_status", "idle")
        self.state.set_flag("lock_visible", False)
        self.say("Oh no! The security lock is gone! 😱")

    def change_id(self) -> None:
        self.type_url("102")
        self.say("Changing the number to 102...")

    def other_page_served(self) -> None:
        self.state.set_flag("arrow_status", "success")
        self.show_profile("102")
        self.say("Wait! We accessed Sam's data just by changing the ID! 🚨")

    def explain(self) -> None:
        self.state.enter_stage("explanation")
        self.say("IDOR means the website trusted the number too much.")

    def shield_on(self) -> None:
        self.state.enter_stage("security_on")
        self.show_profile(None)
        self.state.set_flag("arrow_status", "idle")
        self.state.set_flag("lock_visible", True)
        self.state.set_flag("shield_active", True)
        self.say("Let's turn on the Safety Shield! 🛡️")

    def retry_other_page(self) -> None:
        self.state.set_flag("arrow_status", "moving")
        self.say("Trying to see Sam's page again...")

    def blocked(self) -> None:
        self.state.set_flag("arrow_status", "blocked")
        self.say("Blocked! The shield checks who you are first. 🛑")

    def back_to_own_page(self) -> None:
        self.show_profile("101")
        self.type_url("101")
        self.say("You can only see your own page now. Safe again! 😌")

    def checklist(self) -> None:
        self.state.enter_stage("checklist")
        self.state.set_flag("show_checklist", True)

    # Presentation

    def scene(self, snapshot: Snapshot) -> str:
        flags = snapshot.sub_animation_flags
        fields = snapshot.typed_text
        if flags.get("show_checklist"):
            return "[bold green]Safety Checklist[/bold green]\n" + "\n".join(
                f"  ✔ {item}" for item in CHECKLIST
            )
        lock = "🔒" if flags.get("lock_visible") else "[bold red]🔓 no lock![/bold red]"
        shield = "  [bold green]🛡 shield[/bold green]" if flags.get("shield_active") else ""
        lines = [f"{lock} {escape(fields.get('url', ''))}{shield}", ""]
        user = USERS.get(fields.get("profile", ""))
        if user is not None:
            lines.append(f"👤 [bold]{user.name}[/bold]  (ID: {user.id})")
            lines.append(f"   Balance: [green]${snapshot.derived_counters.get('balance', 0):.0f}[/green]")
        elif flags.get("arrow_status") == "blocked":
            lines.append("[bold green]✖ Request blocked[/bold green]")
        else:
            lines.append("[dim](no profile loaded)[/dim]")
        message = fields.get("message", "")
        if message:
            lines += ["", f"[bold]{escape(message)}[/bold]"]
        return "\n".join(lines)

    def alert(self, snapshot: Snapshot) -> bool:
        return snapshot.active_stage_id == "unsafe_access" and snapshot.typed_text.get("profile") == "102"
