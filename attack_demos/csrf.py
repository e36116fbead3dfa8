"""
Cross-site request forgery vignette.

A non-looping chain. The victim is logged in to their bank, clicks a
fake ad, and a forged transfer either drains their balance or, with
the CSRF token check switched on, is blocked. The chain parks on the
protection stage, where the host can toggle the protection and replay
the attack.

The protection flag is live: the ATTACK_FLOW step and the branch after
it read it when they fire, so toggling it mid-run changes the outcome.
"""

import logging
from typing import ClassVar

from narrative_core.chain import ChainStep
from narrative_core.state import FlagValue, Snapshot, VignetteState

from attack_demos.types import ChainVignette, HostCommand, Narration

logger = logging.getLogger(__name__)

# Stages the chain walks through in order, with their on-screen time
STAGE_DURATIONS = {
    "SAFE_BANK": 3000,
    "FAKE_AD": 4000,
    "ATTACK_START": 1500,
    "ATTACK_FLOW": 5000,
    "EXPLANATION": 8000,
}
LINEAR_STAGES = ("SAFE_BANK", "FAKE_AD", "ATTACK_START", "ATTACK_FLOW")

VICTIM_START = 1000.0
ATTACKER_START = 0.0
DRAIN_AMOUNT = 10.0
DRAIN_INTERVAL_MS = 50.0
DRAIN_TICKS = 20

CSRF_NARRATION = [
    Narration(
        "SAFE_BANK",
        "You are safely logged in",
        "Look at your bank balance on the left. Everything is safe and secure.",
    ),
    Narration(
        "FAKE_AD",
        "Oh no! A trap appeared!",
        "Attackers use fake ads, emails, or links to trick you into clicking.",
    ),
    Narration(
        "ATTACK_START",
        "You clicked the button...",
        "But the button does something you didn't expect!",
    ),
    Narration(
        "ATTACK_FLOW",
        "The Attack is Happening!",
        "Your browser automatically sent your bank cookies. The bank thinks YOU made this request!",
    ),
    Narration(
        "EXPLANATION",
        "Why did that work?",
        "This is called Cross-Site Request Forgery (CSRF). "
        "The attacker forged a request using your credentials.",
    ),
    Narration(
        "PROTECTION",
        "How do we stop it?",
        "We need a CSRF Token - a secret code that the attacker can't guess.",
    ),
]

PROTECTED_ATTACK_NARRATION = Narration(
    "ATTACK_FLOW",
    "Protection Active!",
    "The bank checked for the secret token. It wasn't there, so the request was blocked!",
)


class CSRFVignette(ChainVignette):
    """Victim bank, fake ad, forged transfer and attacker wallet."""

    key: ClassVar[str] = "csrf"
    title: ClassVar[str] = "CSRF"
    description: ClassVar[str] = "A fake button sends a transfer with the victim's cookies"

    LOOP = False

    def initial_flags(self) -> dict[str, FlagValue]:
        return {"protection_on": False}

    def build_state(self) -> VignetteState:
        return VignetteState(
            vignette=self.key,
            initial_stage="SAFE_BANK",
            flags={"show_explosion": False},
            counters={"victim_balance": VICTIM_START, "attacker_balance": ATTACKER_START},
        )

    def narration(self) -> list[Narration]:
        return CSRF_NARRATION

    def describe(self, stage_id: str) -> Narration:
        if stage_id == "ATTACK_FLOW" and self.flags.get("protection_on"):
            return PROTECTED_ATTACK_NARRATION
        return super().describe(stage_id)

    def build_steps(self, start: str = "SAFE_BANK") -> list[ChainStep]:
        """
        Steps from a given stage to the parked PROTECTION stage.

        Offsets are rebased so the first step fires immediately.

        Args:
            start: One of the linear stages (SAFE_BANK .. ATTACK_FLOW)

        Returns:
            Steps ending with the EXPLANATION -> PROTECTION hand-over
        """
        actions = {
            "SAFE_BANK": self.safe_bank,
            "FAKE_AD": self.enter("FAKE_AD"),
            "ATTACK_START": self.enter("ATTACK_START"),
            "ATTACK_FLOW": self.attack_flow,
        }
        steps = []
        offset = 0
        for stage_id in LINEAR_STAGES[LINEAR_STAGES.index(start):]:
            steps.append(ChainStep(offset, actions[stage_id], stage_id))
            offset += STAGE_DURATIONS[stage_id]
        steps.append(ChainStep(offset, self.after_attack, "after_attack"))
        offset += STAGE_DURATIONS["EXPLANATION"]
        steps.append(ChainStep(offset, self.explanation_done, "explanation_done"))
        return steps

    # Step actions

    def reset_balances(self) -> None:
        self.state.set_counter("victim_balance", VICTIM_START)
        self.state.set_counter("attacker_balance", ATTACKER_START)

    def safe_bank(self) -> None:
        self.state.enter_stage("SAFE_BANK")
        self.reset_balances()
        self.state.set_flag("show_explosion", False)

    def attack_flow(self) -> None:
        self.state.enter_stage("ATTACK_FLOW")
        if self.flags.get("protection_on"):
            self.later(1500, lambda: self.state.set_flag("show_explosion", True))
            self.later(2500, lambda: self.state.set_flag("show_explosion", False))
        else:
            self.scheduler.schedule_repeating(
                DRAIN_INTERVAL_MS, self.drain, max_runs=DRAIN_TICKS
            )

    def drain(self) -> None:
        self.state.add_to_counter("victim_balance", -DRAIN_AMOUNT, floor=0.0)
        self.state.add_to_counter("attacker_balance", DRAIN_AMOUNT)
        self.state.publish()

    def after_attack(self) -> None:
        if self.flags.get("protection_on"):
            self.state.enter_stage("PROTECTION")
        else:
            self.state.enter_stage("EXPLANATION")

    def explanation_done(self) -> None:
        if self.state.active_stage_id == "EXPLANATION":
            self.state.enter_stage("PROTECTION")

    # Host commands

    def commands(self) -> list[HostCommand]:
        return [
            HostCommand("toggle_protection", "p", "toggle token", self.toggle_protection),
            HostCommand("replay", "t", "test protection", self.replay_with_protection),
            HostCommand("restart", "b", "back to bank", self.restart),
        ]

    def toggle_protection(self) -> None:
        enabled = self.flags.toggle("protection_on")
        logger.debug(f"CSRF protection {'on' if enabled else 'off'}")

    def replay_with_protection(self) -> None:
        """Replay the attack from the fake ad; only offered once protection is on."""
        if not self.flags.get("protection_on"):
            logger.info("Replay ignored: turn on CSRF protection first")
            return
        self.reset_balances()
        self.state.set_flag("show_explosion", False)
        self.state.enter_stage("FAKE_AD")
        self.runner.run(self.build_steps(start="FAKE_AD"))

    def restart(self) -> None:
        self.flags.set("protection_on", False)
        self.safe_bank()
        self.runner.run(self.build_steps())

    # Presentation

    def scene(self, snapshot: Snapshot) -> str:
        counters = snapshot.derived_counters
        protected = snapshot.domain_flags.get("protection_on")
        stage = snapshot.active_stage_id
        status = (
            "[bold green]🛡️ CSRF PROTECTION ENABLED[/bold green]"
            if protected
            else "[bold red]⚠️ NO CSRF PROTECTION - Vulnerable to Attacks[/bold red]"
        )
        lines = [
            status,
            "",
            f"🏦 Bank balance:     [bold]${counters.get('victim_balance', 0):.0f}[/bold]",
            f"🦹 Attacker wallet:  [bold]${counters.get('attacker_balance', 0):.0f}[/bold]",
            "",
        ]
        if stage in ("FAKE_AD", "ATTACK_START"):
            lines.append("[yellow]🎁 FREE GIFT! Click here![/yellow]")
        if stage == "ATTACK_FLOW":
            if protected:
                flash = " 💥" if snapshot.sub_animation_flags.get("show_explosion") else ""
                lines.append(f"[green]🍪 forged request → ✖ blocked (no token){flash}[/green]")
            else:
                lines.append("[bold red]🍪 forged request → bank → transfer approved[/bold red]")
        if stage == "PROTECTION":
            lines.append("Let's fix it! Turn on the CSRF Token protection.")
        return "\n".join(lines)

    def alert(self, snapshot: Snapshot) -> bool:
        return snapshot.active_stage_id == "ATTACK_FLOW" and not snapshot.domain_flags.get(
            "protection_on"
        )
