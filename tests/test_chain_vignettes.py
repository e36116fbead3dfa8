"""
Tests for the chained vignettes (IDOR, CSRF, command injection).

Offsets are absolute from the start of each run, so every check samples
the virtual clock shortly after the step it is about.
"""

import pytest

from attack_demos import CommandInjectionVignette, CSRFVignette, DemoSession, IDORVignette
from attack_demos.command_injection import (
    ATTACK_QUERY,
    DANGER_OUTPUT,
    SAFE_OUTPUT,
    sequence_offsets,
)
from attack_demos.idor import URL_BASE
from narrative_core.config import Settings
from narrative_core.virtual import VirtualTimerBackend


def mount(vignette_cls):
    backend = VirtualTimerBackend()
    session = DemoSession(vignette_cls, backend, settings=Settings())
    return backend, session


def at(backend, session, t):
    backend.advance_to(t)
    return session.snapshot()


class TestIDORVignette:
    """Own page, unsafe access, explanation, shield, checklist, restart."""

    def test_url_is_typed_in_steps(self):
        backend, session = mount(IDORVignette)
        assert at(backend, session, 0).typed_text["url"] == URL_BASE
        assert at(backend, session, 600).typed_text["url"] == URL_BASE + "1"
        assert at(backend, session, 1200).typed_text["url"] == URL_BASE + "101"

    def test_own_page_is_served(self):
        backend, session = mount(IDORVignette)
        snapshot = at(backend, session, 2600)

        assert snapshot.active_stage_id == "normal_access"
        assert snapshot.typed_text["profile"] == "101"
        assert snapshot.derived_counters["balance"] == 100
        assert snapshot.sub_animation_flags["arrow_status"] == "success"
        assert "It matches Alex" in snapshot.typed_text["message"]

    def test_changing_the_id_leaks_another_account(self):
        backend, session = mount(IDORVignette)

        snapshot = at(backend, session, 6100)
        assert snapshot.active_stage_id == "unsafe_access"
        assert snapshot.sub_animation_flags["lock_visible"] is False

        assert at(backend, session, 7400).typed_text["url"] == URL_BASE + "102"

        snapshot = at(backend, session, 9100)
        assert snapshot.typed_text["profile"] == "102"
        assert snapshot.derived_counters["balance"] == 500
        assert session.vignette.alert(snapshot)

    def test_shield_blocks_then_restores_own_page(self):
        backend, session = mount(IDORVignette)

        snapshot = at(backend, session, 15100)
        assert snapshot.active_stage_id == "security_on"
        assert snapshot.typed_text["profile"] == ""
        assert snapshot.sub_animation_flags["lock_visible"] is True
        assert snapshot.sub_animation_flags["shield_active"] is True

        assert at(backend, session, 18100).sub_animation_flags["arrow_status"] == "blocked"

        snapshot = at(backend, session, 20100)
        assert snapshot.typed_text["profile"] == "101"
        assert snapshot.typed_text["url"] == URL_BASE + "101"

    def test_checklist_then_clean_restart(self):
        backend, session = mount(IDORVignette)

        snapshot = at(backend, session, 23100)
        assert snapshot.active_stage_id == "checklist"
        assert snapshot.sub_animation_flags["show_checklist"] is True

        snapshot = at(backend, session, 29000)
        assert snapshot.active_stage_id == "normal_access"
        assert snapshot.sub_animation_flags["show_checklist"] is False
        assert snapshot.sub_animation_flags["shield_active"] is False
        assert snapshot.typed_text["url"] == URL_BASE
        assert snapshot.log_lines == []
        assert session.vignette.runner.runs == 2

    def test_messages_are_logged(self):
        backend, session = mount(IDORVignette)
        snapshot = at(backend, session, 9100)

        assert snapshot.log_lines[0] == "Alex asks for his page (ID: 101)..."
        assert len(snapshot.log_lines) == 5


class TestCSRFVignette:
    """Forged transfer, drain or block, and the protection controls."""

    def test_unprotected_attack_drains_the_victim(self):
        backend, session = mount(CSRFVignette)

        assert at(backend, session, 1000).active_stage_id == "SAFE_BANK"
        assert at(backend, session, 3500).active_stage_id == "FAKE_AD"
        assert at(backend, session, 7500).active_stage_id == "ATTACK_START"

        snapshot = at(backend, session, 9000)
        assert snapshot.active_stage_id == "ATTACK_FLOW"
        assert snapshot.derived_counters["victim_balance"] == 900
        assert snapshot.derived_counters["attacker_balance"] == 100

        snapshot = at(backend, session, 9600)
        assert snapshot.derived_counters == {"victim_balance": 800, "attacker_balance": 200}

    def test_unprotected_chain_parks_on_protection(self):
        backend, session = mount(CSRFVignette)

        assert at(backend, session, 13600).active_stage_id == "EXPLANATION"
        assert at(backend, session, 21600).active_stage_id == "PROTECTION"

        backend.advance_to(60000)
        assert session.vignette.runner.parked
        assert session.scheduler.outstanding == 0
        assert session.snapshot().active_stage_id == "PROTECTION"

    def test_protection_set_mid_run_blocks_the_attack(self):
        backend, session = mount(CSRFVignette)
        backend.advance_to(5000)
        session.set_flag("protection_on", True)

        assert at(backend, session, 9900).sub_animation_flags["show_explosion"] is False
        snapshot = at(backend, session, 10000)
        assert snapshot.sub_animation_flags["show_explosion"] is True
        assert at(backend, session, 11000).sub_animation_flags["show_explosion"] is False

        snapshot = at(backend, session, 13600)
        assert snapshot.active_stage_id == "PROTECTION"
        assert snapshot.derived_counters == {"victim_balance": 1000, "attacker_balance": 0}

    def test_narration_follows_protection_flag(self):
        backend, session = mount(CSRFVignette)
        backend.advance_to(8600)
        assert session.narration().title == "The Attack is Happening!"

        session.set_flag("protection_on", True)
        assert session.narration().title == "Protection Active!"

    def test_replay_with_protection(self):
        backend, session = mount(CSRFVignette)
        backend.advance_to(22000)
        assert session.invoke("toggle_protection")
        assert session.invoke("replay")

        snapshot = session.snapshot()
        assert snapshot.active_stage_id == "FAKE_AD"
        assert snapshot.derived_counters == {"victim_balance": 1000, "attacker_balance": 0}

        assert at(backend, session, 27600).active_stage_id == "ATTACK_FLOW"
        assert at(backend, session, 29000).sub_animation_flags["show_explosion"] is True
        snapshot = at(backend, session, 32600)
        assert snapshot.active_stage_id == "PROTECTION"
        assert snapshot.derived_counters["victim_balance"] == 1000

    def test_replay_requires_protection(self):
        backend, session = mount(CSRFVignette)
        backend.advance_to(22000)
        generation = session.scheduler.generation

        session.invoke("replay")

        assert session.snapshot().active_stage_id == "PROTECTION"
        assert session.scheduler.generation == generation

    def test_restart_goes_back_to_the_bank_unprotected(self):
        backend, session = mount(CSRFVignette)
        backend.advance_to(22000)
        session.set_flag("protection_on", True)

        session.invoke("restart")

        snapshot = session.snapshot()
        assert snapshot.active_stage_id == "SAFE_BANK"
        assert snapshot.domain_flags == {"protection_on": False}
        assert snapshot.derived_counters == {"victim_balance": 1000, "attacker_balance": 0}
        assert at(backend, session, 25100).active_stage_id == "FAKE_AD"

    def test_pause_clears_protection(self):
        backend, session = mount(CSRFVignette)
        session.set_flag("protection_on", True)
        backend.advance_to(9000)

        session.controls().on_play_pause()

        assert session.snapshot().domain_flags == {"protection_on": False}
        assert session.snapshot() == session.vignette.state.pristine()


class TestCommandInjectionVignette:
    """Normal search, typed command, outcome chosen by the live safety switch."""

    def test_offsets(self):
        assert sequence_offsets() == [
            ("IDLE", 0),
            ("TYPING_NORMAL", 1000),
            ("SEARCHING_NORMAL", 2600),
            ("CLEARING", 5600),
            ("TYPING_ATTACK", 6600),
            ("ATTACK_THINKING", 9400),
            ("ATTACK_RESULT", 10900),
            ("RESET", 16900),
            ("LOOP", 17900),
        ]

    def test_normal_search_then_attack_typing(self):
        backend, session = mount(CommandInjectionVignette)

        assert at(backend, session, 1300).typed_text["search"] == "fo"
        assert at(backend, session, 1600).typed_text["search"] == "food"
        assert at(backend, session, 2700).active_stage_id == "SEARCHING_NORMAL"
        assert at(backend, session, 5700).typed_text["search"] == ""

        snapshot = at(backend, session, 8700)
        assert snapshot.active_stage_id == "TYPING_ATTACK"
        assert snapshot.typed_text["search"] == ATTACK_QUERY

    def test_unsafe_result_prints_danger_log(self):
        backend, session = mount(CommandInjectionVignette)

        assert at(backend, session, 10800).log_lines == []
        snapshot = at(backend, session, 10900)
        assert snapshot.active_stage_id == "ATTACK_RESULT"
        assert snapshot.log_lines == DANGER_OUTPUT
        assert session.vignette.alert(snapshot)

    def test_safety_switched_on_before_result_blocks(self):
        backend, session = mount(CommandInjectionVignette)
        backend.advance_to(10000)
        session.set_flag("safety_on", True)

        snapshot = at(backend, session, 10900)
        assert snapshot.log_lines == SAFE_OUTPUT
        assert not session.vignette.alert(snapshot)
        assert session.narration().title == "🛡️ Attack Blocked"

    def test_reset_stage_clears_and_chain_loops(self):
        backend, session = mount(CommandInjectionVignette)

        assert at(backend, session, 17000).log_lines == []
        snapshot = at(backend, session, 17900)
        assert snapshot.active_stage_id == "IDLE"
        assert session.vignette.runner.runs == 2

        assert at(backend, session, 17900 + 10900).log_lines == DANGER_OUTPUT

    def test_safety_survives_pause_and_works_while_stopped(self):
        backend, session = mount(CommandInjectionVignette)
        session.controls().on_play_pause()

        assert session.invoke("toggle_safety")
        session.controls().on_play_pause()

        assert session.snapshot().domain_flags == {"safety_on": True}
        assert at(backend, session, 10900).log_lines == SAFE_OUTPUT

    @pytest.mark.parametrize("t", [500, 3000, 9500])
    def test_no_alert_before_result(self, t):
        backend, session = mount(CommandInjectionVignette)
        assert not session.vignette.alert(at(backend, session, t))
