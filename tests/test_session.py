"""
Tests for DemoSession and the vignette registry.
"""

import pytest

from attack_demos import VIGNETTES, CSRFVignette, DemoSession, get_vignette
from narrative_core.config import Settings
from narrative_core.errors import ConfigurationError, UnknownCommandError
from narrative_core.virtual import VirtualTimerBackend


def mount(vignette_cls, autostart=True):
    backend = VirtualTimerBackend()
    session = DemoSession(vignette_cls, backend, settings=Settings(), autostart=autostart)
    return backend, session


class TestRegistry:
    def test_five_vignettes_registered(self):
        assert set(VIGNETTES) == {"sqli", "xss", "idor", "csrf", "cmdi"}

    def test_get_vignette(self):
        assert get_vignette("csrf") is CSRFVignette

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            get_vignette("rce")
        assert exc_info.value.subject == "rce"


@pytest.mark.parametrize("key", sorted(VIGNETTES))
class TestEveryVignette:
    """Properties every stock vignette shares."""

    def test_mounts_and_plays(self, key):
        backend, session = mount(VIGNETTES[key])
        backend.advance_to(100)
        snapshot = session.snapshot()

        assert session.is_playing
        assert snapshot.vignette == key
        assert snapshot.is_playing
        assert session.narration().title

    def test_pause_restores_pristine_snapshot(self, key):
        backend, session = mount(VIGNETTES[key])
        backend.advance_to(9500)

        session.controls().on_play_pause()
        backend.advance_to(20000)

        assert session.snapshot() == session.vignette.state.pristine()
        assert session.scheduler.outstanding == 0

    def test_close_stops_every_timer(self, key):
        backend, session = mount(VIGNETTES[key])
        backend.advance_to(1000)
        dispatched = session.scheduler.dispatched

        session.close()
        backend.advance_to(60000)

        assert session.scheduler.dispatched == dispatched
        assert not session.is_playing

    def test_scene_renders(self, key):
        backend, session = mount(VIGNETTES[key])
        backend.advance_to(2000)
        assert isinstance(session.vignette.scene(session.snapshot()), str)


class TestDemoSession:
    """Tests for host commands and flags."""

    def test_autostart_false_waits_for_play(self):
        backend, session = mount(CSRFVignette, autostart=False)
        backend.advance_to(10000)

        assert not session.is_playing
        assert session.snapshot().active_stage_id == "SAFE_BANK"
        assert session.snapshot().derived_counters["victim_balance"] == 1000

    def test_unknown_command_raises(self):
        _, session = mount(CSRFVignette)
        with pytest.raises(UnknownCommandError) as exc_info:
            session.invoke("self_destruct")
        assert "toggle_protection" in exc_info.value.available

    def test_commands_ignored_while_stopped(self):
        backend, session = mount(CSRFVignette)
        session.controls().on_play_pause()

        assert session.invoke("toggle_protection") is False
        assert session.snapshot().domain_flags == {"protection_on": False}

    def test_flags_can_be_set_while_stopped(self):
        _, session = mount(CSRFVignette)
        session.controls().on_play_pause()

        snapshot = session.set_flag("protection_on", True)

        assert snapshot.domain_flags == {"protection_on": True}

    def test_unknown_flag_raises(self):
        _, session = mount(CSRFVignette)
        with pytest.raises(KeyError):
            session.set_flag("firewall", True)

    def test_subscribers_receive_step_snapshots(self):
        backend, session = mount(CSRFVignette)
        received = []
        session.vignette.state.subscribe(received.append)

        backend.advance_to(7000)

        stages = [snapshot.active_stage_id for snapshot in received]
        assert "FAKE_AD" in stages
        assert "ATTACK_START" in stages
