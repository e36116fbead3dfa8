"""
Tests for PlaybackController.

Drives a small login-style timeline (typing, a delayed flag and a
draining counter) and checks that every transition cancels timers and
rewinds state to its pristine snapshot.
"""

from narrative_core.playback import PlaybackController, PlaybackState
from narrative_core.scheduler import TimerScheduler
from narrative_core.state import VignetteState
from narrative_core.timeline import Stage, StageEntered, StageTimeline, TimelineRunner
from narrative_core.typing_sim import TypingSimulator
from narrative_core.virtual import VirtualTimerBackend


class LoginScene:
    """Minimal vignette: one looping stage that types, opens a door and drains a balance."""

    def __init__(self, honour_cancel: bool = True, autostart: bool = True):
        self.backend = VirtualTimerBackend(honour_cancel=honour_cancel)
        self.scheduler = TimerScheduler(self.backend)
        self.state = VignetteState(
            vignette="login",
            initial_stage="login",
            flags={"door_open": False},
            fields={"username": ""},
            counters={"balance": 1000.0},
        )
        self.typist = TypingSimulator(self.scheduler, self.state.text_setter("username"))
        self.entries = 0
        self.runner = TimelineRunner(
            StageTimeline([Stage("login", 4000), Stage("after", 4000)], loop=True),
            self.scheduler,
            on_stage_entered=self.enter,
            frame_ms=10.0,
        )
        self.changes: list[PlaybackState] = []
        self.controller = PlaybackController(
            self.scheduler,
            self.runner,
            resettables=[self.state],
            autostart=autostart,
            on_change=self.changes.append,
        )
        self.state.bind(
            is_playing=lambda: self.controller.is_playing,
            generation=lambda: self.scheduler.generation,
        )

    def enter(self, event: StageEntered) -> None:
        self.entries += 1
        self.state.enter_stage(event.stage.id)
        if event.stage.id == "login":
            self.typist.start("admin", 50)
            self.scheduler.schedule(1000, lambda: self.state.set_flag("door_open", True))
            self.scheduler.schedule_repeating(
                50, lambda: self.state.add_to_counter("balance", -10, floor=0), max_runs=20
            )


class TestPlaybackController:
    """Tests for play/pause/reset transitions."""

    def test_autostart_enters_playing(self):
        scene = LoginScene()
        assert scene.controller.state is PlaybackState.PLAYING
        assert scene.entries == 1
        assert scene.changes == [PlaybackState.PLAYING]

    def test_without_autostart_nothing_runs(self):
        scene = LoginScene(autostart=False)
        scene.backend.advance_to(5000)

        assert not scene.controller.is_playing
        assert scene.entries == 0
        assert scene.state.snapshot() == scene.state.pristine()

    def test_pause_restores_pristine_snapshot(self):
        scene = LoginScene()
        scene.backend.advance_to(1200)
        snapshot = scene.state.snapshot()
        assert snapshot.typed_text["username"] == "admin"
        assert snapshot.sub_animation_flags["door_open"] is True
        assert snapshot.derived_counters["balance"] == 800.0

        scene.controller.pause()

        assert scene.state.snapshot() == scene.state.pristine()
        assert scene.scheduler.outstanding == 0

    def test_pause_then_play_starts_from_the_beginning(self):
        scene = LoginScene()
        scene.backend.advance_to(5000)
        assert scene.state.active_stage_id == "after"

        scene.controller.pause()
        scene.backend.advance_to(9000)
        assert scene.state.snapshot() == scene.state.pristine()

        scene.controller.play()
        assert scene.state.active_stage_id == "login"
        assert scene.state.text("username") == ""

        scene.backend.advance_to(9050)
        assert scene.state.text("username") == "a"

    def test_stale_timers_after_pause_never_mutate_state(self):
        scene = LoginScene(honour_cancel=False)
        scene.backend.advance_to(100)

        scene.controller.pause()
        suppressed = scene.scheduler.suppressed
        scene.backend.advance_to(5000)

        assert scene.state.snapshot() == scene.state.pristine()
        assert scene.scheduler.suppressed > suppressed

    def test_every_transition_bumps_generation(self):
        scene = LoginScene()
        generations = [scene.scheduler.generation]
        for transition in (scene.controller.pause, scene.controller.play, scene.controller.reset):
            transition()
            generations.append(scene.scheduler.generation)

        assert generations == sorted(set(generations))

    def test_reset_is_pause_then_play(self):
        scene = LoginScene()
        scene.backend.advance_to(1200)

        scene.controller.reset()

        assert scene.controller.is_playing
        assert scene.entries == 2
        assert scene.state.flag("door_open") is False
        assert scene.changes == [
            PlaybackState.PLAYING,
            PlaybackState.STOPPED,
            PlaybackState.PLAYING,
        ]

    def test_toggle_and_controls(self):
        scene = LoginScene()
        controls = scene.controller.controls()
        assert controls.is_playing

        controls.on_play_pause()
        assert not scene.controller.is_playing
        assert not scene.controller.controls().is_playing

        controls.on_play_pause()
        assert scene.controller.is_playing

        controls.on_reset()
        assert scene.controller.is_playing

    def test_snapshot_reports_playing_state_and_generation(self):
        scene = LoginScene()
        scene.controller.pause()
        snapshot = scene.state.snapshot()

        assert snapshot.is_playing is False
        assert snapshot.generation == scene.scheduler.generation

    def test_close_cancels_and_refuses_transitions(self):
        scene = LoginScene()
        scene.backend.advance_to(100)

        scene.controller.close()
        scene.controller.play()
        scene.backend.advance_to(10000)

        assert scene.controller.closed
        assert not scene.controller.is_playing
        assert scene.scheduler.outstanding == 0
        assert scene.entries == 1
