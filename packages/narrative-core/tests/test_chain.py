"""
Tests for ChainedRunner.

Covers absolute offsets, looping and parking, restart semantics and the
live-flag read that lets a mid-run toggle change a later branch.
"""

import math

import pytest

from narrative_core.chain import ChainedRunner, ChainStep, validate_steps
from narrative_core.errors import ConfigurationError
from narrative_core.scheduler import TimerScheduler
from narrative_core.state import LiveFlags
from narrative_core.virtual import VirtualTimerBackend


def make_clock() -> tuple[VirtualTimerBackend, TimerScheduler]:
    backend = VirtualTimerBackend()
    return backend, TimerScheduler(backend)


class TestChainConfiguration:
    """Tests for step validation."""

    def test_empty_chain_rejected(self):
        with pytest.raises(ConfigurationError):
            validate_steps([])

    def test_negative_offset_rejected(self):
        with pytest.raises(ConfigurationError):
            ChainStep(-1, lambda: None, "early")

    def test_steps_sorted_by_offset_keeping_ties_in_order(self):
        steps = validate_steps(
            [
                ChainStep(500, lambda: None, "late"),
                ChainStep(0, lambda: None, "first"),
                ChainStep(0, lambda: None, "second"),
            ]
        )
        assert [s.label for s in steps] == ["first", "second", "late"]

    def test_looping_chain_needs_positive_final_offset(self):
        _, scheduler = make_clock()
        with pytest.raises(ConfigurationError):
            ChainedRunner(scheduler, [ChainStep(0, lambda: None)], loop=True)

    def test_looping_run_rejects_zero_length_step_list(self):
        """An explicit step list on a looping runner gets the same check."""
        backend, scheduler = make_clock()
        runs = []
        runner = ChainedRunner(
            scheduler, [ChainStep(0, lambda: None), ChainStep(1000, lambda: None)], loop=True
        )
        runner.start()

        with pytest.raises(ConfigurationError):
            runner.run([ChainStep(0, lambda: runs.append(scheduler.now_ms), "spin")])

        backend.advance_to(1)
        assert runs == []
        assert runner.runs == 1

    def test_non_looping_run_accepts_single_step_at_zero(self):
        backend, scheduler = make_clock()
        fired = []
        runner = ChainedRunner(scheduler, [ChainStep(500, lambda: None)])

        runner.run([ChainStep(0, lambda: fired.append("now"))])
        backend.advance_to(1)

        assert fired == ["now"]
        assert runner.parked

    @pytest.mark.parametrize("offset", [math.nan, math.inf])
    def test_non_finite_offset_rejected(self, offset):
        with pytest.raises(ConfigurationError):
            ChainStep(offset, lambda: None, "never")


class TestChainedRunner:
    """Tests for running chains."""

    def test_steps_fire_at_absolute_offsets(self):
        backend, scheduler = make_clock()
        fired = []
        steps = [
            ChainStep(offset, lambda o=offset: fired.append((o, backend.now_ms())), str(offset))
            for offset in (0, 1000, 1500, 2500)
        ]
        runner = ChainedRunner(scheduler, steps)
        runner.start()
        backend.advance_to(3000)

        assert fired == [(0, 0.0), (1000, 1000.0), (1500, 1500.0), (2500, 2500.0)]

    def test_non_looping_chain_parks_after_final_step(self):
        backend, scheduler = make_clock()
        seen = []
        runner = ChainedRunner(
            scheduler,
            [ChainStep(0, lambda: None, "a"), ChainStep(1000, lambda: None, "b")],
            on_step=lambda step: seen.append(step.label),
        )
        runner.start()
        backend.advance_to(1000)

        assert seen == ["a", "b"]
        assert runner.parked
        assert runner.current_label == "b"
        assert runner.runs == 1
        assert scheduler.outstanding == 0

    def test_looping_chain_restarts_after_final_step(self):
        backend, scheduler = make_clock()
        labels = []
        restarts = []
        runner = ChainedRunner(
            scheduler,
            [ChainStep(0, lambda: labels.append("a"), "a"), ChainStep(1000, lambda: labels.append("b"), "b")],
            loop=True,
            on_restart=lambda: restarts.append(backend.now_ms()),
        )
        runner.start()
        backend.advance_to(2500)

        assert labels == ["a", "b", "a", "b", "a"]
        assert restarts == [1000.0, 2000.0]
        assert runner.runs == 3
        assert not runner.parked

    def test_run_cancels_pending_steps(self):
        backend, scheduler = make_clock()
        fired = []
        steps = [
            ChainStep(0, lambda: fired.append(("start", backend.now_ms())), "start"),
            ChainStep(1500, lambda: fired.append(("end", backend.now_ms())), "end"),
        ]
        runner = ChainedRunner(scheduler, steps)
        runner.start()
        backend.advance_to(1200)

        runner.run()
        backend.advance_to(5000)

        assert fired == [("start", 0.0), ("start", 1200.0), ("end", 2700.0)]

    def test_run_with_explicit_steps(self):
        backend, scheduler = make_clock()
        fired = []
        runner = ChainedRunner(scheduler, [ChainStep(0, lambda: fired.append("default"))])
        runner.run([ChainStep(100, lambda: fired.append("replay"))])
        backend.advance_to(1000)

        assert fired == ["replay"]

    def test_halt_after_cancel_all_stops_the_run(self):
        backend, scheduler = make_clock()
        fired = []
        runner = ChainedRunner(
            scheduler,
            [ChainStep(0, lambda: fired.append(0)), ChainStep(1000, lambda: fired.append(1000))],
        )
        runner.start()
        backend.advance_to(500)

        scheduler.cancel_all()
        runner.halt()
        backend.advance_to(5000)

        assert fired == [0]
        assert runner.current_label is None
        assert not runner.parked


class TestLiveFlags:
    """A flag changed mid-run is seen by every later step."""

    OFFSETS = (0, 1000, 1500, 2500, 6000)

    def run_chain(self, toggle_at: float | None) -> list[str]:
        backend, scheduler = make_clock()
        flags = LiveFlags({"protection_on": False})
        branches = []

        def branch():
            branches.append("blocked" if flags.get("protection_on") else "drained")

        steps = [ChainStep(offset, lambda: None, str(offset)) for offset in self.OFFSETS[:-1]]
        steps.append(ChainStep(self.OFFSETS[-1], branch, "branch"))
        ChainedRunner(scheduler, steps).start()

        if toggle_at is not None:
            backend.advance_to(toggle_at)
            flags.toggle("protection_on")
        backend.advance_to(7000)
        return branches

    def test_branch_without_toggle(self):
        assert self.run_chain(toggle_at=None) == ["drained"]

    def test_toggle_between_steps_changes_later_branch(self):
        assert self.run_chain(toggle_at=3000) == ["blocked"]
