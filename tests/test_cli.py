"""
Tests for the attack-demos CLI.

Uses typer's CliRunner; the interactive `play` command is not exercised
here because it needs a terminal.
"""

import json

import pytest
import typer
from typer.testing import CliRunner

from attack_demos.cli import app, parse_invoke, parse_set, parse_value, trace_session
from attack_demos import CSRFVignette

runner = CliRunner()


def json_lines(output: str) -> list[dict]:
    return [json.loads(line) for line in output.splitlines() if line.strip()]


class TestParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [("true", True), ("OFF", False), ("none", None), ("42", 42), ("moving", "moving")],
    )
    def test_parse_value(self, raw, expected):
        assert parse_value(raw) == expected

    def test_parse_set(self):
        event = parse_set("3000:protection_on=true")
        assert event.offset_ms == 3000
        assert event.name == "protection_on"
        assert event.value is True
        assert not event.is_command

    @pytest.mark.parametrize("raw", ["protection_on=true", "3000:protection_on", "x:flag=1", "-5:f=1"])
    def test_parse_set_rejects_malformed(self, raw):
        with pytest.raises(typer.BadParameter):
            parse_set(raw)

    def test_parse_invoke(self):
        event = parse_invoke("22000:replay")
        assert event.offset_ms == 22000
        assert event.name == "replay"
        assert event.is_command


class TestTraceSession:
    def test_samples_every_interval(self):
        samples = trace_session(CSRFVignette, until_ms=10000, every_ms=2500)
        assert [t for t, _ in samples] == [0, 2500, 5000, 7500, 10000]
        assert [s.active_stage_id for _, s in samples] == [
            "SAFE_BANK",
            "SAFE_BANK",
            "FAKE_AD",
            "ATTACK_START",
            "ATTACK_FLOW",
        ]

    def test_events_apply_before_sample_at_same_offset(self):
        samples = trace_session(
            CSRFVignette,
            until_ms=10000,
            every_ms=5000,
            events=[parse_set("5000:protection_on=true")],
        )
        assert samples[1][1].domain_flags == {"protection_on": True}
        assert samples[2][1].sub_animation_flags["show_explosion"] is True


class TestCommands:
    def test_list_table(self):
        result = runner.invoke(app, ["list"], env={"COLUMNS": "200"})
        assert result.exit_code == 0
        for key in ("sqli", "xss", "idor", "csrf", "cmdi"):
            assert key in result.output

    def test_list_json(self):
        result = runner.invoke(app, ["list", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [item["key"] for item in data] == ["sqli", "xss", "idor", "csrf", "cmdi"]

    def test_trace_json_lines(self):
        result = runner.invoke(app, ["trace", "csrf", "--until", "9600", "--every", "9600", "--json"])
        assert result.exit_code == 0
        lines = json_lines(result.output)
        assert [line["t_ms"] for line in lines] == [0, 9600]
        assert lines[-1]["derived_counters"] == {"victim_balance": 800, "attacker_balance": 200}

    def test_trace_with_live_flag(self):
        result = runner.invoke(
            app,
            [
                "trace", "cmdi",
                "--until", "11000", "--every", "11000",
                "--set", "10000:safety_on=true",
                "--json",
            ],
        )
        assert result.exit_code == 0
        assert json_lines(result.output)[-1]["log_lines"][0] == "[SAFE] Input validation active..."

    def test_trace_with_command(self):
        result = runner.invoke(
            app,
            [
                "trace", "csrf",
                "--until", "23000", "--every", "23000",
                "--set", "22000:protection_on=true",
                "--invoke", "22000:replay",
                "--json",
            ],
        )
        assert result.exit_code == 0
        assert json_lines(result.output)[-1]["active_stage_id"] == "FAKE_AD"

    def test_trace_table(self):
        result = runner.invoke(
            app, ["trace", "sqli", "--until", "4000", "--every", "4000"], env={"COLUMNS": "200"}
        )
        assert result.exit_code == 0
        assert "injection" in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ["trace", "rce"],
            ["trace", "csrf", "--set", "bogus"],
            ["trace", "csrf", "--set", "100:firewall=true"],
            ["trace", "csrf", "--invoke", "100:self_destruct"],
            ["trace", "csrf", "--every", "0"],
            ["play", "rce"],
        ],
    )
    def test_bad_parameters_exit_with_usage_error(self, args):
        result = runner.invoke(app, args)
        assert result.exit_code == 2
