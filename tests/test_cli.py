"""Tests for the command line interface."""

import json
from datetime import UTC, datetime

import pytest
from typer.testing import CliRunner

from bouncer.cli import _replay_lines, app
from bouncer.clock import ManualClock
from bouncer.controller import Controller, GuardRegistry
from bouncer.errors import SequenceError
from bouncer.messages import FrameStatus, FrameStatusMessage, MemoryMessenger

runner = CliRunner()

POLICIES = """
policies:
  - name: hn
    matcher:
      type: ExactHostname
      data: {hostname: news.ycombinator.com}
    enforcer:
      type: ScheduledLimit
      data:
        schedule: {type: AlwaysSchedule}
        limit:
          type: ViewtimeCooldown
          data: {ms_viewtime: 1000, ms_cooldown: 1000}
"""

EVENTS = [
    {"type": "tab_activate", "time": "2024-01-07T12:00:00+00:00", "tab_id": 1},
    {
        "type": "navigate",
        "time": "2024-01-07T12:00:00+00:00",
        "tab_id": 1,
        "location": {"url": "https://news.ycombinator.com/"},
    },
    {"type": "status", "time": "2024-01-07T12:00:01.500000+00:00", "tab_id": 1},
]


@pytest.fixture
def policies_file(tmp_path):
    path = tmp_path / "policies.yaml"
    path.write_text(POLICIES)
    return path


@pytest.fixture
def events_file(tmp_path):
    path = tmp_path / "events.jsonl"
    lines = [json.dumps(event) for event in EVENTS]
    lines.insert(1, "not json")
    path.write_text("\n".join(lines) + "\n")
    return path


def test_check_policies(policies_file):
    result = runner.invoke(app, ["check-policies", str(policies_file)])
    assert result.exit_code == 0
    assert "hn" in result.output
    assert "Policies (1)" in result.output


def test_check_policies_missing_file(tmp_path):
    result = runner.invoke(app, ["check-policies", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1


def test_replay(policies_file, events_file):
    result = runner.invoke(
        app,
        ["--log-format", "json", "replay", str(events_file), "--policies", str(policies_file), "--dump-state"],
    )
    assert result.exit_code == 0
    assert "allowed" in result.output
    assert "blocked" in result.output
    assert "Skipped 1 event(s)" in result.output
    assert '"active_tabs"' in result.output


class FailingStatusController(Controller):
    """Sends a reply for status messages, then fails."""

    def handle_status(self, message):
        self.messenger.send(message.tab_id, message.frame_id, FrameStatusMessage(status=FrameStatus.ALLOWED))
        raise SequenceError("status arrived out of order")


def test_replay_keeps_partial_output_on_failing_line():
    messenger = MemoryMessenger()
    clock = ManualClock(datetime(2024, 1, 7, 12, tzinfo=UTC))
    controller = FailingStatusController(GuardRegistry(), messenger, clock=clock)
    lines = [json.dumps(EVENTS[0]), json.dumps(EVENTS[2]), json.dumps(EVENTS[0])]

    deliveries, skipped = _replay_lines(lines, controller, messenger, clock)

    assert skipped == 1
    assert [line for line, _ in deliveries] == [2]
    assert messenger.outbox == []


def test_replay_missing_events(policies_file, tmp_path):
    result = runner.invoke(app, ["replay", str(tmp_path / "none.jsonl"), "--policies", str(policies_file)])
    assert result.exit_code == 1


def test_parse_time():
    result = runner.invoke(app, ["parse-time", "Mon 08:30:00"])
    assert result.exit_code == 0
    assert "week" in result.output
    assert "117000000" in result.output


def test_parse_time_invalid():
    result = runner.invoke(app, ["parse-time", "Funday 08:30:00"])
    assert result.exit_code == 1
