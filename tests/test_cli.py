"""Tests for the foreman CLI (click CliRunner)."""

from __future__ import annotations

import json
import sys

import pytest
from click.testing import CliRunner

from foreman.cli import cli, format_duration_ms

ECHO_WORKER = "import sys; sys.stdout.write(sys.argv[2])"
FAILING_WORKER = "import sys; sys.stdout.write('partial'); sys.exit(4)"


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _env(tmp_path, script: str) -> dict[str, str]:
    return {
        "FOREMAN_WORKER_COMMAND": json.dumps([sys.executable, "-c", script]),
        "FOREMAN_SIDE_CHANNEL_DIR": str(tmp_path / "side"),
        "MAX_CONCURRENT_AGENTS": "1",
    }


def test_tools_lists_both_definitions(runner):
    result = runner.invoke(cli, ["tools"])
    assert result.exit_code == 0
    tools = json.loads(result.stdout)
    assert [t["name"] for t in tools] == ["spawn_agent", "manage_agent"]
    assert tools[1]["inputSchema"]["required"] == ["action"]


def test_run_json_output(runner, tmp_path):
    body = '{"session_id": "s1", "cost_usd": 0.5, "duration_ms": 900}'
    result = runner.invoke(cli, ["run", body, "--json"], env=_env(tmp_path, ECHO_WORKER))
    assert result.exit_code == 0, result.output

    payload = json.loads(result.stdout)
    assert payload["sessionId"] == "s1"
    assert payload["cost"] == 0.5
    assert payload["exitCode"] == 0
    assert payload["output"] == body


def test_run_rich_output(runner, tmp_path):
    result = runner.invoke(
        cli,
        ["--no-color", "run", "plain text", "--output-format", "text"],
        env=_env(tmp_path, ECHO_WORKER),
    )
    assert result.exit_code == 0, result.output
    assert "agent result" in result.stdout
    assert "plain text" in result.stdout


def test_run_nonzero_exit(runner, tmp_path):
    result = runner.invoke(
        cli, ["run", "x", "--output-format", "text", "--json"], env=_env(tmp_path, FAILING_WORKER)
    )
    assert result.exit_code == 1
    assert json.loads(result.stdout)["exitCode"] == 4


def test_run_blank_task(runner, tmp_path):
    result = runner.invoke(cli, ["run", "  "], env=_env(tmp_path, ECHO_WORKER))
    assert result.exit_code == 2
    assert "Invalid task" in result.output


def test_run_spawn_failure(runner, tmp_path):
    env = _env(tmp_path, ECHO_WORKER)
    env["FOREMAN_WORKER_COMMAND"] = str(tmp_path / "missing-binary")
    result = runner.invoke(cli, ["run", "x"], env=env)
    assert result.exit_code == 1
    assert "failed to start" in result.output


@pytest.mark.parametrize(
    ("duration", "expected"),
    [(None, "-"), (1500, "1.5s"), (125000, "2m05s")],
)
def test_format_duration_ms(duration, expected):
    assert format_duration_ms(duration) == expected
