"""Tests for CLI commands."""

import json
from collections.abc import Iterator
from contextlib import ExitStack
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner
from conftest import make_stats_payload

from vm_heartbeat.cli import main
from vm_heartbeat.client import make_http_client
from vm_heartbeat.config import Config


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def patched_cli(agent, config, tmp_path: Path) -> Iterator[Path]:
    """Route the CLI at the fake agent with config paths under tmp_path."""
    config_path = tmp_path / "config.toml"
    with ExitStack() as stack:
        stack.enter_context(patch("vm_heartbeat.config.Config.load", return_value=config))
        stack.enter_context(patch("vm_heartbeat.logging.configure"))
        stack.enter_context(
            patch.object(Config, "config_path", new=property(lambda self: config_path))
        )
        stack.enter_context(patch(
            "vm_heartbeat.client.make_http_client",
            side_effect=lambda http_config: make_http_client(
                http_config, transport=agent.transport()
            ),
        ))
        yield config_path


class TestCollectCommand:
    """Tests for the collect command."""

    def test_table_output(self, runner, agent, patched_cli) -> None:
        agent.add_vm(1, "eclipse-ide")
        agent.add_vm(2, "gradle-daemon")

        result = runner.invoke(main, ["collect"])

        assert result.exit_code == 0, result.output
        assert "eclipse-ide" in result.stdout
        assert "gradle-daemon" in result.stdout
        assert "2m00s" in result.stdout

    def test_json_output(self, runner, agent, patched_cli) -> None:
        agent.add_vm(1, "eclipse-ide")
        agent.add_vm(2, "gradle-daemon", stats=httpx.Response(200, text="garbage"))

        result = runner.invoke(main, ["collect", "--format", "json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [r["tags"]["pid"] for r in data["records"]] == ["1"]
        assert data["errors"][0]["kind"] == "decode"
        assert data["errors"][0]["pid"] == 2
        assert data["fatal"] is None

    def test_filter_option_overrides_config(self, runner, agent, patched_cli) -> None:
        agent.add_vm(1, "eclipse-ide")
        agent.add_vm(2, "gradle-daemon")

        result = runner.invoke(main, ["collect", "-f", "json", "--filter", "GRADLE"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [r["tags"]["pid"] for r in data["records"]] == ["2"]
        assert agent.stats_requests == [2]

    def test_discovery_failure_exits_nonzero(self, runner, agent, patched_cli) -> None:
        agent.discovery = httpx.Response(500)

        result = runner.invoke(main, ["collect"])

        assert result.exit_code == 1
        assert "HTTP 500" in result.stderr

    def test_nothing_reported(self, runner, agent, patched_cli) -> None:
        result = runner.invoke(main, ["collect"])

        assert result.exit_code == 0
        assert "No processes reported" in result.stdout


class TestDiscoverCommand:
    """Tests for the discover command."""

    def test_lists_processes_and_marks_selected(self, runner, agent, config, patched_cli) -> None:
        config.endpoints.pid_filters = ["tomcat"]
        agent.add_vm(1, "eclipse-ide", "org.eclipse.equinox")
        agent.add_vm(7, "apache-tomcat", "catalina")

        result = runner.invoke(main, ["discover"])

        assert result.exit_code == 0, result.output
        lines = result.stdout.splitlines()
        tomcat_line = next(line for line in lines if "apache-tomcat" in line)
        eclipse_line = next(line for line in lines if "eclipse-ide" in line)
        assert "*" in tomcat_line
        assert "*" not in eclipse_line
        assert "org.eclipse.equinox" in eclipse_line
        assert agent.stats_requests == []

    def test_discovery_error(self, runner, agent, patched_cli) -> None:
        agent.discovery = httpx.ConnectError("connection refused")

        result = runner.invoke(main, ["discover"])

        assert result.exit_code == 1
        assert "request failed" in result.output


class TestConfigCommands:
    """Tests for config subcommands."""

    def test_show_defaults_when_missing(self, runner, patched_cli) -> None:
        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert "defaults in effect" in result.stdout
        assert "[endpoints]" in result.stdout

    def test_reset_writes_file(self, runner, patched_cli) -> None:
        result = runner.invoke(main, ["config", "reset", "--yes"])

        assert result.exit_code == 0, result.output
        assert patched_cli.exists()
        assert "by_pid_url" in patched_cli.read_text()

    def test_show_existing_file(self, runner, patched_cli) -> None:
        patched_cli.write_text('[endpoints]\npid_filters = ["eclipse"]\n')

        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert 'pid_filters = ["eclipse"]' in result.stdout

    def test_path(self, runner, patched_cli) -> None:
        result = runner.invoke(main, ["config", "path"])
        assert result.stdout.strip() == str(patched_cli)


def test_invalid_config_file_is_reported(runner) -> None:
    with patch("vm_heartbeat.config.Config.load", side_effect=ValueError("Failed to parse")):
        result = runner.invoke(main, ["collect"])

    assert result.exit_code == 1
    assert "Failed to parse" in result.output


def test_uptime_column_uses_stats(runner, agent, patched_cli) -> None:
    """Table uptime comes from upTime in milliseconds."""
    agent.add_vm(1, "eclipse-ide", stats=make_stats_payload(up_time=3_723_000))

    result = runner.invoke(main, ["collect"])

    assert result.exit_code == 0, result.output
    assert "1h02m" in result.stdout
