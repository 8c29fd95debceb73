"""Tests for the command line."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from cloud_run_mcp import __version__, config
from cloud_run_mcp.cli import cli


@pytest.fixture(autouse=True)
def _quiet_logging():
    with patch("cloud_run_mcp.cli.configure_logging"):
        yield


@pytest.fixture
def runner():
    return CliRunner()


class TestVersion:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestMcpCommand:
    def test_stdio_runs_local_server(self, runner):
        server = MagicMock()
        with (
            patch("cloud_run_mcp.auth.ensure_gcp_credentials", return_value=True),
            patch("cloud_run_mcp.mcp.create_server", return_value=server) as create_server,
        ):
            result = runner.invoke(cli, ["mcp"])

        assert result.exit_code == 0, result.output
        assert create_server.call_args.kwargs["remote"] is False
        server.run.assert_called_once_with()

    def test_http_runs_remote_server(self, runner):
        server = MagicMock()
        with (
            patch("cloud_run_mcp.auth.ensure_gcp_credentials", return_value=False),
            patch("cloud_run_mcp.mcp.create_server", return_value=server) as create_server,
        ):
            result = runner.invoke(cli, ["mcp", "--transport", "http", "--port", "9000"])

        assert result.exit_code == 0, result.output
        assert create_server.call_args.args[1] is False
        assert create_server.call_args.kwargs["remote"] is True
        server.run.assert_called_once_with(transport="http", host="0.0.0.0", port=9000)

    def test_skip_iam_check_flag(self, runner):
        with (
            patch("cloud_run_mcp.auth.ensure_gcp_credentials", return_value=True),
            patch("cloud_run_mcp.mcp.create_server") as create_server,
        ):
            runner.invoke(cli, ["mcp", "--skip-iam-check"])

        assert create_server.call_args.args[0].skip_iam_check is True

    def test_remote_without_project_fails(self, runner):
        with patch("cloud_run_mcp.auth.ensure_gcp_credentials", return_value=True):
            result = runner.invoke(cli, ["mcp", "--transport", "http"])

        assert result.exit_code == 1
        assert "GOOGLE_CLOUD_PROJECT" in result.output


class TestLogsCommand:
    def test_json_output(self, runner):
        with patch("cloud_run_mcp.services.logs.get_logs", new=AsyncMock(return_value="a\nb")) as get_logs:
            result = runner.invoke(cli, ["--output", "json", "logs", "--project", "p1", "--service", "web"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"ok": True, "project": "p1", "service": "web", "logs": ["a", "b"]}
        get_logs.assert_awaited_once_with("p1", config.DEFAULT_REGION, "web")

    def test_missing_project(self, runner):
        result = runner.invoke(cli, ["--output", "json", "logs"])
        assert result.exit_code == 1
        assert json.loads(result.output)["ok"] is False

    def test_failure_exits_nonzero(self, runner):
        with patch("cloud_run_mcp.services.logs.get_logs", new=AsyncMock(side_effect=RuntimeError("denied"))):
            result = runner.invoke(cli, ["--output", "json", "logs", "--project", "p1"])

        assert result.exit_code == 1
        assert json.loads(result.output) == {"ok": False, "messages": ["Failed to fetch logs: denied"]}


class TestConfigureCommand:
    def test_saves_defaults(self, runner):
        result = runner.invoke(cli, ["configure", "--project", "p9", "--region", "us-east1"])

        assert result.exit_code == 0, result.output
        data = json.loads(config.CFG_FILE_PATH.read_text())
        assert data["google_cloud_project"] == "p9"
        assert data["google_cloud_region"] == "us-east1"

    def test_json_reports_path(self, runner):
        result = runner.invoke(cli, ["--output", "json", "configure", "--service", "web"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"ok": True, "path": str(config.CFG_FILE_PATH)}


class TestCheckAuthCommand:
    def test_available(self, runner):
        with patch("cloud_run_mcp.auth.ensure_gcp_credentials", return_value=True):
            result = runner.invoke(cli, ["--output", "json", "check-auth"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"ok": True}

    def test_unavailable(self, runner):
        with patch("cloud_run_mcp.auth.ensure_gcp_credentials", return_value=False):
            result = runner.invoke(cli, ["check-auth"])
        assert result.exit_code == 1
