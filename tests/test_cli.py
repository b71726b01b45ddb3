"""
Tests for CLI functionality.
"""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from composeorch import __version__
from composeorch.cli import cli
from composeorch.exceptions import StartupFailure, TimeoutFailure
from composeorch.lifecycle import PROJECT_NAME_ENV, STATE_FILE_ENV
from composeorch.models import ServiceStatus

from .fakes import FakeComposeService, FakeProcessRunner


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def base_args(temp_workspace, isolated_test_env):
    return ["--log-dir", str(temp_workspace / "logs")]


@pytest.fixture
def cli_compose():
    compose = FakeComposeService()
    compose.runner = FakeProcessRunner()
    compose.running_projects["shop-1"] = None
    with patch("composeorch.cli._build_compose_service", return_value=compose):
        yield compose


@pytest.fixture
def scope_context(temp_workspace):
    context = Mock()
    context.project_name = "shop-1"
    context.state_file = temp_workspace / "shop-state.json"
    context.compose_state.get_summary.return_value = "shop [shop-1]: db, web"
    context.as_environment.return_value = {
        STATE_FILE_ENV: str(temp_workspace / "shop-state.json"),
        PROJECT_NAME_ENV: "shop-1",
    }
    return context


@pytest.fixture
def cli_coordinator(scope_context):
    coordinator = Mock()
    coordinator.enter_scope.return_value = scope_context
    coordinator.exit_scope.return_value = None
    with patch("composeorch.cli._build_coordinator", return_value=coordinator):
        yield coordinator


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "ephemeral compose environments" in result.output
        for command in ("up", "down", "status", "wait", "logs", "run"):
            assert command in result.output

    def test_cli_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_log_directory_created(self, runner, base_args, temp_workspace, cli_compose):
        result = runner.invoke(cli, base_args + ["--verbose", "status", "shop-1", "web"])

        assert result.exit_code == 0
        assert (temp_workspace / "logs" / "compose").is_dir()


class TestUpCommand:
    """Test the up command."""

    def test_up_success(self, runner, base_args, compose_file, cli_coordinator):
        result = runner.invoke(
            cli,
            base_args
            + ["up", "-s", "shop", "-f", str(compose_file), "--healthy", "db", "--running", "web",
               "--timeout", "30"],
        )

        assert result.exit_code == 0, result.output
        assert "Project: shop-1" in result.output
        assert "shop-state.json" in result.output

        request = cli_coordinator.enter_scope.call_args.args[0]
        assert request.stack_name == "shop"
        assert request.compose_files == [str(compose_file)]
        assert request.timeout == 30
        assert [(list(g.services), g.target_status) for g in request.wait_groups] == [
            (["db"], ServiceStatus.HEALTHY),
            (["web"], ServiceStatus.RUNNING),
        ]
        cli_coordinator.exit_scope.assert_not_called()

    def test_up_failure(self, runner, base_args, compose_file, cli_coordinator):
        cli_coordinator.enter_scope.side_effect = TimeoutFailure(
            "shop-1", ServiceStatus.HEALTHY, {"db": ServiceStatus.UNHEALTHY}, 30
        )

        result = runner.invoke(cli, base_args + ["up", "-s", "shop", "-f", str(compose_file)])

        assert result.exit_code == 1
        assert "db (UNHEALTHY)" in result.output

    def test_up_requires_existing_compose_file(self, runner, base_args, temp_workspace):
        result = runner.invoke(
            cli, base_args + ["up", "-s", "shop", "-f", str(temp_workspace / "missing.yml")]
        )

        assert result.exit_code == 2


class TestDownCommand:
    """Test the down command."""

    def test_down_success(self, runner, base_args, cli_compose, temp_workspace):
        state_file = temp_workspace / "shop-state.json"
        state_file.write_text("{}")

        result = runner.invoke(cli, base_args + ["down", "shop-1", "--state-file", str(state_file)])

        assert result.exit_code == 0
        assert cli_compose.stopped == ["shop-1"]
        assert not state_file.exists()
        assert "4/4" in result.output

    def test_down_warnings_not_fatal(self, runner, base_args, cli_compose):
        cli_compose.stop_exit_code = 1

        result = runner.invoke(cli, base_args + ["down", "shop-1"])

        assert result.exit_code == 0
        assert "compose_down" in result.output

    def test_down_strict(self, runner, base_args, cli_compose):
        cli_compose.stop_exit_code = 1

        result = runner.invoke(cli, base_args + ["down", "shop-1", "--strict"])

        assert result.exit_code == 1


class TestStatusCommand:
    """Test the status command."""

    def test_status(self, runner, base_args, cli_compose):
        cli_compose.statuses["db"] = [ServiceStatus.STARTING]

        result = runner.invoke(cli, base_args + ["status", "shop-1", "web", "db"])

        assert result.exit_code == 0
        assert "web: HEALTHY" in result.output
        assert "db: STARTING" in result.output

    def test_status_requires_service(self, runner, base_args, cli_compose):
        result = runner.invoke(cli, base_args + ["status", "shop-1"])

        assert result.exit_code == 2


class TestWaitCommand:
    """Test the wait command."""

    def test_wait_success(self, runner, base_args, cli_compose):
        result = runner.invoke(
            cli, base_args + ["wait", "shop-1", "--healthy", "db", "--running", "web"]
        )

        assert result.exit_code == 0
        assert "Services ready" in result.output

    def test_wait_timeout(self, runner, base_args, cli_compose):
        cli_compose.statuses["db"] = [ServiceStatus.UNHEALTHY]

        result = runner.invoke(
            cli,
            base_args
            + ["wait", "shop-1", "--healthy", "db", "--timeout", "0.3", "--poll-interval", "0.1"],
        )

        assert result.exit_code == 1
        assert "db (UNHEALTHY)" in result.output

    def test_wait_requires_services(self, runner, base_args, cli_compose):
        result = runner.invoke(cli, base_args + ["wait", "shop-1"])

        assert result.exit_code == 2


class TestLogsCommand:
    """Test the logs command."""

    def test_logs(self, runner, base_args, cli_compose):
        result = runner.invoke(cli, base_args + ["logs", "shop-1", "web"])

        assert result.exit_code == 0
        assert "logs for shop-1" in result.output


class TestRunCommand:
    """Test the run command."""

    @patch("composeorch.cli.subprocess.run")
    def test_run_exports_environment_and_tears_down(
        self, mock_run, runner, base_args, compose_file, cli_coordinator, scope_context
    ):
        mock_run.return_value = Mock(returncode=3)

        result = runner.invoke(
            cli,
            base_args + ["run", "-s", "shop", "-f", str(compose_file), "--", "pytest", "-q"],
        )

        assert result.exit_code == 3
        args, kwargs = mock_run.call_args
        assert args[0] == ["pytest", "-q"]
        assert kwargs["env"][PROJECT_NAME_ENV] == "shop-1"
        assert kwargs["env"][STATE_FILE_ENV].endswith("shop-state.json")
        cli_coordinator.exit_scope.assert_called_once_with(scope_context)

    @patch("composeorch.cli.subprocess.run")
    def test_run_tears_down_when_command_missing(
        self, mock_run, runner, base_args, compose_file, cli_coordinator
    ):
        mock_run.side_effect = FileNotFoundError("no-such-tool")

        result = runner.invoke(
            cli, base_args + ["run", "-s", "shop", "-f", str(compose_file), "--", "no-such-tool"]
        )

        assert result.exit_code == 127
        cli_coordinator.exit_scope.assert_called_once()

    @patch("composeorch.cli.subprocess.run")
    def test_run_startup_failure(self, mock_run, runner, base_args, compose_file, cli_coordinator):
        cli_coordinator.enter_scope.side_effect = StartupFailure("shop-1", 1, "no such image")

        result = runner.invoke(
            cli, base_args + ["run", "-s", "shop", "-f", str(compose_file), "--", "pytest"]
        )

        assert result.exit_code == 1
        assert "no such image" in result.output
        mock_run.assert_not_called()
        cli_coordinator.exit_scope.assert_not_called()
