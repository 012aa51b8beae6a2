"""Tests for CLI module."""

from unittest.mock import AsyncMock, patch

import pytest
import yaml
from click.testing import CliRunner

from ddnsd import __version__
from ddnsd.cli import main


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.dump(
            {
                "push_server": {"bind": "127.0.0.1:8245"},
                "http_requests": {1: {"url": "https://x/?ip=<ipaddr>"}},
            }
        )
    )
    return path


class TestCLIHelp:
    """Test CLI help output."""

    def test_cli_help(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "run" in result.output
        assert "check-config" in result.output


class TestVersionCommand:
    """Test version command."""

    def test_version(self, runner):
        result = runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert result.output.strip() == f"ddnsd version {__version__}"


class TestCheckConfigCommand:
    """Test check-config command."""

    def test_valid_config(self, runner, config_file):
        result = runner.invoke(main, ["--config", str(config_file), "check-config"])

        assert result.exit_code == 0
        assert "push server: 127.0.0.1:8245" in result.output
        assert "http requests: 1" in result.output

    def test_invalid_config(self, runner, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"push_server": {"bind": "no-port"}}))

        result = runner.invoke(main, ["-c", str(path), "check-config"])

        assert result.exit_code == 1
        assert "Config error" in result.output


class TestRunCommand:
    """Test run command."""

    def test_run_starts_and_stops_daemon(self, runner, config_file):
        with patch("ddnsd.daemon.Daemon") as mock_daemon_class:
            mock_daemon = AsyncMock()
            mock_daemon_class.return_value = mock_daemon

            result = runner.invoke(main, ["-c", str(config_file), "run"])

        assert result.exit_code == 0
        assert "Daemon started" in result.output
        mock_daemon.start.assert_awaited_once()
        mock_daemon.run_forever.assert_awaited_once()
        mock_daemon.stop.assert_awaited_once()

    def test_run_startup_error(self, runner, config_file):
        with patch("ddnsd.daemon.Daemon") as mock_daemon_class:
            mock_daemon = AsyncMock()
            mock_daemon.start.side_effect = OSError("address already in use")
            mock_daemon_class.return_value = mock_daemon

            result = runner.invoke(main, ["-c", str(config_file), "run"])

        assert result.exit_code == 1
        assert "Startup error: address already in use" in result.output
        mock_daemon.stop.assert_awaited_once()

    def test_run_keyboard_interrupt(self, runner, config_file):
        with patch("ddnsd.daemon.Daemon") as mock_daemon_class:
            mock_daemon = AsyncMock()
            mock_daemon.run_forever.side_effect = KeyboardInterrupt
            mock_daemon_class.return_value = mock_daemon

            result = runner.invoke(main, ["-c", str(config_file), "run"])

        assert result.exit_code == 0
        mock_daemon.stop.assert_awaited_once()
