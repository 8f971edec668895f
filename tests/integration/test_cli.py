"""Integration tests for the ssh-serial command line."""

import sys
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from sshserial.cli import main, resolve_settings, run
from sshserial.core.config import Config
from sshserial.serial.line import LineSettings, SerialLineError
from sshserial.serial.relay import RelayError


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def serial_mocks():
    """Patch out the device and relay so no hardware is touched."""
    with patch("sshserial.cli.open_serial", return_value=42) as mock_open, \
            patch("sshserial.cli.close_serial") as mock_close, \
            patch("sshserial.cli.SerialRelay") as mock_relay, \
            patch("sshserial.cli._setup_logging"):
        yield MagicMock(open=mock_open, close=mock_close, relay=mock_relay)


class TestResolveSettings:
    """Tests for merging options over configured defaults."""

    def test_defaults(self):
        """Test configured defaults are used when no options are given."""
        settings = resolve_settings(Config())

        assert settings == LineSettings("/dev/ttyS0", "9600", "9600", True, True)

    def test_speed_sets_both(self):
        """Test -b sets input and output speed."""
        settings = resolve_settings(Config(), speed="115200")

        assert settings.input_speed == "115200"
        assert settings.output_speed == "115200"

    def test_individual_speeds_take_precedence(self):
        """Test -i/-j override -b."""
        settings = resolve_settings(
            Config(), speed="9600", input_speed="1200", output_speed="75"
        )

        assert settings.input_speed == "1200"
        assert settings.output_speed == "75"

    def test_flags_override_config(self):
        """Test explicit 0 flags override configured 1."""
        settings = resolve_settings(Config(), dcd=False, ctsrts=False)

        assert settings.data_carrier_detect is False
        assert settings.hardware_handshaking is False


class TestMainCommand:
    """Tests for the main ssh-serial command."""

    def test_help(self, runner):
        """Test --help flag."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Attach an ssh session to a serial device" in result.output
        assert "--bits-per-second" in result.output
        assert "--hardware-handshaking" in result.output

    def test_version(self, runner, serial_mocks):
        """Test --version shows options and speeds without opening the device."""
        result = runner.invoke(main, ["-V", "-d", "/dev/ttyUSB0", "-i", "1200"])

        assert result.exit_code == 0
        assert "release 0.1.0" in result.output
        assert "--device /dev/ttyUSB0" in result.output
        assert "--bits-per-second-input 1200" in result.output
        assert "134.5" in result.output
        assert "230400" in result.output
        serial_mocks.open.assert_not_called()

    def test_invalid_speed(self, runner, serial_mocks):
        """Test an unknown bit-rate is a syntax error before opening."""
        result = runner.invoke(main, ["-b", "9601"])

        assert result.exit_code == 2
        assert "9601" in result.output
        serial_mocks.open.assert_not_called()

    def test_invalid_boolean(self, runner, serial_mocks):
        """Test a malformed boolean is a syntax error."""
        result = runner.invoke(main, ["-c", "maybe"])

        assert result.exit_code == 2
        assert "is not boolean" in result.output
        serial_mocks.open.assert_not_called()

    def test_invalid_speed_in_config(self, runner, serial_mocks, tmp_path):
        """Test a bad speed in the config file is a syntax error."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("serial:\n  output_speed: 123\n")

        result = runner.invoke(main, ["--config", str(config_file)])

        assert result.exit_code == 2
        assert '"123" is not an available RS-232 speed' in result.output
        serial_mocks.open.assert_not_called()

    @pytest.mark.parametrize(
        "content, message",
        [
            ("serial: 5\n", '"serial" must be a mapping'),
            ("relay: [1, 2]\n", '"relay" must be a mapping'),
            ("log_level: 10\n", 'Log level "10"'),
        ],
    )
    def test_malformed_config_value(self, runner, serial_mocks, tmp_path, content, message):
        """Test malformed config values are syntax errors before opening."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(content)

        result = runner.invoke(main, ["--config", str(config_file)])

        assert result.exit_code == 2
        assert message in result.output
        serial_mocks.open.assert_not_called()

    def test_open_failure(self, runner, serial_mocks):
        """Test a device open failure exits with failure status."""
        serial_mocks.open.side_effect = SerialLineError(
            "Failed opening serial device /dev/ttyS7: No such file or directory",
            "/dev/ttyS7",
        )

        result = runner.invoke(main, ["-d", "/dev/ttyS7"])

        assert result.exit_code == 1
        assert "ssh-serial: Failed opening serial device /dev/ttyS7" in result.output
        serial_mocks.relay.assert_not_called()

    def test_successful_session(self, runner, serial_mocks):
        """Test a clean relay run opens, relays and closes the device."""
        result = runner.invoke(
            main, ["-d", "/dev/ttyUSB0", "-i", "1200", "-j", "75", "-c", "0", "-h", "n"]
        )

        assert result.exit_code == 0
        serial_mocks.open.assert_called_once_with(
            LineSettings("/dev/ttyUSB0", "1200", "75", False, False)
        )
        args, kwargs = serial_mocks.relay.call_args
        assert args == (0, 1, 42)
        assert kwargs["buffer_size"] == 4096
        assert kwargs["serial_name"] == "/dev/ttyUSB0"
        assert kwargs["session_logger"] is None
        serial_mocks.relay.return_value.run.assert_called_once()
        serial_mocks.close.assert_called_once_with(42, "/dev/ttyUSB0")

    def test_relay_error(self, runner, serial_mocks):
        """Test a relay failure exits with failure status and closes the device."""
        serial_mocks.relay.return_value.run.side_effect = RelayError(
            "Failed polling session output"
        )

        result = runner.invoke(main, [])

        assert result.exit_code == 1
        assert "Failed polling session output" in result.output
        serial_mocks.close.assert_called_once_with(42, "/dev/ttyS0")

    def test_traffic_log_dir(self, runner, serial_mocks, tmp_path):
        """Test --log-dir captures traffic for the session."""
        log_dir = tmp_path / "traffic"

        result = runner.invoke(main, ["-d", "/dev/ttyS1", "--log-dir", str(log_dir)])

        assert result.exit_code == 0
        session_logger = serial_mocks.relay.call_args.kwargs["session_logger"]
        assert session_logger.session_name == "ttyS1"
        log_files = list(log_dir.glob("ttyS1_*.log"))
        assert len(log_files) == 1
        assert "# closed" in log_files[0].read_text()


class TestRunEntryPoint:
    """Tests for the console-script wrapper."""

    def test_usage_error_on_stdout(self, monkeypatch, capsys):
        """Test usage errors are reported on stdout with syntax status."""
        monkeypatch.setattr(sys, "argv", ["ssh-serial", "-b", "12"])

        with pytest.raises(SystemExit) as exc_info:
            run()

        assert exc_info.value.code == 2
        assert "12" in capsys.readouterr().out

    def test_version_exits_success(self, monkeypatch, capsys):
        """Test --version through the entry point exits 0."""
        monkeypatch.setattr(sys, "argv", ["ssh-serial", "--version"])

        with pytest.raises(SystemExit) as exc_info:
            run()

        assert exc_info.value.code == 0
        assert "Available bit-per-second values" in capsys.readouterr().out
