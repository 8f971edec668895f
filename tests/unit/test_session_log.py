"""Unit tests for serial traffic capture."""

import ast

from sshserial.serial.session_log import FROM_DEVICE, TO_DEVICE, SessionLogger


def captured(log_file, direction):
    """Reassemble the bytes recorded in one direction."""
    data = b""
    for line in log_file.read_text(encoding="ascii").splitlines():
        if line.startswith("#"):
            continue
        _, line_direction, count, literal = line.split(" ", 3)
        chunk = ast.literal_eval(literal)
        assert len(chunk) == int(count)
        if line_direction == direction:
            data += chunk
    return data


class TestSessionLogger:
    """Tests for SessionLogger."""

    def test_logger_start(self, tmp_path):
        """Test starting a session logger."""
        logger = SessionLogger(tmp_path, "ttyS0")
        log_file = logger.start()

        assert log_file.exists()
        assert log_file.name.startswith("ttyS0_")
        assert log_file.suffix == ".log"

        logger.stop()

    def test_for_device(self, tmp_path):
        """Test the session is named after the device file."""
        logger = SessionLogger.for_device(tmp_path, "/dev/ttyUSB1")

        assert logger.session_name == "ttyUSB1"

    def test_logger_creates_directory(self, tmp_path):
        """Test logger creates log directory if missing."""
        log_dir = tmp_path / "logs" / "nested"
        logger = SessionLogger(log_dir, "ttyS0")

        log_file = logger.start()
        assert log_dir.exists()
        assert log_file.exists()

        logger.stop()

    def test_header_and_totals(self, tmp_path):
        """Test the capture names the device and ends with byte totals."""
        logger = SessionLogger(tmp_path, "ttyS0")
        log_file = logger.start()
        logger.log_from_device(b"login: ")
        logger.log_to_device(b"root\r")
        logger.stop()

        lines = log_file.read_text().splitlines()
        assert lines[0].startswith("# ssh-serial capture of ttyS0, opened ")
        assert lines[-1].endswith("7 bytes from device, 5 bytes to device")

    def test_line_format(self, tmp_path):
        """Test each chunk is one line with direction, count and bytes."""
        logger = SessionLogger(tmp_path, "ttyS0")
        log_file = logger.start()

        logger.log_from_device(memoryview(b"login: "))
        logger.log_to_device(b"root\r")
        logger.stop()

        content = log_file.read_text()
        assert " >> 7 b'login: '\n" in content
        assert " << 5 b'root\\r'\n" in content

    def test_binary_bytes_are_kept(self, tmp_path):
        """Test bytes that are not valid UTF-8 are captured exactly."""
        logger = SessionLogger(tmp_path, "ttyS0")
        log_file = logger.start()

        logger.log_from_device(b"\xff\x00")
        logger.stop()

        assert captured(log_file, FROM_DEVICE) == b"\xff\x00"

    def test_split_multibyte_character(self, tmp_path):
        """Test a UTF-8 character split across two reads survives."""
        encoded = "é".encode("utf-8")
        logger = SessionLogger(tmp_path, "ttyS0")
        log_file = logger.start()

        logger.log_from_device(encoded[:1])
        logger.log_from_device(encoded[1:])
        logger.log_to_device(b"\x1b[A'\"\\")
        logger.stop()

        assert captured(log_file, FROM_DEVICE) == encoded
        assert captured(log_file, TO_DEVICE) == b"\x1b[A'\"\\"

    def test_log_before_start_is_ignored(self, tmp_path):
        """Test logging without a started session writes nothing."""
        logger = SessionLogger(tmp_path, "ttyS0")

        logger.log_to_device(b"x")
        logger.stop()

        assert list(tmp_path.iterdir()) == []
        assert logger.bytes_to_device == 0
