"""
Traffic capture for relay sessions.

Every chunk moved to or from the serial device becomes one line holding a
timestamp, the direction, the byte count and the bytes as a Python bytes
literal, so the capture is exact for any binary data:

    12:00:01.250 >> 7 b'login: '
    12:00:02.004 << 5 b'root\\r'
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

FROM_DEVICE = ">>"
TO_DEVICE = "<<"


class SessionLogger:
    """Appends serial traffic to a per-session capture file."""

    def __init__(self, log_dir: Path, session_name: str):
        self.log_dir = log_dir
        self.session_name = session_name
        self.log_file: Optional[Path] = None
        self.bytes_from_device = 0
        self.bytes_to_device = 0
        self._file_handle = None

    @classmethod
    def for_device(cls, log_dir: Path, device: str) -> "SessionLogger":
        """Create a logger named after the device (``/dev/ttyS0`` -> ``ttyS0``)."""
        return cls(log_dir, Path(device).name or "serial")

    def start(self) -> Path:
        """Open the capture file, returns its path."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        opened = datetime.now()
        self.log_file = self.log_dir / f"{self.session_name}_{opened:%Y%m%d_%H%M%S}.log"

        self._file_handle = open(self.log_file, "a", encoding="ascii", buffering=1)
        self._file_handle.write(
            f"# ssh-serial capture of {self.session_name}, opened {opened.isoformat()}\n"
            f"# {FROM_DEVICE} read from device, {TO_DEVICE} written to device\n"
        )
        return self.log_file

    def log_from_device(self, data: bytes) -> None:
        """Record bytes read from the serial device."""
        self.bytes_from_device += self._write_line(FROM_DEVICE, data)

    def log_to_device(self, data: bytes) -> None:
        """Record bytes written to the serial device."""
        self.bytes_to_device += self._write_line(TO_DEVICE, data)

    def _write_line(self, direction: str, data: bytes) -> int:
        if not self._file_handle:
            return 0
        chunk = bytes(data)
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        self._file_handle.write(f"{timestamp} {direction} {len(chunk)} {chunk!r}\n")
        return len(chunk)

    def stop(self) -> None:
        """Write the byte totals and close the capture file."""
        if self._file_handle:
            self._file_handle.write(
                f"# closed {datetime.now().isoformat()}, "
                f"{self.bytes_from_device} bytes from device, "
                f"{self.bytes_to_device} bytes to device\n"
            )
            self._file_handle.close()
            self._file_handle = None
