"""
Serial device access for ssh-serial.

Handles serial line configuration, the session/serial relay loop
and optional traffic capture.
"""

from sshserial.serial.buffer import ByteBuffer
from sshserial.serial.line import (
    SPEEDS,
    LineSettings,
    SerialLineError,
    configure_line,
    open_serial,
    parse_speed,
)
from sshserial.serial.relay import RelayError, RelayState, SerialRelay
from sshserial.serial.session_log import SessionLogger

__all__ = [
    "ByteBuffer",
    "LineSettings",
    "SerialLineError",
    "SPEEDS",
    "configure_line",
    "open_serial",
    "parse_speed",
    "RelayError",
    "RelayState",
    "SerialRelay",
    "SessionLogger",
]
