"""
Serial line setup.

Opens the serial device and puts it into raw mode with the requested
bit-rates, carrier-detect and flow-control policy. Linux specific.
"""

import logging
import os
import termios
from dataclasses import dataclass

from sshserial.core.config import ConfigError

logger = logging.getLogger(__name__)


# Bit-rate tokens accepted on the command line, in display order
SPEEDS: dict[str, int] = {
    "50": termios.B50,
    "75": termios.B75,
    "110": termios.B110,
    "134": termios.B134,  # Actually 134.5bps
    "134.5": termios.B134,
    "150": termios.B150,
    "200": termios.B200,
    "300": termios.B300,
    "600": termios.B600,
    "1200": termios.B1200,
    "1800": termios.B1800,
    "2400": termios.B2400,
    "4800": termios.B4800,
    "9600": termios.B9600,
    "19200": termios.B19200,
    "38400": termios.B38400,
    "57600": termios.B57600,
    "115200": termios.B115200,
    "230400": termios.B230400,
}

# termios.tcgetattr() list indexes
IFLAG, OFLAG, CFLAG, LFLAG, ISPEED, OSPEED = range(6)


class SerialLineError(Exception):
    """Opening or configuring the serial device failed."""

    def __init__(self, message: str, device: str, cause: Exception | None = None):
        if cause is not None:
            message = f"{message}: {_error_text(cause)}"
        super().__init__(message)
        self.device = device
        self.cause = cause


def _error_text(error: Exception) -> str:
    if isinstance(error, OSError) and error.strerror:
        return error.strerror
    if isinstance(error, termios.error) and len(error.args) > 1:
        return str(error.args[1])
    return str(error)


def parse_speed(text: str) -> int:
    """Translate a bit-rate token into its termios constant."""
    try:
        return SPEEDS[text]
    except KeyError:
        raise ConfigError(f'Parameter "{text}" is not an available RS-232 speed.')


@dataclass(frozen=True)
class LineSettings:
    """Validated serial line configuration, built once before the relay starts."""

    device: str
    input_speed: str
    output_speed: str
    data_carrier_detect: bool = True
    hardware_handshaking: bool = True

    def __post_init__(self):
        parse_speed(self.input_speed)
        parse_speed(self.output_speed)

    @property
    def input_baud(self) -> int:
        return parse_speed(self.input_speed)

    @property
    def output_baud(self) -> int:
        return parse_speed(self.output_speed)


def configure_line(fd: int, settings: LineSettings) -> None:
    """
    Apply raw mode and the line policy in ``settings`` to an open tty.

    Raises:
        SerialLineError: Reading or writing the terminal attributes failed
    """
    try:
        attrs = termios.tcgetattr(fd)
    except termios.error as e:
        raise SerialLineError(
            f"Failed getting attributes from serial port {settings.device}",
            settings.device, e,
        )

    # Raw mode, see termios(3)
    attrs[IFLAG] &= ~(termios.IGNBRK | termios.BRKINT | termios.PARMRK |
                      termios.ISTRIP | termios.INLCR | termios.IGNCR |
                      termios.ICRNL | termios.IXON)
    attrs[OFLAG] &= ~termios.OPOST
    attrs[LFLAG] &= ~(termios.ECHO | termios.ECHONL | termios.ICANON |
                      termios.ISIG | termios.IEXTEN)
    attrs[CFLAG] &= ~(termios.CSIZE | termios.PARENB)
    attrs[CFLAG] |= termios.CS8

    attrs[ISPEED] = settings.input_baud
    attrs[OSPEED] = settings.output_baud

    # CLOCAL means ignore modem control lines
    attrs[CFLAG] &= ~termios.CLOCAL
    if not settings.data_carrier_detect:
        attrs[CFLAG] |= termios.CLOCAL

    attrs[CFLAG] &= ~termios.CRTSCTS
    if settings.hardware_handshaking:
        attrs[CFLAG] |= termios.CRTSCTS

    # Drop DTR on last close
    attrs[CFLAG] |= termios.HUPCL

    try:
        termios.tcsetattr(fd, termios.TCSANOW, attrs)
    except termios.error as e:
        raise SerialLineError(
            f"Failed to establish settings for serial port {settings.device}",
            settings.device, e,
        )

    logger.debug(
        f"Configured {settings.device}: {settings.input_speed}/"
        f"{settings.output_speed} bps, dcd={int(settings.data_carrier_detect)}, "
        f"ctsrts={int(settings.hardware_handshaking)}"
    )


def open_serial(settings: LineSettings) -> int:
    """
    Open and configure the serial device.

    The device is opened without becoming the controlling terminal. When
    carrier detect is obeyed the open waits for DCD.

    Returns:
        File descriptor of the configured device

    Raises:
        SerialLineError: The device could not be opened or configured
    """
    logger.info(f"Opening serial device {settings.device}")
    try:
        fd = os.open(settings.device, os.O_RDWR | os.O_NOCTTY)
    except OSError as e:
        raise SerialLineError(
            f"Failed opening serial device {settings.device}", settings.device, e
        )

    try:
        configure_line(fd, settings)
    except SerialLineError:
        os.close(fd)
        raise

    return fd


def close_serial(fd: int, device: str) -> None:
    """Close the serial device, dropping the line."""
    try:
        os.close(fd)
    except OSError as e:
        raise SerialLineError(f"Failed closing serial device {device}", device, e)
    logger.info(f"Closed serial device {device}")
