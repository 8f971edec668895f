"""
Command-line interface for ssh-serial.

Run as an sshd subsystem, e.g. in sshd_config:

    Subsystem serial /usr/local/bin/ssh-serial --device /dev/ttyS0

The session's stdin/stdout are relayed to the serial device until both
directions have drained.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click

from sshserial import __version__
from sshserial.core.config import Config, ConfigError, load_config, parse_bool
from sshserial.serial.line import (
    SPEEDS,
    LineSettings,
    SerialLineError,
    close_serial,
    open_serial,
    parse_speed,
)
from sshserial.serial.relay import RelayError, SerialRelay
from sshserial.serial.session_log import SessionLogger

logger = logging.getLogger(__name__)

PROGRAM_NAME = "ssh-serial"
EXIT_SUCCESS = 0
EXIT_FAIL = 1
EXIT_SYNTAX = 2

# Session descriptors wired up by sshd
STDIN_FILENO = 0
STDOUT_FILENO = 1

VERSION_TEXT = f"""\
{PROGRAM_NAME}:
   A subsystem for ssh servers to allow incoming ssh connections to attach to
 a serial device on the server. That serial port might in turn connect to the
 serial console of another machine, turning the ssh server into a simple console
 server.

   {PROGRAM_NAME} is free software, distributed under the terms of version 2 of
 the GNU General Public License, WITHOUT ANY WARRANTY; without even the implied
 warranty of MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.
"""


class SpeedType(click.ParamType):
    """An RS-232 bit-rate token from the speed table."""

    name = "BPS"

    def convert(self, value: Any, param, ctx) -> str:
        try:
            parse_speed(value)
        except ConfigError as e:
            self.fail(str(e), param, ctx)
        return value


class FlagType(click.ParamType):
    """A 0/1 (or n/y) option value."""

    name = "{0|1}"

    def convert(self, value: Any, param, ctx) -> bool:
        try:
            return parse_bool(value)
        except ConfigError as e:
            self.fail(str(e), param, ctx)


SPEED = SpeedType()
FLAG = FlagType()


def _fail(exit_code: int, message: str) -> None:
    """Report a failure and exit.

    An ssh subsystem's stderr does not reach the client, so the message
    goes to stdout as well as the log.
    """
    logger.error(message)
    click.echo(f"{PROGRAM_NAME}: {message}")
    sys.exit(exit_code)


def resolve_settings(
    config: Config,
    device: Optional[str] = None,
    speed: Optional[str] = None,
    input_speed: Optional[str] = None,
    output_speed: Optional[str] = None,
    dcd: Optional[bool] = None,
    ctsrts: Optional[bool] = None,
) -> LineSettings:
    """
    Merge command-line options over configured defaults.

    ``speed`` sets both directions; ``input_speed`` and ``output_speed``
    take precedence over it.

    Raises:
        ConfigError: A resulting speed is not in the speed table
    """
    serial = config.serial
    return LineSettings(
        device=device or serial.device,
        input_speed=input_speed or speed or serial.input_speed,
        output_speed=output_speed or speed or serial.output_speed,
        data_carrier_detect=serial.data_carrier_detect if dcd is None else dcd,
        hardware_handshaking=serial.hardware_handshaking if ctsrts is None else ctsrts,
    )


def format_version(settings: LineSettings) -> str:
    """Version banner followed by the effective options and speed table."""
    lines = [
        VERSION_TEXT,
        f"{PROGRAM_NAME} release {__version__}",
        "",
        "Command line options and their values:",
        f"  --device {settings.device}",
        f"  --bits-per-second-input {settings.input_speed} "
        f"(speed_t {settings.input_baud})",
        f"  --bits-per-second-output {settings.output_speed} "
        f"(speed_t {settings.output_baud})",
        f"  --data-carrier-detect {int(settings.data_carrier_detect)}",
        f"  --hardware-handshaking {int(settings.hardware_handshaking)}",
        f"Available bit-per-second values: {', '.join(SPEEDS)}.",
    ]
    return "\n".join(lines)


def _setup_logging(level: str, log_file: Optional[Path]) -> None:
    """Configure the root logger, to a file when given, otherwise stderr."""
    target: dict[str, Any] = {"stream": sys.stderr}
    if log_file:
        target = {"filename": str(log_file)}
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s[%(process)d] %(levelname)s: %(message)s",
        **target,
    )


@click.command(context_settings={"help_option_names": ["--help"]})
@click.option(
    "-b", "--bits-per-second", "speed", type=SPEED,
    help="Speed of input and output data through the RS-232 interface (default: 9600)",
)
@click.option(
    "-i", "--bits-per-second-input", "input_speed", type=SPEED,
    help="Speed of input data through the RS-232 interface",
)
@click.option(
    "-j", "--bits-per-second-output", "output_speed", type=SPEED,
    help="Speed of output data through the RS-232 interface",
)
@click.option(
    "-c", "--data-carrier-detect", "dcd", type=FLAG,
    help="1: obey Data Carrier Detect, 0: ignore it (default: 1)",
)
@click.option("-d", "--device", help="Serial device file (default: /dev/ttyS0)")
@click.option(
    "-h", "--hardware-handshaking", "ctsrts", type=FLAG,
    help="1: use CTS/RTS hardware handshaking, 0: none (default: 1)",
)
@click.option(
    "--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to config file",
)
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path),
              help="Write diagnostics to this file instead of stderr")
@click.option("--log-dir", type=click.Path(file_okay=False, path_type=Path),
              help="Capture serial traffic into this directory")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "-V", "--version", "show_version", is_flag=True,
    help="Show version, option values and available speeds, then exit",
)
def main(
    speed: Optional[str],
    input_speed: Optional[str],
    output_speed: Optional[str],
    dcd: Optional[bool],
    device: Optional[str],
    ctsrts: Optional[bool],
    config_path: Optional[Path],
    log_file: Optional[Path],
    log_dir: Optional[Path],
    verbose: bool,
    show_version: bool,
) -> None:
    """Attach an ssh session to a serial device."""
    try:
        config = load_config(config_path)
        settings = resolve_settings(
            config,
            device=device,
            speed=speed,
            input_speed=input_speed,
            output_speed=output_speed,
            dcd=dcd,
            ctsrts=ctsrts,
        )
    except ConfigError as e:
        _fail(EXIT_SYNTAX, str(e))

    if show_version:
        click.echo(format_version(settings))
        return

    _setup_logging("DEBUG" if verbose else config.log_level, log_file or config.log_file)

    try:
        serial_fd = open_serial(settings)
    except SerialLineError as e:
        _fail(EXIT_FAIL, str(e))

    session_logger = None
    log_dir = log_dir or config.relay.log_dir
    if log_dir:
        session_logger = SessionLogger.for_device(log_dir, settings.device)
        logger.info(f"Session logging to {session_logger.start()}")

    relay = SerialRelay(
        STDIN_FILENO,
        STDOUT_FILENO,
        serial_fd,
        buffer_size=config.relay.buffer_size,
        serial_name=settings.device,
        session_logger=session_logger,
    )
    try:
        relay.run()
    except RelayError as e:
        _fail(EXIT_FAIL, str(e))
    finally:
        if session_logger:
            session_logger.stop()
        try:
            close_serial(serial_fd, settings.device)
        except SerialLineError as e:
            _fail(EXIT_FAIL, str(e))


def run() -> None:
    """Console-script entry point; reports usage errors on stdout."""
    try:
        code = main.main(prog_name=PROGRAM_NAME, standalone_mode=False)
    except click.ClickException as e:
        e.show(file=sys.stdout)
        sys.exit(EXIT_SYNTAX if isinstance(e, click.UsageError) else EXIT_FAIL)
    except click.Abort:
        sys.exit(EXIT_FAIL)
    sys.exit(code or EXIT_SUCCESS)


if __name__ == "__main__":
    run()
