"""
Serial console relay.

Moves bytes between the ssh session (stdin/stdout) and the serial device
using a single poll() loop and one fixed-size buffer per direction:

    session input  -> to_serial  -> serial
    serial         -> to_session -> session output

A full buffer withdraws read interest from its producer, so memory use is
bounded and the faster side waits for the slower one. Hang-ups drain the
buffers before the relay stops; descriptor errors stop it at once.
"""

import logging
import os
import select
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sshserial.serial.buffer import ByteBuffer
from sshserial.serial.session_log import SessionLogger

logger = logging.getLogger(__name__)

POLL_READ = select.POLLIN
POLL_WRITE = select.POLLOUT
POLL_FAIL = select.POLLERR | select.POLLNVAL


class RelayError(Exception):
    """A relay descriptor failed; the session cannot continue."""


class RelayState(Enum):
    """Overall relay status."""

    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


@dataclass(eq=False)
class Endpoint:
    """One side of the relay and its per-iteration poll interest."""

    name: str
    fd: int
    read_closed: bool = False
    write_closed: bool = False
    hung_up: bool = False
    interest: Optional[int] = None
    bytes_read: int = 0
    bytes_written: int = 0


class SerialRelay:
    """
    Relay between the session descriptors and a configured serial device.

    Readiness is processed in a fixed order each iteration: session input,
    session output, serial.
    """

    def __init__(
        self,
        session_in: int,
        session_out: int,
        serial_fd: int,
        buffer_size: int = 4096,
        serial_name: str = "serial",
        session_logger: Optional[SessionLogger] = None,
    ):
        """
        Initialize the relay.

        Args:
            session_in: Descriptor carrying data from the ssh client
            session_out: Descriptor carrying data to the ssh client
            serial_fd: Open, configured serial device
            buffer_size: Capacity of each direction's buffer
            serial_name: Device name used in log and error messages
            session_logger: Optional capture of serial traffic
        """
        self.session_in = Endpoint("session input", session_in, write_closed=True)
        self.session_out = Endpoint("session output", session_out, read_closed=True)
        self.serial = Endpoint(serial_name, serial_fd)
        self.to_serial = ByteBuffer(buffer_size)
        self.to_session = ByteBuffer(buffer_size)
        self.session_logger = session_logger

        self._state = RelayState.RUNNING
        self._saved_blocking: dict[int, bool] = {}

    @property
    def endpoints(self) -> tuple[Endpoint, Endpoint, Endpoint]:
        return (self.session_in, self.session_out, self.serial)

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def finished(self) -> bool:
        """True once every read side is closed and both buffers are empty."""
        return (
            self.session_in.read_closed
            and self.serial.read_closed
            and not self.to_serial.data()
            and not self.to_session.data()
        )

    def start(self) -> None:
        """Switch the descriptors to non-blocking mode."""
        for endpoint in self.endpoints:
            if endpoint.fd not in self._saved_blocking:
                self._saved_blocking[endpoint.fd] = os.get_blocking(endpoint.fd)
                os.set_blocking(endpoint.fd, False)
        logger.info(f"Relay started on {self.serial.name}")

    def close(self) -> None:
        """Restore the descriptors' original blocking mode."""
        for fd, blocking in self._saved_blocking.items():
            try:
                os.set_blocking(fd, blocking)
            except OSError as e:
                logger.debug(f"Could not restore blocking mode on fd {fd}: {e}")
        self._saved_blocking.clear()

    def __enter__(self) -> "SerialRelay":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def run(self) -> None:
        """Relay until both directions have drained and all inputs closed."""
        with self:
            while self.step() is not RelayState.TERMINATED:
                pass

        logger.info(
            f"Relay finished: {self.serial.bytes_written} bytes to "
            f"{self.serial.name}, {self.session_out.bytes_written} bytes to session"
        )

    def step(self) -> RelayState:
        """
        Run one iteration: wait for readiness, then service each endpoint.

        Returns:
            The relay state after the iteration

        Raises:
            RelayError: A descriptor reported an error or failed an I/O call
        """
        if self._update_state() is RelayState.TERMINATED:
            return self._state

        poller = select.poll()
        masks = self._compute_interest()
        if not masks:
            raise RelayError("No descriptors left to poll")
        for fd, mask in masks.items():
            poller.register(fd, mask)

        events: dict[int, int] = {}
        for fd, revents in poller.poll():
            events[fd] = revents

        self._service_session_in(events.get(self.session_in.fd, 0))
        self._service_session_out(events.get(self.session_out.fd, 0))
        self._service_serial(events.get(self.serial.fd, 0))

        return self._update_state()

    def _update_state(self) -> RelayState:
        if self.finished:
            state = RelayState.TERMINATED
        elif self.session_in.read_closed or self.serial.read_closed:
            state = RelayState.DRAINING
        else:
            state = RelayState.RUNNING

        if state is not self._state:
            logger.debug(f"Relay {self._state.value} -> {state.value}")
            self._state = state
        return state

    def _read_interest(self, endpoint: Endpoint, buffer: ByteBuffer) -> Optional[int]:
        # None means do not poll; a hung-up source waits for room before
        # its remaining data is read
        if endpoint.read_closed:
            return None
        if not buffer.remaining():
            return None if endpoint.hung_up else 0
        return POLL_READ

    def _compute_interest(self) -> dict[int, int]:
        self.session_in.interest = self._read_interest(self.session_in, self.to_serial)

        self.session_out.interest = None
        if not self.session_out.write_closed:
            self.session_out.interest = POLL_WRITE if self.to_session.data() else 0

        serial_read = self._read_interest(self.serial, self.to_session)
        serial_write = None
        if not self.serial.write_closed:
            serial_write = POLL_WRITE if self.to_serial.data() else 0
        if serial_read is None and serial_write is None:
            self.serial.interest = None
        else:
            self.serial.interest = (serial_read or 0) | (serial_write or 0)

        # Session input and output may share one descriptor
        masks: dict[int, int] = {}
        for endpoint in self.endpoints:
            if endpoint.interest is not None:
                masks[endpoint.fd] = masks.get(endpoint.fd, 0) | endpoint.interest
        return masks

    def _check_failure(self, endpoint: Endpoint, revents: int) -> None:
        if revents & select.POLLNVAL:
            raise RelayError(f"Invalid descriptor for {endpoint.name}")
        if revents & select.POLLERR:
            raise RelayError(f"Failed polling {endpoint.name}")

    def _service_session_in(self, revents: int) -> None:
        endpoint = self.session_in
        if endpoint.interest is None or not revents:
            return
        self._check_failure(endpoint, revents)
        self._service_read(endpoint, self.to_serial, revents)

    def _service_session_out(self, revents: int) -> None:
        endpoint = self.session_out
        if endpoint.interest is None or not revents:
            return
        self._check_failure(endpoint, revents)
        if revents & select.POLLHUP:
            self._close_write(endpoint, "hung up")
            return
        if revents & POLL_WRITE and self.to_session.data():
            self._write(endpoint, self.to_session)

    def _service_serial(self, revents: int) -> None:
        endpoint = self.serial
        if endpoint.interest is None or not revents:
            return
        self._check_failure(endpoint, revents)
        if revents & select.POLLHUP:
            self._close_write(endpoint, "hung up")
        self._service_read(endpoint, self.to_session, revents)
        if revents & POLL_WRITE and not endpoint.write_closed and self.to_serial.data():
            self._write(endpoint, self.to_serial)

    def _service_read(self, endpoint: Endpoint, buffer: ByteBuffer, revents: int) -> None:
        if endpoint.read_closed:
            return
        if revents & select.POLLHUP and not revents & POLL_READ:
            if endpoint.interest & POLL_READ:
                self._close_read(endpoint, "hung up")
            else:
                # Data may still be queued behind the hang-up
                endpoint.hung_up = True
            return
        if revents & POLL_READ and buffer.remaining():
            self._read(endpoint, buffer)

    def _read(self, endpoint: Endpoint, buffer: ByteBuffer) -> None:
        region = buffer.remaining_region()
        try:
            count = os.readv(endpoint.fd, [region])
        except BlockingIOError:
            return
        except ConnectionResetError:
            count = 0
        except OSError as e:
            raise RelayError(f"Failed reading from {endpoint.name}: {e.strerror}") from e

        if count == 0:
            self._close_read(endpoint, "end of file")
            return

        if endpoint is self.serial and self.session_logger:
            self.session_logger.log_from_device(region[:count])
        buffer.committed(count)
        endpoint.bytes_read += count

    def _write(self, endpoint: Endpoint, buffer: ByteBuffer) -> None:
        data = buffer.data_region()
        try:
            count = os.write(endpoint.fd, data)
        except BlockingIOError:
            return
        except BrokenPipeError:
            self._close_write(endpoint, "peer closed")
            return
        except OSError as e:
            raise RelayError(f"Failed writing to {endpoint.name}: {e.strerror}") from e

        if endpoint is self.serial and self.session_logger:
            self.session_logger.log_to_device(data[:count])
        buffer.consumed(count)
        endpoint.bytes_written += count

    def _close_read(self, endpoint: Endpoint, reason: str) -> None:
        if endpoint.read_closed:
            return
        endpoint.read_closed = True
        endpoint.hung_up = False
        logger.info(f"{endpoint.name}: input closed ({reason})")

    def _close_write(self, endpoint: Endpoint, reason: str) -> None:
        """Stop writing to ``endpoint`` and shut down the input that feeds it."""
        if endpoint.write_closed:
            return
        endpoint.write_closed = True
        logger.info(f"{endpoint.name}: output closed ({reason})")

        if endpoint is self.serial:
            buffer, source = self.to_serial, self.session_in
        else:
            buffer, source = self.to_session, self.serial

        dropped = buffer.clear()
        if dropped:
            logger.warning(f"Discarded {dropped} bytes queued for {endpoint.name}")
        self._close_read(source, f"{endpoint.name} closed")
