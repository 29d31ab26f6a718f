from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Final, Optional

import serial

from .framer import LineFramer
from .settings import DEFAULT_BAUDRATE, validate_baudrate
from .transport import DeviceHandle
from .zones import ZoneEvent, parse_zone

_logger = logging.getLogger(__name__)

# Upper bound for waiting on the read thread during teardown; closing the
# device afterwards releases backends that ignore cancel_read().
READ_JOIN_TIMEOUT: Final[float] = 2.0


class SessionError(Exception):
    """Base class for serial session errors."""


class ConnectError(SessionError):
    """connect() did not produce a connected session."""


class NoPortSelected(ConnectError):
    """No device was chosen."""


class OpenFailed(ConnectError):
    """The device refused to open or its decoder could not be attached."""


class AlreadyActive(ConnectError):
    """connect() was called while the session was not idle."""


class ReadError(SessionError):
    """The read cycle failed."""


class TransportFault(ReadError):
    """The device failed while reading."""


class SessionState(Enum):
    IDLE = "idle"
    OPENING = "opening"
    CONNECTED = "connected"
    CLOSING = "closing"


@dataclass(frozen=True)
class SessionConfig:
    """
    Connection parameters.
    Fields:
        port: Device path or URL; None lets the transport pick one
        baudrate: One of settings.BAUD_RATES
        encoding: Text encoding of the incoming stream
    """
    port: Optional[str] = None
    baudrate: int = DEFAULT_BAUDRATE
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        object.__setattr__(self, "baudrate", validate_baudrate(self.baudrate))


class SerialSession:
    """
    Owns one serial connection at a time and turns its text stream into
    line, zone and error callbacks.

    connect() and disconnect() are serialised; a dedicated thread runs the
    read cycle while connected. Any read fault ends the session: the error
    observer is called once and the session tears itself down to IDLE.
    """

    def __init__(
        self,
        transport,
        on_line: Optional[Callable[[str], None]] = None,
        on_zone: Optional[Callable[[ZoneEvent], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        """
        Args:
            transport: Object with request_device(port) -> DeviceHandle | None
            on_line: Called for every completed line
            on_zone: Called for every line that parses as a zone
            on_error: Called once per read fault, before teardown
        """
        self._transport = transport
        self.on_line = on_line
        self.on_zone = on_zone
        self.on_error = on_error

        self._lock = threading.Lock()  # connect/disconnect
        self._state_lock = threading.Lock()  # state transitions
        self._idle = threading.Event()
        self._idle.set()
        self._state = SessionState.IDLE

        self._handle: Optional[DeviceHandle] = None
        self._framer: Optional[LineFramer] = None
        self._reader: Optional[threading.Thread] = None
        self._encoding = "utf-8"

    def __enter__(self) -> "SerialSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def port(self) -> Optional[str]:
        handle = self._handle
        return handle.port if handle is not None else None

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        if state is SessionState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()
        _logger.debug("Session state: %s", state.value)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the session is IDLE.
        Returns:
            bool: False if the timeout expired first
        """
        return self._idle.wait(timeout)

    def connect(self, config: SessionConfig) -> None:
        """
        Open a device and start reading from it.
        Args:
            config (SessionConfig): Port, baud rate and encoding
        Raises:
            AlreadyActive: If the session is not IDLE or busy connecting/disconnecting
            NoPortSelected: If no device was chosen
            OpenFailed: If the device or its decoder could not be set up
        """
        if not self._lock.acquire(blocking=False):
            raise AlreadyActive("session is busy")
        try:
            with self._state_lock:
                if self._state is not SessionState.IDLE:
                    raise AlreadyActive(f"session is {self._state.value}")
                self._set_state(SessionState.OPENING)
            try:
                handle = self._open(config)
            except BaseException:
                with self._state_lock:
                    self._set_state(SessionState.IDLE)
                raise

            self._handle = handle
            self._encoding = config.encoding
            self._framer = LineFramer()
            self._reader = threading.Thread(
                target=self._read_cycle,
                args=(handle, self._framer),
                name=f"serial-read-{handle.port}",
                daemon=True,
            )
            with self._state_lock:
                self._set_state(SessionState.CONNECTED)
            self._reader.start()
            _logger.info("Connected to %s at %d baud", handle.port, config.baudrate)
        finally:
            self._lock.release()

    def _open(self, config: SessionConfig) -> DeviceHandle:
        handle = self._transport.request_device(config.port)
        if handle is None:
            raise NoPortSelected("no serial port selected")
        try:
            handle.open(config.baudrate)
        except (serial.SerialException, OSError, ValueError) as ex:
            raise OpenFailed(f"unable to open {handle.port}: {ex}") from ex
        try:
            handle.attach_decoder(config.encoding)
        except (LookupError, serial.SerialException, OSError, RuntimeError) as ex:
            self._close_quietly(handle)
            raise OpenFailed(f"unable to attach {config.encoding} decoder to {handle.port}: {ex}") from ex
        return handle

    def disconnect(self) -> None:
        """
        Stop reading and close the device. Safe to call in any state and more
        than once; cleanup failures are logged, never raised.
        """
        on_reader = threading.current_thread() is self._reader
        while not self._lock.acquire(timeout=0.05):
            if on_reader and self._state is SessionState.CLOSING:
                # another disconnect() is joining this thread
                return
        try:
            with self._state_lock:
                state = self._state
                if state is SessionState.CONNECTED:
                    self._set_state(SessionState.CLOSING)
            if state is SessionState.CONNECTED:
                self._teardown(join_reader=True)
                _logger.info("Disconnected")
            elif state is SessionState.CLOSING and not on_reader:
                # The read thread is tearing down after a fault.
                self._idle.wait()
        finally:
            self._lock.release()

    def write_line(self, text: str) -> int:
        """
        Send one newline-terminated line to the device.
        Returns:
            int: Number of bytes written
        Raises:
            SessionError: If the session is not connected
        """
        handle = self._handle
        if self._state is not SessionState.CONNECTED or handle is None:
            raise SessionError("session is not connected")
        return handle.write((text + "\n").encode(self._encoding))

    def _teardown(self, *, join_reader: bool) -> None:
        """Release everything owned by the current connection; state must be CLOSING."""
        handle = self._handle
        reader = self._reader

        if handle is not None:
            try:
                handle.cancel_read()
            except Exception:
                _logger.warning("Cancelling read on %s failed", handle.port, exc_info=True)

        if join_reader and reader is not None and reader is not threading.current_thread():
            reader.join(READ_JOIN_TIMEOUT)
            if reader.is_alive():
                _logger.warning("Read thread %s still running, closing device anyway", reader.name)

        if handle is not None:
            try:
                handle.close_output()
            except Exception:
                _logger.warning("Closing output on %s failed", handle.port, exc_info=True)
            self._close_quietly(handle)

        self._handle = None
        self._framer = None
        self._reader = None
        with self._state_lock:
            self._set_state(SessionState.IDLE)

    @staticmethod
    def _close_quietly(handle: DeviceHandle) -> None:
        try:
            handle.close()
        except Exception:
            _logger.warning("Closing %s failed", handle.port, exc_info=True)

    def _claim_teardown(self, handle: DeviceHandle) -> bool:
        """Move CONNECTED -> CLOSING from the read thread; False if disconnect() got there first."""
        with self._state_lock:
            if self._state is not SessionState.CONNECTED or self._handle is not handle:
                return False
            self._set_state(SessionState.CLOSING)
            return True

    def _dispatch(self, handle: DeviceHandle, line: str) -> None:
        if self._handle is not handle:
            _logger.debug("Dropping line %r from closed %s", line, handle.port)
            return
        if self.on_line is not None:
            self.on_line(line)
        event = parse_zone(line)
        if event is None:
            _logger.debug("Ignoring non-zone line %r", line)
            return
        # on_line may have ended this connection
        if self.on_zone is not None and self._handle is handle:
            self.on_zone(event)

    def _read_cycle(self, handle: DeviceHandle, framer: LineFramer) -> None:
        fault: Optional[BaseException] = None
        try:
            while True:
                try:
                    chunk = handle.read_chunk()
                except (serial.SerialException, OSError) as ex:
                    raise TransportFault(f"read from {handle.port} failed: {ex}") from ex
                if chunk is None:
                    break
                for line in framer.feed(chunk):
                    self._dispatch(handle, line)
            tail = framer.flush()
            if tail is not None:
                self._dispatch(handle, tail)
        except Exception as ex:
            fault = ex

        if not self._claim_teardown(handle):
            # disconnect() owns the teardown; a failed read here is the cancelled one
            if fault is not None:
                _logger.debug("Read cycle on %s ended during teardown: %s", handle.port, fault)
            return

        if fault is None:
            _logger.info("Stream from %s ended", handle.port)
        else:
            _logger.error("Read cycle on %s failed: %s", handle.port, fault)
            if self.on_error is not None:
                try:
                    self.on_error(fault)
                except Exception:
                    _logger.exception("Error observer raised")
        self._teardown(join_reader=False)
