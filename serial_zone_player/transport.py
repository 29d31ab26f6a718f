from __future__ import annotations

import codecs
import logging
import platform
from typing import Callable, Dict, List, Optional, Tuple

import serial
from serial.tools import list_ports  # type: ignore

_logger = logging.getLogger(__name__)

PortChooser = Callable[[List[str]], Optional[str]]


def get_available_ports() -> List[str]:
    """Get list of available serial ports on the current platform."""
    return sorted(port_info.device for port_info in list_ports.comports())


def describe_ports() -> List[Tuple[str, str]]:
    """List (device, description) pairs for the available serial ports."""
    return sorted((p.device, p.description) for p in list_ports.comports())


# platform -> (device prefixes of serial adapters, markers of the ones listed first)
PORT_PATTERNS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    # ttyS* are usually motherboard UARTs
    "linux": (("/dev/ttyUSB", "/dev/ttyACM", "/dev/ttyS"), ("USB", "ACM")),
    "darwin": (
        ("/dev/cu.usbserial", "/dev/cu.usbmodem", "/dev/cu.SLAB_USBtoUART", "/dev/cu.wchusbserial"),
        ("usbserial", "usbmodem"),
    ),
    "windows": (("COM",), ()),
}


def _port_rank(port: str, preferred: Tuple[str, ...]) -> Tuple[int, int, str]:
    number = port[3:] if port.startswith("COM") else ""
    return (
        0 if any(marker in port for marker in preferred) else 1,
        int(number) if number.isdigit() else 0,
        port,
    )


def get_likely_ports() -> List[str]:
    """Get available ports, likely USB-serial adapters first."""
    all_ports = get_available_ports()
    patterns = PORT_PATTERNS.get(platform.system().lower())
    if patterns is None:
        return all_ports

    prefixes, preferred = patterns
    likely = sorted((p for p in all_ports if p.startswith(prefixes)), key=lambda p: _port_rank(p, preferred))
    return likely + [p for p in all_ports if p not in likely]


class DeviceHandle:
    """
    One serial device: pyserial port plus the incremental text decoder fed by it.
    Reads block without timeout; cancel_read() releases a blocked read.
    """

    _serial: Optional[serial.Serial]

    def __init__(self, port: str) -> None:
        """
        Args:
            port (str): Device path (e.g. /dev/ttyUSB0, COM3) or pyserial URL (e.g. loop://)
        """
        self.port = port
        self._serial = None
        self._decoder: Optional[codecs.IncrementalDecoder] = None
        self._eof = False
        self._output_open = False

    def __repr__(self) -> str:
        return f"DeviceHandle({self.port!r})"

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def _require_open(self) -> serial.Serial:
        if self._serial is None:
            raise serial.PortNotOpenError()
        return self._serial

    def open(self, baudrate: int) -> None:
        """
        Open the port at the given rate.
        Raises:
            serial.SerialException: If the port cannot be opened
            ValueError: If a parameter is out of range
        """
        self._serial = serial.serial_for_url(self.port, baudrate=baudrate, timeout=None, write_timeout=1.0)
        self._eof = False
        _logger.debug("Opened %s at %d baud", self.port, baudrate)

    def attach_decoder(self, encoding: str) -> None:
        """
        Attach the text decoder for incoming bytes.
        Raises:
            LookupError: If the encoding is unknown
        """
        self._require_open()
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def read_chunk(self) -> Optional[str]:
        """
        Block until bytes arrive and return them decoded.
        Returns:
            str | None: Decoded text (possibly empty while a multi-byte character
                is incomplete), or None once the stream has ended
        Raises:
            serial.SerialException: On I/O failure
        """
        if self._eof:
            return None
        ser = self._require_open()
        if self._decoder is None:
            raise RuntimeError("decoder not attached")
        data = ser.read(ser.in_waiting or 1)
        if not data:
            # read returns empty only when cancelled or the port went away
            self._eof = True
            return self._decoder.decode(b"", final=True) or None
        return self._decoder.decode(data)

    def cancel_read(self) -> None:
        """Release a read blocked in read_chunk()."""
        ser = self._serial
        if ser is None:
            return
        cancel = getattr(ser, "cancel_read", None)
        if cancel is not None:
            cancel()

    def write(self, data: bytes) -> int:
        """
        Write raw bytes to the port.
        Returns:
            int: Number of bytes written
        """
        written = self._require_open().write(data)
        self._output_open = True
        return written or 0

    def close_output(self) -> None:
        """Flush pending output if anything was written."""
        if not self._output_open:
            return
        self._output_open = False
        if self._serial is not None:
            self._serial.flush()

    def close(self) -> None:
        """Close the port."""
        ser, self._serial = self._serial, None
        self._decoder = None
        if ser is not None:
            ser.close()


class SerialTransport:
    """
    Provides device handles, either for an explicit port or by picking among
    the discovered ones.
    """

    def __init__(self, chooser: Optional[PortChooser] = None) -> None:
        """
        Args:
            chooser: Called with the likely ports when no port is given; returns
                the chosen one or None to decline. Without a chooser the first
                likely port is used.
        """
        self._chooser = chooser

    def request_device(self, port: Optional[str] = None) -> Optional[DeviceHandle]:
        if not port:
            ports = get_likely_ports()
            _logger.debug("Available ports: %s", ports)
            if self._chooser is not None:
                port = self._chooser(ports)
            elif ports:
                port = ports[0]
        if not port:
            return None
        return DeviceHandle(port)
