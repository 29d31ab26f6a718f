"""Serial Zone Player package.

Reads newline-delimited zone numbers from a serial device using pyserial and
switches the displayed video accordingly.
"""

__all__ = [
    "AlreadyActive",
    "ConnectError",
    "LineFramer",
    "NoPortSelected",
    "OpenFailed",
    "ReadError",
    "SerialSession",
    "SerialTransport",
    "SessionConfig",
    "SessionState",
    "TransportFault",
    "ZoneEvent",
    "ZonePlayer",
    "parse_zone",
]

from .framer import LineFramer
from .player import ZonePlayer
from .session import (
    AlreadyActive,
    ConnectError,
    NoPortSelected,
    OpenFailed,
    ReadError,
    SerialSession,
    SessionConfig,
    SessionState,
    TransportFault,
)
from .transport import SerialTransport
from .zones import ZoneEvent, parse_zone

__version__ = "0.1.0"
