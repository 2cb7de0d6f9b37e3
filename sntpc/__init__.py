"""
SNTPC - Simple Network Time Protocol client
Single request/response SNTP exchange (RFC 4330) with delay and offset.
"""

__version__ = "0.1.0"

# Protocol constants
NTP_PORT = 123  # UDP
PACKET_SIZE = 48  # bytes, without extension fields

# Client defaults
DEFAULT_SERVER = "pool.ntp.org"
DEFAULT_TIMEOUT = 5.0  # seconds to wait for the reply
DEFAULT_VERSION = 4

from .errors import (
    SNTPError,
    FormatError,
    MissingTimestampError,
    TransportError,
    ExchangeTimeout,
)
from .header import LeapIndicator, Version, Mode, pack_header, unpack_header
from .timestamp import NTP_EPOCH_OFFSET, to_wire, from_wire
from .packet import Packet
from .offset import (
    Measurement,
    ResponseChecks,
    calculate_delay_ms,
    calculate_offset_ms,
    check_response,
    measure,
)
from .client import ExchangeResult, UDPTransport, exchange, query, query_sync, resolve_peer

__all__ = [
    "SNTPError",
    "FormatError",
    "MissingTimestampError",
    "TransportError",
    "ExchangeTimeout",
    "LeapIndicator",
    "Version",
    "Mode",
    "pack_header",
    "unpack_header",
    "NTP_EPOCH_OFFSET",
    "to_wire",
    "from_wire",
    "Packet",
    "Measurement",
    "ResponseChecks",
    "calculate_delay_ms",
    "calculate_offset_ms",
    "check_response",
    "measure",
    "ExchangeResult",
    "UDPTransport",
    "exchange",
    "query",
    "query_sync",
    "resolve_peer",
]
