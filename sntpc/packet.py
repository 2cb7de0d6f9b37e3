"""
SNTP packet structure and serialization (RFC 4330 section 4).
"""

import ipaddress
import struct
import time
from dataclasses import dataclass
from typing import Optional

from . import PACKET_SIZE
from .errors import FormatError
from .header import LeapIndicator, Mode, Version, pack_header, unpack_header
from .timestamp import format_instant, from_fixed16, pack_timestamp, unpack_timestamp

# header byte, stratum, poll, precision (signed), root delay, root dispersion,
# reference id, then reference/originate/receive/transmit timestamps
PACKET_FORMAT = ">BBBbIII8s8s8s8s"

_INT_FIELDS = (
    ("stratum", 0, 0xFF),
    ("poll", 0, 0xFF),
    ("precision", -0x80, 0x7F),
    ("root_delay", 0, 0xFFFFFFFF),
    ("root_dispersion", 0, 0xFFFFFFFF),
    ("reference_id", 0, 0xFFFFFFFF),
)

_TIMESTAMP_FIELDS = (
    "reference_timestamp",
    "originate_timestamp",
    "receive_timestamp",
    "transmit_timestamp",
)


@dataclass(frozen=True)
class Packet:
    """
    A single SNTP packet.

    Packet structure (big-endian, 48 bytes):
    - LI | VN | Mode: 8 bits (2 | 3 | 3)
    - Stratum: 8 bits - 0 kiss-of-death, 1 primary, 2+ secondary
    - Poll: 8 bits - log2 seconds between polls
    - Precision: 8 bits signed - log2 seconds clock resolution
    - Root Delay: 32 bits - 16.16 fixed point seconds
    - Root Dispersion: 32 bits - 16.16 fixed point seconds
    - Reference Identifier: 32 bits
    - Reference, Originate, Receive, Transmit Timestamps: 64 bits each

    Timestamps are Unix instants (float seconds), or None when the field
    carries the all-zero absent sentinel.
    """

    leap: LeapIndicator = LeapIndicator.NO_WARNING
    version: Version = Version.V4
    mode: Mode = Mode.CLIENT
    stratum: int = 0
    poll: int = 0
    precision: int = 0
    root_delay: int = 0
    root_dispersion: int = 0
    reference_id: int = 0
    reference_timestamp: Optional[float] = None
    originate_timestamp: Optional[float] = None
    receive_timestamp: Optional[float] = None
    transmit_timestamp: Optional[float] = None

    def __post_init__(self):
        leap, version, mode = unpack_header(pack_header(self.leap, self.version, self.mode))
        object.__setattr__(self, "leap", leap)
        object.__setattr__(self, "version", version)
        object.__setattr__(self, "mode", mode)

        for name, low, high in _INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise FormatError(f"{name} must be an integer, got {value!r}")
            if not low <= value <= high:
                raise FormatError(f"{name} must be in {low}..{high}, got {value}")

        for name in _TIMESTAMP_FIELDS:
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                raise FormatError(f"{name} must be a Unix instant or None, got {value!r}")

    @classmethod
    def request(
        cls,
        transmit_timestamp: Optional[float] = None,
        version: Version = Version.V4,
    ) -> "Packet":
        """
        Build a client request.

        Only the header and the transmit timestamp are filled in; every other
        field is zero or absent.

        Args:
            transmit_timestamp: Send instant (default: now)
            version: Protocol version to advertise
        """
        if transmit_timestamp is None:
            transmit_timestamp = time.time()
        return cls(
            leap=LeapIndicator.NO_WARNING,
            version=version,
            mode=Mode.CLIENT,
            transmit_timestamp=transmit_timestamp,
        )

    @property
    def header_byte(self) -> int:
        return pack_header(self.leap, self.version, self.mode)

    def encode(self) -> bytes:
        """
        Encode packet to bytes.

        Returns:
            48 bytes in network byte order
        """
        return struct.pack(
            PACKET_FORMAT,
            self.header_byte,
            self.stratum,
            self.poll,
            self.precision,
            self.root_delay,
            self.root_dispersion,
            self.reference_id,
            pack_timestamp(self.reference_timestamp),
            pack_timestamp(self.originate_timestamp),
            pack_timestamp(self.receive_timestamp),
            pack_timestamp(self.transmit_timestamp),
        )

    @classmethod
    def decode(cls, data: bytes) -> "Packet":
        """
        Decode packet from bytes.

        Anything past the first 48 bytes (extension fields, MAC) is ignored.

        Raises:
            FormatError: If fewer than 48 bytes are supplied
        """
        if len(data) < PACKET_SIZE:
            raise FormatError(f"Packet must be at least {PACKET_SIZE} bytes, got {len(data)}")

        (
            first_byte,
            stratum,
            poll,
            precision,
            root_delay,
            root_dispersion,
            reference_id,
            reference,
            originate,
            receive,
            transmit,
        ) = struct.unpack(PACKET_FORMAT, bytes(data[:PACKET_SIZE]))

        leap, version, mode = unpack_header(first_byte)

        return cls(
            leap=leap,
            version=version,
            mode=mode,
            stratum=stratum,
            poll=poll,
            precision=precision,
            root_delay=root_delay,
            root_dispersion=root_dispersion,
            reference_id=reference_id,
            reference_timestamp=unpack_timestamp(reference),
            originate_timestamp=unpack_timestamp(originate),
            receive_timestamp=unpack_timestamp(receive),
            transmit_timestamp=unpack_timestamp(transmit),
        )

    @property
    def root_delay_seconds(self) -> float:
        return from_fixed16(self.root_delay)

    @property
    def root_dispersion_seconds(self) -> float:
        return from_fixed16(self.root_dispersion)

    @property
    def is_kiss_of_death(self) -> bool:
        return self.stratum == 0

    @property
    def kiss_code(self) -> Optional[str]:
        """Four-character ASCII code carried by a kiss-of-death reply."""
        if not self.is_kiss_of_death:
            return None
        return self._reference_id_ascii()

    def _reference_id_ascii(self) -> str:
        raw = self.reference_id.to_bytes(4, "big")
        return raw.decode("ascii", errors="replace").rstrip("\x00")

    def reference_id_text(self) -> str:
        """
        Reference identifier in readable form.

        Stratum 0 and 1 carry four ASCII characters (kiss code or clock source
        such as "GPS"). Higher strata carry the IPv4 address of the upstream
        server.
        """
        if self.stratum <= 1:
            return self._reference_id_ascii()
        return str(ipaddress.IPv4Address(self.reference_id))

    def describe(self) -> str:
        """Multi-line dump of every field."""
        lines = [
            f"leap indicator:      {self.leap.name} ({self.leap.value})",
            f"version:             {self.version.value}",
            f"mode:                {self.mode.name} ({self.mode.value})",
            f"stratum:             {self.stratum}",
            f"poll:                {self.poll} (2^{self.poll} s)",
            f"precision:           {self.precision} ({2.0 ** self.precision:e} s)",
            f"root delay:          {self.root_delay_seconds:.6f} s",
            f"root dispersion:     {self.root_dispersion_seconds:.6f} s",
            f"reference id:        {self.reference_id_text()!r} (0x{self.reference_id:08x})",
            f"reference timestamp: {format_instant(self.reference_timestamp)}",
            f"originate timestamp: {format_instant(self.originate_timestamp)}",
            f"receive timestamp:   {format_instant(self.receive_timestamp)}",
            f"transmit timestamp:  {format_instant(self.transmit_timestamp)}",
        ]
        return "\n".join(lines)
