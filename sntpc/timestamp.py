"""
Conversion between Unix instants and SNTP fixed-point timestamps.

Instants are float seconds since the Unix epoch, as returned by time.time().
On the wire a timestamp is 64 bits: 32 bits of seconds since the protocol
epoch (1900-01-01 UTC) followed by 32 bits of binary fraction.

The seconds field wraps every 2**32 s (~136 years, next in 2036). Values are
reduced modulo 2**32 when encoding and read back without era correction.
"""

import math
import struct
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple

from .errors import FormatError

# Seconds between 1900-01-01 (protocol epoch) and 1970-01-01 (Unix epoch)
NTP_EPOCH_OFFSET = 2208988800

FRACTION_SCALE = 1 << 32  # 32.32 fixed point
SHORT_SCALE = 1 << 16  # 16.16 fixed point

ABSENT = b"\x00" * 8

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_wire(instant: float) -> Tuple[int, int]:
    """
    Convert a Unix instant to (seconds, fraction).

    The fraction is truncated, not rounded.
    """
    unix_seconds = math.floor(instant)
    fraction = math.floor((instant - unix_seconds) * FRACTION_SCALE)
    # tiny negative instants can round the fraction up to a whole second
    if fraction >= FRACTION_SCALE:
        unix_seconds += 1
        fraction = 0
    seconds = (unix_seconds + NTP_EPOCH_OFFSET) & 0xFFFFFFFF
    return seconds, fraction


def from_wire(seconds: int, fraction: int) -> float:
    """Convert (seconds, fraction) to a Unix instant. Negative before 1970."""
    unix_seconds = float(seconds) - NTP_EPOCH_OFFSET
    return unix_seconds + fraction / FRACTION_SCALE


def pack_timestamp(instant: Optional[float]) -> bytes:
    """Encode to 8 bytes; None becomes the all-zero absent sentinel."""
    if instant is None:
        return ABSENT
    return struct.pack(">II", *to_wire(instant))


def unpack_timestamp(data: bytes) -> Optional[float]:
    """
    Decode 8 bytes to an instant.

    All zeros is read as absent (None). The literal protocol-epoch instant
    shares that bit pattern and can't be told apart from it.
    """
    if len(data) != 8:
        raise FormatError(f"Timestamp must be 8 bytes, got {len(data)}")
    if data == ABSENT:
        return None
    return from_wire(*struct.unpack(">II", data))


def to_fixed16(seconds: float) -> int:
    """Seconds to unsigned 16.16 fixed point (root delay/dispersion)."""
    raw = math.floor(seconds * SHORT_SCALE)
    if not 0 <= raw <= 0xFFFFFFFF:
        raise FormatError(f"{seconds} s does not fit in 16.16 fixed point")
    return raw


def from_fixed16(raw: int) -> float:
    """Unsigned 16.16 fixed point to seconds."""
    return raw / SHORT_SCALE


def format_instant(instant: Optional[float], tz: Optional[tzinfo] = None) -> str:
    """Format as ISO-8601 with microseconds; local time zone by default."""
    if instant is None:
        return "(absent)"
    moment = UNIX_EPOCH + timedelta(seconds=instant)
    moment = moment.astimezone(tz) if tz is not None else moment.astimezone()
    return moment.isoformat(timespec="microseconds")


def quantize(instant: float) -> float:
    """The instant as a peer reads it back after one trip through the wire format."""
    return from_wire(*to_wire(instant))
