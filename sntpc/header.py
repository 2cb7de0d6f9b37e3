"""
Bit-level view of the first SNTP header byte.

Layout (MSB first):
- Leap Indicator: 2 bits (7-6)
- Version Number: 3 bits (5-3)
- Mode: 3 bits (2-0)
"""

from enum import IntEnum
from typing import Tuple, Union

from .errors import FormatError


class LeapIndicator(IntEnum):
    """Warning of an impending leap second."""

    NO_WARNING = 0
    LAST_MINUTE_61 = 1
    LAST_MINUTE_59 = 2
    ALARM = 3  # clock not synchronized


class Version(IntEnum):
    """Protocol version. Covers the full 3-bit range; only 3 and 4 are in use."""

    V0 = 0
    V1 = 1
    V2 = 2
    V3 = 3
    V4 = 4
    V5 = 5
    V6 = 6
    V7 = 7


class Mode(IntEnum):
    """Association mode."""

    RESERVED = 0
    SYMMETRIC_ACTIVE = 1
    SYMMETRIC_PASSIVE = 2
    CLIENT = 3
    SERVER = 4
    BROADCAST = 5
    CONTROL_MESSAGE = 6
    PRIVATE = 7


LEAP_MASK = 0b11_000_000
VERSION_MASK = 0b00_111_000
MODE_MASK = 0b00_000_111


def _check_range(name: str, value: int, bits: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise FormatError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value < (1 << bits):
        raise FormatError(f"{name} must fit in {bits} bits, got {value}")
    return value


def pack_header(
    leap: Union[LeapIndicator, int],
    version: Union[Version, int],
    mode: Union[Mode, int],
) -> int:
    """
    Pack leap indicator, version and mode into one byte.

    Args:
        leap: Leap indicator (0-3)
        version: Version number (0-7)
        mode: Association mode (0-7)

    Returns:
        Header byte value (0-255)

    Raises:
        FormatError: If a raw integer is outside its bit width
    """
    leap = _check_range("leap indicator", leap, 2)
    version = _check_range("version", version, 3)
    mode = _check_range("mode", mode, 3)
    return (leap << 6) | (version << 3) | mode


def unpack_header(value: int) -> Tuple[LeapIndicator, Version, Mode]:
    """
    Split a header byte into its three fields.

    Every bit pattern maps to a defined member, so this only fails when
    ``value`` is not a byte at all.
    """
    value = _check_range("header byte", value, 8)
    return (
        LeapIndicator((value & LEAP_MASK) >> 6),
        Version((value & VERSION_MASK) >> 3),
        Mode(value & MODE_MASK),
    )
