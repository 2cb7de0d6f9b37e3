"""
Exceptions raised by the SNTP client.
"""


class SNTPError(Exception):
    """Base class for every error raised by sntpc."""


class FormatError(SNTPError, ValueError):
    """Packet bytes or header field values that don't fit the wire format."""


class MissingTimestampError(SNTPError):
    """Delay/offset requested from a timestamp that is absent."""

    def __init__(self, name: str):
        super().__init__(f"{name} timestamp is absent")
        self.name = name


class TransportError(SNTPError):
    """Name resolution or socket failure during an exchange."""


class ExchangeTimeout(TransportError):
    """No reply arrived from the peer before the deadline."""
