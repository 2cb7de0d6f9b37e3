"""
Round-trip delay and clock offset from the four exchange timestamps.

    Timestamp Name          ID   When Generated
    ------------------------------------------------------------
    Originate Timestamp     T1   time request sent by client
    Receive Timestamp       T2   time request received by server
    Transmit Timestamp      T3   time reply sent by server
    Destination Timestamp   T4   time reply received by client

    d = (T4 - T1) - (T3 - T2)     t = ((T2 - T1) + (T3 - T4)) / 2
"""

from dataclasses import asdict, dataclass
from typing import List, Optional

from .errors import MissingTimestampError
from .header import LeapIndicator, Mode
from .packet import Packet
from .timestamp import quantize


def _require(t1, t2, t3, t4):
    for name, value in (
        ("originate", t1),
        ("receive", t2),
        ("transmit", t3),
        ("destination", t4),
    ):
        if value is None:
            raise MissingTimestampError(name)


def calculate_delay_ms(
    t1: Optional[float],
    t2: Optional[float],
    t3: Optional[float],
    t4: Optional[float],
) -> float:
    """Round-trip delay in milliseconds."""
    _require(t1, t2, t3, t4)
    return ((t4 - t1) - (t3 - t2)) * 1000


def calculate_offset_ms(
    t1: Optional[float],
    t2: Optional[float],
    t3: Optional[float],
    t4: Optional[float],
) -> float:
    """Local clock offset in milliseconds; positive means the local clock is behind."""
    _require(t1, t2, t3, t4)
    return ((t2 - t1) + (t3 - t4)) / 2 * 1000


@dataclass(frozen=True)
class Measurement:
    delay_ms: float
    offset_ms: float


def measure(response: Packet, destination: float) -> Measurement:
    """
    Compute delay and offset for a reply.

    Args:
        response: Decoded server reply (supplies T1, T2, T3)
        destination: Instant the reply was received (T4)

    Raises:
        MissingTimestampError: If any of the four timestamps is absent
    """
    t1 = response.originate_timestamp
    t2 = response.receive_timestamp
    t3 = response.transmit_timestamp
    return Measurement(
        delay_ms=calculate_delay_ms(t1, t2, t3, destination),
        offset_ms=calculate_offset_ms(t1, t2, t3, destination),
    )


@dataclass(frozen=True)
class ResponseChecks:
    """
    Advisory sanity checks on a server reply.

    None of these are enforced; a caller decides what to do with a reply
    that fails them.
    """

    originate_matches: bool
    server_mode: bool
    stratum_nonzero: bool
    transmit_present: bool
    clock_synchronized: bool
    delay_positive: Optional[bool] = None

    def failures(self) -> List[str]:
        return [
            name
            for name, passed in asdict(self).items()
            if passed is False
        ]

    @property
    def ok(self) -> bool:
        return not self.failures()


def check_response(
    request: Packet,
    response: Packet,
    delay_ms: Optional[float] = None,
) -> ResponseChecks:
    """Evaluate a reply against the request that produced it."""
    return ResponseChecks(
        originate_matches=(
            request.transmit_timestamp is not None
            and response.originate_timestamp == quantize(request.transmit_timestamp)
        ),
        server_mode=response.mode in (Mode.SERVER, Mode.BROADCAST),
        stratum_nonzero=response.stratum != 0,
        transmit_present=response.transmit_timestamp is not None,
        clock_synchronized=response.leap != LeapIndicator.ALARM,
        delay_positive=None if delay_ms is None else delay_ms > 0,
    )
