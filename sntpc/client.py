"""
SNTP client - one request/response exchange over UDP.
"""

import asyncio
import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from . import DEFAULT_TIMEOUT, NTP_PORT
from .errors import ExchangeTimeout, MissingTimestampError, TransportError
from .header import Version
from .offset import Measurement, ResponseChecks, check_response, measure
from .packet import Packet

# Module-level logger
_logger = logging.getLogger(__name__)


async def resolve_peer(host: str, port: int = NTP_PORT) -> Tuple[Any, ...]:
    """
    Resolve a server name to a UDP socket address.

    Returns:
        Socket address tuple of the first result, (host, port) for IPv4

    Raises:
        TransportError: If the name can't be resolved
    """
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as e:
        # UnicodeError: malformed name rejected by the IDNA codec
        raise TransportError(f"Could not resolve {host}:{port}: {e}") from e
    if not infos:
        raise TransportError(f"No addresses found for {host}:{port}")

    sockaddr = infos[0][4]
    _logger.debug(f"Resolved {host}:{port} -> {sockaddr}")
    return sockaddr


class UDPTransport(asyncio.DatagramProtocol):
    """
    Datagram endpoint connected to a single peer.

    Delivers exactly one reply; anything that arrives after it, or from a
    different address, is dropped.
    """

    def __init__(self, peer: Tuple[Any, ...]):
        """
        Initialize transport. Use open() to get a connected instance.

        Args:
            peer: Resolved socket address of the server
        """
        self.peer = peer
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._reply: Optional[asyncio.Future] = None

    @classmethod
    async def open(cls, peer: Tuple[Any, ...]) -> "UDPTransport":
        """Create the socket and connect it to ``peer``."""
        loop = asyncio.get_running_loop()
        protocol = cls(peer)
        family = socket.AF_INET6 if len(peer) == 4 else socket.AF_INET
        try:
            await loop.create_datagram_endpoint(
                lambda: protocol,
                remote_addr=peer,
                family=family,
            )
        except OSError as e:
            raise TransportError(f"Could not open socket to {peer[0]}:{peer[1]}: {e}") from e
        return protocol

    def connection_made(self, transport):
        self._transport = transport
        self._reply = asyncio.get_running_loop().create_future()

    def datagram_received(self, data: bytes, addr):
        if tuple(addr[:2]) != tuple(self.peer[:2]):
            _logger.debug(f"Dropping datagram from unexpected address {addr}")
            return
        if self._reply is None or self._reply.done():
            _logger.debug(f"Dropping extra datagram ({len(data)} bytes) from {addr}")
            return
        self._reply.set_result(data)

    def error_received(self, exc):
        _logger.debug(f"Socket error: {exc}")
        if self._reply is not None and not self._reply.done():
            self._reply.set_exception(TransportError(f"Socket error: {exc}"))

    def connection_lost(self, exc):
        if self._reply is not None and not self._reply.done():
            self._reply.set_exception(TransportError("Socket closed before a reply arrived"))

    def send(self, data: bytes):
        """Send one datagram to the peer."""
        if self._transport is None or self._transport.is_closing():
            raise TransportError("Transport is not open")
        self._transport.sendto(data)

    async def receive(self) -> bytes:
        """Wait for the single reply datagram. No deadline; wrap in wait_for."""
        if self._reply is None:
            raise TransportError("Transport is not open")
        return await self._reply

    def close(self):
        if self._reply is not None and not self._reply.done():
            self._reply.cancel()
        if self._transport is not None:
            self._transport.close()


@dataclass(frozen=True)
class ExchangeResult:
    peer: Any
    request: Packet
    response: Packet
    destination: float
    measurement: Measurement
    checks: ResponseChecks

    @property
    def delay_ms(self) -> float:
        return self.measurement.delay_ms

    @property
    def offset_ms(self) -> float:
        return self.measurement.offset_ms


def _log_failed_checks(checks: ResponseChecks):
    for name in checks.failures():
        _logger.warning(f"Reply failed sanity check: {name}")


async def exchange(
    transport,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    clock: Callable[[], float] = time.time,
    version: Version = Version.V4,
) -> ExchangeResult:
    """
    Run one request/response exchange over an open transport.

    Args:
        transport: Object with send(bytes) and awaitable receive() -> bytes
        timeout: Seconds to wait for the reply (None waits forever)
        clock: Source of Unix instants for the transmit and destination timestamps
        version: Protocol version for the request

    Raises:
        ExchangeTimeout: If no reply arrives before the deadline
        TransportError: On socket failure
        FormatError: If the reply is shorter than a packet
        MissingTimestampError: If the reply lacks a timestamp needed for the offset
    """
    peer = getattr(transport, "peer", None)

    request = Packet.request(transmit_timestamp=clock(), version=version)
    _logger.debug(f"Sending request to {peer}\n{request.describe()}")
    transport.send(request.encode())

    try:
        data = await asyncio.wait_for(transport.receive(), timeout)
    except asyncio.TimeoutError:
        raise ExchangeTimeout(f"No reply from {peer} within {timeout} s") from None
    destination = clock()

    response = Packet.decode(data)
    _logger.debug(f"Received {len(data)} bytes from {peer}\n{response.describe()}")

    try:
        measurement = measure(response, destination)
    except MissingTimestampError:
        _log_failed_checks(check_response(request, response))
        raise

    checks = check_response(request, response, measurement.delay_ms)
    _log_failed_checks(checks)
    _logger.info(
        f"{peer}: delay {measurement.delay_ms:.3f} ms, offset {measurement.offset_ms:.3f} ms"
    )

    return ExchangeResult(
        peer=peer,
        request=request,
        response=response,
        destination=destination,
        measurement=measurement,
        checks=checks,
    )


async def query(
    host: str,
    port: int = NTP_PORT,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    version: Version = Version.V4,
    clock: Callable[[], float] = time.time,
) -> ExchangeResult:
    """Resolve ``host``, run one exchange with it and close the socket."""
    peer = await resolve_peer(host, port)
    transport = await UDPTransport.open(peer)
    try:
        return await exchange(transport, timeout=timeout, clock=clock, version=version)
    finally:
        transport.close()


def query_sync(
    host: str,
    port: int = NTP_PORT,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    version: Version = Version.V4,
) -> ExchangeResult:
    """Blocking wrapper around query()."""
    return asyncio.run(query(host, port=port, timeout=timeout, version=version))
