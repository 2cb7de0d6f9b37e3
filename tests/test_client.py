"""
Tests for the UDP exchange.
"""

import asyncio
import socket
import time

import pytest

from sntpc import (
    ExchangeTimeout,
    FormatError,
    MissingTimestampError,
    Mode,
    Packet,
    TransportError,
    Version,
    exchange,
    query,
    resolve_peer,
)
from sntpc.client import UDPTransport


def make_clock(*instants):
    values = iter(instants)
    return lambda: next(values)


def server_bytes(request_data: bytes, receive: float, transmit: float, **overrides) -> bytes:
    """Reply to a request, echoing its transmit field into originate."""
    fields = dict(
        version=Version.V4,
        mode=Mode.SERVER,
        stratum=1,
        reference_id=int.from_bytes(b"GPS\x00", "big"),
        receive_timestamp=receive,
        transmit_timestamp=transmit,
    )
    fields.update(overrides)
    reply = Packet(**fields).encode()
    return reply[:24] + request_data[40:48] + reply[32:]


class FakeTransport:
    """In-memory transport answering with a canned reply."""

    def __init__(self, respond=None, peer=("192.0.2.1", 123)):
        self.peer = peer
        self.sent = []
        self._respond = respond

    def send(self, data: bytes):
        self.sent.append(data)

    async def receive(self) -> bytes:
        if self._respond is None:
            await asyncio.Event().wait()
        return self._respond(self.sent[-1])


class TestExchange:
    """Test one exchange over an in-memory transport."""

    def test_exchange(self):
        """Test a full exchange computes delay and offset from the reply."""
        transport = FakeTransport(lambda data: server_bytes(data, 110.0, 110.25))

        result = asyncio.run(exchange(transport, timeout=1.0, clock=make_clock(100.0, 100.5)))

        assert len(transport.sent) == 1
        assert len(transport.sent[0]) == 48
        assert transport.sent[0][0] == 0x23
        assert result.peer == ("192.0.2.1", 123)
        assert result.request.transmit_timestamp == 100.0
        assert result.destination == 100.5
        assert result.delay_ms == pytest.approx(250.0)
        assert result.offset_ms == pytest.approx(9875.0)
        assert result.checks.ok

    def test_exchange_version(self):
        """Test the requested version lands in the header byte."""
        transport = FakeTransport(lambda data: server_bytes(data, 110.0, 110.25))
        asyncio.run(exchange(
            transport, timeout=1.0, clock=make_clock(100.0, 100.5), version=Version.V3,
        ))
        assert transport.sent[0][0] == 0x1B

    def test_checks_are_advisory(self, caplog):
        """Test failing checks are logged, not raised."""
        transport = FakeTransport(lambda data: server_bytes(data, 110.0, 110.25, stratum=0))

        with caplog.at_level("WARNING", logger="sntpc.client"):
            result = asyncio.run(exchange(transport, timeout=1.0, clock=make_clock(100.0, 100.5)))

        assert result.checks.failures() == ["stratum_nonzero"]
        assert "stratum_nonzero" in caplog.text

    def test_timeout(self):
        """Test a silent transport hits the deadline."""
        transport = FakeTransport()
        with pytest.raises(ExchangeTimeout):
            asyncio.run(exchange(transport, timeout=0.05))

    def test_timeout_is_transport_error(self):
        with pytest.raises(TransportError):
            asyncio.run(exchange(FakeTransport(), timeout=0.05))

    def test_short_reply(self):
        """Test a truncated reply is rejected."""
        transport = FakeTransport(lambda data: b"\x24" + b"\x00" * 39)
        with pytest.raises(FormatError):
            asyncio.run(exchange(transport, timeout=1.0))

    def test_missing_originate(self):
        """Test a reply without originate timestamp can't be measured."""
        def respond(data):
            reply = Packet(
                mode=Mode.SERVER,
                stratum=1,
                receive_timestamp=110.0,
                transmit_timestamp=110.25,
            )
            return reply.encode()

        with pytest.raises(MissingTimestampError):
            asyncio.run(exchange(FakeTransport(respond), timeout=1.0))


class _ServerProtocol(asyncio.DatagramProtocol):
    """Loopback SNTP server; stays silent when ``reply`` is False."""

    def __init__(self, reply=True):
        self.reply = reply
        self.requests = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.requests.append(data)
        if not self.reply:
            return
        now = time.time()
        self.transport.sendto(server_bytes(data, now, now), addr)


async def _run_against_server(reply: bool, timeout: float):
    loop = asyncio.get_running_loop()
    server_transport, server = await loop.create_datagram_endpoint(
        lambda: _ServerProtocol(reply),
        local_addr=("127.0.0.1", 0),
    )
    port = server_transport.get_extra_info("sockname")[1]
    try:
        return await query("127.0.0.1", port=port, timeout=timeout), server
    finally:
        server_transport.close()


class TestUDP:
    """Test against a loopback server."""

    def test_query(self):
        """Test a query against a loopback server."""
        result, server = asyncio.run(_run_against_server(reply=True, timeout=2.0))

        assert len(server.requests) == 1
        assert result.peer[0] == "127.0.0.1"
        assert result.response.mode is Mode.SERVER
        assert result.checks.originate_matches
        assert result.delay_ms >= 0
        assert abs(result.offset_ms) < 1000

    def test_silent_server(self):
        """Test a server that never answers times out."""
        with pytest.raises(ExchangeTimeout):
            asyncio.run(_run_against_server(reply=False, timeout=0.2))

    def test_send_after_close(self):
        """Test sending on a closed transport fails."""
        async def run():
            transport = await UDPTransport.open(("127.0.0.1", 9))
            transport.close()
            transport.send(b"\x00" * 48)

        with pytest.raises(TransportError):
            asyncio.run(run())

    @pytest.mark.parametrize("peer, family", [
        (("192.0.2.1", 123), socket.AF_INET),
        (("fe80::1%eth0", 123, 0, 2), socket.AF_INET6),
    ])
    def test_open_passes_full_address(self, peer, family):
        """Test IPv6 flowinfo and scope id reach the socket connect."""
        calls = []

        async def run():
            loop = asyncio.get_running_loop()

            async def fake_endpoint(factory, **kwargs):
                calls.append(kwargs)
                return None, factory()

            loop.create_datagram_endpoint = fake_endpoint
            return await UDPTransport.open(peer)

        transport = asyncio.run(run())

        assert transport.peer == peer
        assert calls == [{"remote_addr": peer, "family": family}]


class TestResolvePeer:

    def test_numeric_address(self):
        """Test numeric addresses resolve without DNS."""
        assert asyncio.run(resolve_peer("127.0.0.1", 123)) == ("127.0.0.1", 123)

    def test_unresolvable(self, monkeypatch):
        """Test resolver failures become TransportError."""
        def fail(*args, **kwargs):
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        monkeypatch.setattr(socket, "getaddrinfo", fail)
        with pytest.raises(TransportError):
            asyncio.run(resolve_peer("time.invalid", 123))

    @pytest.mark.parametrize("host", ["a..b", "x" * 64 + ".example.org"])
    def test_malformed_name(self, host):
        """Test names rejected by the IDNA codec become TransportError."""
        with pytest.raises(TransportError) as excinfo:
            asyncio.run(resolve_peer(host, 123))
        assert isinstance(excinfo.value.__cause__, UnicodeError)
