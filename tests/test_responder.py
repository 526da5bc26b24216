"""Tests for the per-connection handshake handler and the TCP listener."""

import asyncio

import pytest

from motd_responder.config import ListenConfig, StatusConfig
from motd_responder.mc_protocol import PONG_PACKET, NextState
from motd_responder.responder import (
    ConnectionState,
    HandshakeProtocol,
    ResponderServer,
    format_address,
    format_peer,
)
from motd_responder.status import ResponsePackets

PACKETS = ResponsePackets.from_config(StatusConfig(motd="§aTesting", kick_message="§cNope"))


class FakeTransport:
    """Records what the protocol does to its transport."""

    def __init__(self, peername=("127.0.0.1", 54321)):
        self.peername = peername
        self.written = bytearray()
        self.eof = False
        self.closed = False
        self.aborted = False

    def get_extra_info(self, name, default=None):
        return self.peername if name == "peername" else default

    def write(self, data):
        assert not self.closed and not self.aborted
        self.written.extend(data)

    def can_write_eof(self):
        return True

    def write_eof(self):
        self.eof = True

    def close(self):
        self.closed = True

    def abort(self):
        self.aborted = True


def _connect(timeout=5.0):
    protocol = HandshakeProtocol(PACKETS, handshake_timeout=timeout)
    transport = FakeTransport()
    protocol.connection_made(transport)
    return protocol, transport


class TestHandshakeProtocol:
    """Tests for HandshakeProtocol driven by a fake transport."""

    def test_status_request(self, make_handshake):
        async def scenario():
            protocol, transport = _connect()
            protocol.data_received(make_handshake(state=1))
            return protocol, transport

        protocol, transport = asyncio.run(scenario())
        assert protocol.state is ConnectionState.ANSWERED
        assert protocol.handshake.next_state is NextState.STATUS
        assert bytes(transport.written) == PACKETS.status + PONG_PACKET
        assert transport.eof and transport.closed
        assert not transport.aborted

    def test_login_gets_only_kick(self, make_handshake):
        async def scenario():
            protocol, transport = _connect()
            protocol.data_received(make_handshake(state=2))
            return protocol, transport

        protocol, transport = asyncio.run(scenario())
        assert protocol.state is ConnectionState.ANSWERED
        assert bytes(transport.written) == PACKETS.kick
        assert PONG_PACKET not in bytes(transport.written)
        assert transport.closed

    def test_fragmented_handshake(self, make_handshake):
        """Test a handshake split into single bytes is answered once complete."""
        data = make_handshake(host="play.example.com\0FML\0")

        async def scenario():
            protocol, transport = _connect()
            states = []
            for i in range(len(data)):
                protocol.data_received(data[i : i + 1])
                states.append(protocol.state)
            return protocol, transport, states

        protocol, transport, states = asyncio.run(scenario())
        assert states[:-1] == [ConnectionState.AWAITING] * (len(data) - 1)
        assert states[-1] is ConnectionState.ANSWERED
        assert protocol.handshake.hostname == "play.example.com"
        assert bytes(transport.written) == PACKETS.status + PONG_PACKET

    def test_invalid_handshake_aborts(self, make_handshake):
        async def scenario():
            protocol, transport = _connect()
            protocol.data_received(make_handshake(state=3))
            return protocol, transport

        protocol, transport = asyncio.run(scenario())
        assert protocol.state is ConnectionState.ABORTED
        assert transport.aborted
        assert transport.written == b""

    def test_only_first_handshake_answered(self, make_handshake):
        """Test back-to-back handshakes produce a single reply."""

        async def scenario():
            protocol, transport = _connect()
            protocol.data_received(make_handshake(state=1) + make_handshake(state=2))
            protocol.data_received(make_handshake(state=2))
            return transport

        transport = asyncio.run(scenario())
        assert bytes(transport.written) == PACKETS.status + PONG_PACKET

    def test_data_after_abort_ignored(self, make_handshake):
        async def scenario():
            protocol, transport = _connect()
            protocol.data_received(b"\xff\xff\xff")
            protocol.data_received(make_handshake())
            return protocol, transport

        protocol, transport = asyncio.run(scenario())
        assert protocol.state is ConnectionState.ABORTED
        assert transport.written == b""

    def test_timeout_aborts_without_reply(self, make_handshake):
        async def scenario():
            protocol, transport = _connect(timeout=0.05)
            protocol.data_received(make_handshake()[:5])
            await asyncio.sleep(0.2)
            return protocol, transport

        protocol, transport = asyncio.run(scenario())
        assert protocol.state is ConnectionState.ABORTED
        assert transport.aborted
        assert transport.written == b""

    def test_timeout_cancelled_after_answer(self, make_handshake):
        async def scenario():
            protocol, transport = _connect(timeout=0.05)
            protocol.data_received(make_handshake())
            await asyncio.sleep(0.2)
            return protocol, transport

        protocol, transport = asyncio.run(scenario())
        assert protocol.state is ConnectionState.ANSWERED
        assert not transport.aborted

    def test_connection_lost_before_handshake(self, caplog):
        async def scenario():
            protocol, transport = _connect(timeout=0.05)
            protocol.connection_lost(ConnectionResetError("reset by peer"))
            await asyncio.sleep(0.1)
            return protocol, transport

        with caplog.at_level("INFO", logger="motd_responder.responder"):
            protocol, transport = asyncio.run(scenario())
        assert protocol.state is ConnectionState.ABORTED
        # The timer was cancelled, so the transport was never aborted by it.
        assert not transport.aborted
        assert "disconnected with error: reset by peer" in caplog.text

    def test_eof_before_handshake_logged(self, caplog):
        async def scenario():
            protocol, _ = _connect()
            protocol.connection_lost(None)

        with caplog.at_level("INFO", logger="motd_responder.responder"):
            asyncio.run(scenario())
        assert "disconnected before receiving response" in caplog.text


class TestFormatAddress:
    """Tests for address formatting helpers."""

    @pytest.mark.parametrize(
        "address, enclosed, expected",
        [
            (None, True, "undefined"),
            ("10.0.0.1", True, "10.0.0.1"),
            ("::ffff:10.0.0.1", True, "10.0.0.1"),
            ("2001:db8::1", True, "[2001:db8::1]"),
            ("2001:db8::1", False, "2001:db8::1"),
        ],
    )
    def test_format_address(self, address, enclosed, expected):
        assert format_address(address, enclosed) == expected

    def test_format_peer(self):
        assert format_peer(("::ffff:10.0.0.1", 5000, 0, 0)) == "[10.0.0.1]:5000"
        assert format_peer(None) == "[undefined]"


class TestResponderServer:
    """End-to-end tests over a real loopback socket."""

    @staticmethod
    async def _exchange(server, payload):
        host, port = server.sockname
        reader, writer = await asyncio.open_connection(host, port)
        try:
            if payload:
                writer.write(payload)
                await writer.drain()
            try:
                return await asyncio.wait_for(reader.read(), timeout=5)
            except ConnectionResetError:
                return b""
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    def test_status_and_login(self, make_handshake):
        async def scenario():
            server = ResponderServer(PACKETS, ListenConfig(host="127.0.0.1", port=0))
            await server.start()
            try:
                status = await self._exchange(server, make_handshake(state=1))
                login = await self._exchange(server, make_handshake(state=2))
            finally:
                await server.stop()
            return status, login

        status, login = asyncio.run(scenario())
        assert status == PACKETS.status + PONG_PACKET
        assert login == PACKETS.kick

    def test_silent_client_gets_nothing(self):
        async def scenario():
            cfg = ListenConfig(host="127.0.0.1", port=0, handshake_timeout_seconds=0.1)
            server = ResponderServer(PACKETS, cfg)
            await server.start()
            try:
                return await self._exchange(server, b"")
            finally:
                await server.stop()

        assert asyncio.run(scenario()) == b""

    def test_run_stops_on_shutdown(self):
        async def scenario():
            server = ResponderServer(PACKETS, ListenConfig(host="127.0.0.1", port=0))
            shutdown = asyncio.Event()
            task = asyncio.create_task(server.run(shutdown))
            while server.sockname is None:
                await asyncio.sleep(0.01)
            shutdown.set()
            await asyncio.wait_for(task, timeout=5)
            return server.sockname

        assert asyncio.run(scenario()) is None
