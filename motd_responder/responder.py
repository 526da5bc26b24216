"""Async TCP listener answering Minecraft handshakes.

Every connection gets a :class:`HandshakeProtocol` that buffers incoming
bytes until a full handshake has arrived, then:
- Status request → writes the status packet and a pong, then closes.
- Login attempt → writes the kick packet, then closes.
Anything malformed, or no handshake within the timeout, aborts the
connection without a reply.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any

from .byte_buffer import ByteBuffer
from .config import ListenConfig
from .mc_protocol import PONG_PACKET, DecodeOutcome, Handshake, NextState, read_handshake
from .status import ResponsePackets

log = logging.getLogger(__name__)

HANDSHAKE_TIMEOUT_SECONDS = 2.0


def format_address(address: str | None, enclosed_ipv6: bool = True) -> str:
    """Format an IP for logs: unwrap IPv4-mapped IPv6, bracket real IPv6."""
    if not address:
        return "undefined"
    if address.startswith("::ffff:"):
        return address[7:]
    if enclosed_ipv6 and ":" in address:
        return f"[{address}]"
    return address


def format_peer(peername: Any) -> str:
    if not peername:
        return "[undefined]"
    return f"[{format_address(peername[0], enclosed_ipv6=False)}]:{peername[1]}"


class ConnectionState(enum.Enum):
    """Lifecycle of one client connection."""

    AWAITING = "AWAITING"
    ANSWERED = "ANSWERED"
    ABORTED = "ABORTED"


class HandshakeProtocol(asyncio.Protocol):
    """Handles a single client connection.

    Parameters
    ----------
    packets:
        Pre-encoded status / kick replies (shared, read-only).
    handshake_timeout:
        Seconds the client has to deliver a complete handshake.
    """

    def __init__(self, packets: ResponsePackets, handshake_timeout: float = HANDSHAKE_TIMEOUT_SECONDS):
        self._packets = packets
        self._timeout = handshake_timeout
        self._transport: asyncio.Transport | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._buf: ByteBuffer | None = ByteBuffer()
        self._error: str | None = None
        self.name = "[undefined]"
        self.state = ConnectionState.AWAITING
        self.handshake: Handshake | None = None

    # ------------------------------------------------------------------
    # asyncio.Protocol callbacks
    # ------------------------------------------------------------------

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport
        self.name = format_peer(transport.get_extra_info("peername"))
        log.debug(f"{self.name} connected")
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._timeout, self._on_timeout)

    def data_received(self, data: bytes) -> None:
        # Bytes can keep arriving briefly after we answered or aborted.
        if self.state is not ConnectionState.AWAITING or self._buf is None:
            return

        self._buf.append(data)
        self._buf.reset_cursor()
        result = read_handshake(self._buf)

        if result.outcome is DecodeOutcome.INCOMPLETE:
            return
        if result.outcome is DecodeOutcome.INVALID:
            self._abort("Illegal handshake")
            return
        self._answer(result.handshake)

    def connection_lost(self, exc: Exception | None) -> None:
        self._cancel_timer()
        self._buf = None
        if exc is not None and self._error is None:
            self._error = str(exc) or type(exc).__name__
        if self.state is ConnectionState.AWAITING:
            self.state = ConnectionState.ABORTED

        if self._error is not None:
            log.info(f"{self.name} disconnected with error: {self._error}")
        elif self.state is not ConnectionState.ANSWERED:
            log.info(f"{self.name} disconnected before receiving response")
        else:
            log.debug(f"{self.name} disconnected successfully")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _answer(self, handshake: Handshake) -> None:
        """Send the reply matching *handshake* and close gracefully."""
        self.state = ConnectionState.ANSWERED
        self.handshake = handshake
        self._cancel_timer()
        log.info(
            f"{self.name} sent handshake: protocol={handshake.protocol_version} "
            f"host={handshake.hostname!r} port={handshake.port} state={handshake.next_state.name}",
        )

        transport = self._transport
        if handshake.next_state is NextState.LOGIN:
            transport.write(self._packets.kick)
        else:
            transport.write(self._packets.status)
            transport.write(PONG_PACKET)

        # Half-close, then close once the write buffer has been flushed.
        if transport.can_write_eof():
            transport.write_eof()
        transport.close()

    def _abort(self, reason: str) -> None:
        """Drop the connection immediately, without a reply."""
        self.state = ConnectionState.ABORTED
        self._error = reason
        self._cancel_timer()
        if self._transport is not None:
            self._transport.abort()

    def _on_timeout(self) -> None:
        self._timer = None
        if self.state is ConnectionState.AWAITING:
            self._abort("Timeout")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class ResponderServer:
    """Owns the listening socket.

    Parameters
    ----------
    packets:
        Pre-encoded replies handed to every connection.
    cfg:
        Bind address, backlog and handshake timeout.
    """

    def __init__(self, packets: ResponsePackets, cfg: ListenConfig):
        self._packets = packets
        self._cfg = cfg
        self._server: asyncio.Server | None = None

    def _protocol_factory(self) -> HandshakeProtocol:
        return HandshakeProtocol(self._packets, self._cfg.handshake_timeout_seconds)

    @property
    def sockname(self) -> tuple[str, int] | None:
        """Address of the first bound socket (useful when binding port 0)."""
        if self._server is None or not self._server.sockets:
            return None
        host, port = self._server.sockets[0].getsockname()[:2]
        return host, port

    async def start(self) -> None:
        """Bind the listener.  Raises OSError if the address is unavailable."""
        loop = asyncio.get_running_loop()
        self._server = await loop.create_server(
            self._protocol_factory,
            host=self._cfg.host or None,
            port=self._cfg.port,
            backlog=self._cfg.backlog,
        )
        for sock in self._server.sockets:
            host, port = sock.getsockname()[:2]
            log.info(f"Listening on {format_address(host)}:{port}")

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        log.info("Listener stopped")

    async def run(self, shutdown: asyncio.Event) -> None:
        """Serve until *shutdown* is set, then close the listener."""
        await self.start()
        try:
            await shutdown.wait()
        finally:
            await self.stop()
