"""Minimal Minecraft Java Edition protocol helpers.

Implements just enough of the protocol to:
- Parse a Handshake packet from a (possibly partial) byte buffer.
- Build the Status Response / Disconnect string packets.
- Provide a canned Pong packet.

Reference: https://minecraft.wiki/w/Java_Edition_protocol
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

from .byte_buffer import BufferUnderflow, ByteBuffer, MalformedData, varint_size

# (length)2 + (packet id)1 + (protocol version)4 + (hostname)2+255 + (port)2 + (next state)1
HANDSHAKE_MAX_LEN = 267
HOSTNAME_MAX_BYTES = 255

PACKET_ID_HANDSHAKE = 0x00
PACKET_ID_STATUS_RESPONSE = 0x00
PACKET_ID_LOGIN_DISCONNECT = 0x00
PACKET_ID_PONG = 0x01

# Length 9, id 0x01, then an 8-byte "client time" echo.
PONG_PACKET = bytes([9, PACKET_ID_PONG]) + struct.pack(">II", 0, 818)


# =====================================================================
# Parsed packets
# =====================================================================


class NextState(enum.IntEnum):
    """Requested state after the handshake."""

    STATUS = 1
    LOGIN = 2


@dataclass(frozen=True)
class Handshake:
    """Client → Server handshake (packet 0x00 in the handshake state)."""

    protocol_version: int
    hostname: str
    port: int
    next_state: NextState


class DecodeOutcome(enum.Enum):
    """Result of one attempt at decoding a handshake."""

    READY = "READY"
    INCOMPLETE = "INCOMPLETE"
    INVALID = "INVALID"


@dataclass(frozen=True)
class DecodeResult:
    outcome: DecodeOutcome
    handshake: Handshake | None = None

    @property
    def is_ready(self) -> bool:
        return self.outcome is DecodeOutcome.READY


INCOMPLETE = DecodeResult(DecodeOutcome.INCOMPLETE)
INVALID = DecodeResult(DecodeOutcome.INVALID)


# =====================================================================
# Handshake decoding
# =====================================================================


def read_handshake(buf: ByteBuffer) -> DecodeResult:
    """Try to decode a handshake packet from the cursor of *buf*.

    Returns INCOMPLETE when more bytes are needed (the caller resets the
    cursor and calls again after appending), INVALID when the data can
    never form a valid handshake, or READY with the decoded packet.
    """
    # -- Framing ----------------------------------------------------------
    try:
        packet_len = buf.read_varint(2, allow_incomplete=True)
    except BufferUnderflow:
        return INCOMPLETE
    except MalformedData:
        return INVALID
    if packet_len > HANDSHAKE_MAX_LEN:
        return INVALID
    # Trailing bytes past the declared length are tolerated.
    if packet_len > buf.remaining():
        return INCOMPLETE

    # -- Fields -----------------------------------------------------------
    try:
        packet_id = buf.read_varint(1)
        if packet_id != PACKET_ID_HANDSHAKE:
            return INVALID

        protocol_version = buf.read_varint(4)
        if protocol_version <= 0:
            return INVALID

        hostname = buf.read_string(2, HOSTNAME_MAX_BYTES)

        port = buf.read_u16_be()
        if not 1 <= port <= 65535:
            return INVALID

        state = buf.read_varint(1)
        if state not in (NextState.STATUS, NextState.LOGIN):
            return INVALID
    except (BufferUnderflow, MalformedData):
        return INVALID

    # Strip Forge / proxy suffixes ("host\0FML\0", "host\0ip\0uuid").
    hostname = hostname.split("\0", 1)[0]

    return DecodeResult(
        DecodeOutcome.READY,
        Handshake(
            protocol_version=protocol_version,
            hostname=hostname,
            port=port,
            next_state=NextState(state),
        ),
    )


# =====================================================================
# Response builders
# =====================================================================


def build_string_packet(packet_id: int, text: str) -> bytes:
    """Frame a packet whose payload is a single VarInt-prefixed UTF-8 string.

    Used for both the Status Response (JSON status document) and the
    login Disconnect (JSON chat component).
    """
    encoded = text.encode("utf-8")
    packet_len = varint_size(packet_id) + varint_size(len(encoded)) + len(encoded)

    buf = ByteBuffer.allocate(varint_size(packet_len) + packet_len)
    buf.write_varint(packet_len)
    buf.write_varint(packet_id)
    buf.write_varint(len(encoded))
    buf.write_raw(encoded)
    return buf.data
