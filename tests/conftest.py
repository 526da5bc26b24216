"""Shared fixtures: hand-built wire bytes, independent of the package's encoder."""

import struct

import pytest


def _varint(value):
    value &= 0xFFFFFFFF
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _handshake(protocol=763, host="play.example.com", port=25565, state=1, packet_id=0):
    raw_host = host if isinstance(host, bytes) else host.encode("utf-8")
    body = (
        _varint(packet_id)
        + _varint(protocol)
        + _varint(len(raw_host))
        + raw_host
        + struct.pack(">H", port)
        + _varint(state)
    )
    return _varint(len(body)) + body


@pytest.fixture
def varint():
    """Encode an int as a VarInt."""
    return _varint


@pytest.fixture
def make_handshake():
    """Build a framed handshake packet; every field can be overridden."""
    return _handshake
