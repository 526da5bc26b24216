"""Growable byte buffer and VarInt codec for the Minecraft wire format.

The buffer accumulates bytes as they arrive from the socket and keeps a
single cursor used both for reading and for writing into preallocated
space.  Parsers reset the cursor to 0 and re-read from the start every
time more data is appended.

Reference: https://minecraft.wiki/w/Java_Edition_protocol/Data_types
"""

from __future__ import annotations

import struct

_SEGMENT_BITS = 0x7F
_CONTINUE_BIT = 0x80

# =====================================================================
# Errors
# =====================================================================


class ProtocolError(Exception):
    """Base class for errors raised while reading protocol data."""


class BufferUnderflow(ProtocolError, EOFError):
    """Not enough bytes buffered yet.  Retry once more data arrives."""


class MalformedData(ProtocolError, ValueError):
    """The buffered bytes violate the protocol and can never become valid."""


# =====================================================================
# VarInt helpers
# =====================================================================


def varint_size(value: int) -> int:
    """Return the number of bytes needed to encode *value* as a VarInt."""
    if value < 0:
        return 5
    if value < 0x80:
        return 1
    if value < 0x4000:
        return 2
    if value < 0x200000:
        return 3
    if value < 0x10000000:
        return 4
    return 5


def decode_varint(buf: ByteBuffer, max_bytes: int = 5, allow_incomplete: bool = False) -> int:
    """Read a VarInt starting at the cursor of *buf*.

    Raises :class:`BufferUnderflow` if the buffer runs out before the
    last byte and *allow_incomplete* is set, :class:`MalformedData` if it
    runs out otherwise or if *max_bytes* bytes were read without reaching
    the end of the value.
    """
    result = 0
    for i in range(max_bytes):
        try:
            b = buf.read_u8()
        except BufferUnderflow:
            if allow_incomplete:
                raise
            raise MalformedData("Unexpected end of buffer while reading VarInt") from None
        result |= (b & _SEGMENT_BITS) << (7 * i)
        if not (b & _CONTINUE_BIT):
            break
    else:
        raise MalformedData(f"VarInt is longer than {max_bytes} byte(s)")

    # Wrap to 32-bit signed
    result &= 0xFFFFFFFF
    if result & (1 << 31):
        result -= 1 << 32
    return result


def encode_varint(value: int, buf: ByteBuffer) -> None:
    """Write *value* as a VarInt at the cursor of *buf*.

    The space must already be reserved: exactly ``varint_size(value)``
    bytes starting at the cursor.
    """
    # Treat as unsigned 32-bit for encoding.
    value &= 0xFFFFFFFF
    while True:
        byte = value & _SEGMENT_BITS
        value >>= 7
        if value:
            buf.put_u8(byte | _CONTINUE_BIT)
        else:
            buf.put_u8(byte)
            return


# =====================================================================
# Byte buffer
# =====================================================================


class ByteBuffer:
    """Append-only byte accumulator with a read/write cursor.

    Fixed-width reads check the remaining length first and never move the
    cursor on failure.  Writes go into space reserved up front (see
    :meth:`allocate`); the buffer only grows through :meth:`append`.
    """

    def __init__(self, data: bytes | None = None):
        self._data = bytearray()
        self._cursor = 0
        self.append(data)

    @classmethod
    def allocate(cls, size: int) -> ByteBuffer:
        """Return a zero-filled buffer of *size* bytes with the cursor at 0."""
        return cls(bytes(size))

    # -- State ------------------------------------------------------------

    @property
    def data(self) -> bytes:
        return bytes(self._data)

    @property
    def cursor(self) -> int:
        return self._cursor

    def length(self) -> int:
        """Total number of bytes held, regardless of the cursor."""
        return len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def remaining(self) -> int:
        """Number of bytes between the cursor and the end of the buffer."""
        return len(self._data) - self._cursor

    def append(self, data: bytes | None) -> None:
        """Append *data* to the end of the buffer (no-op when empty)."""
        if not data:
            return
        self._data.extend(data)

    def reset_cursor(self) -> None:
        self._cursor = 0

    # -- Reading ----------------------------------------------------------

    def read_u8(self) -> int:
        """Read an unsigned byte."""
        if self.remaining() < 1:
            raise BufferUnderflow("Unexpected end of buffer while reading unsigned byte")
        value = self._data[self._cursor]
        self._cursor += 1
        return value

    def read_u16_be(self) -> int:
        """Read a big-endian unsigned short."""
        if self.remaining() < 2:
            raise BufferUnderflow("Unexpected end of buffer while reading unsigned short")
        (value,) = struct.unpack_from(">H", self._data, self._cursor)
        self._cursor += 2
        return value

    def read_varint(self, max_bytes: int = 5, allow_incomplete: bool = False) -> int:
        return decode_varint(self, max_bytes, allow_incomplete)

    def read_string(self, max_prefix_bytes: int, max_payload_bytes: int) -> str:
        """Read a VarInt length-prefixed UTF-8 string.

        Any failure, including a string that is not fully buffered yet,
        raises :class:`MalformedData` and leaves the cursor where it was.
        """
        start = self._cursor
        try:
            return self._read_string(max_prefix_bytes, max_payload_bytes)
        except MalformedData:
            self._cursor = start
            raise

    def _read_string(self, max_prefix_bytes: int, max_payload_bytes: int) -> str:
        length = self.read_varint(max_prefix_bytes)
        if length < 0:
            raise MalformedData(f"Negative string length: {length}")
        if length > max_payload_bytes:
            raise MalformedData(f"String too long: {length} > {max_payload_bytes} bytes")
        if length > self.remaining():
            raise MalformedData(f"String length {length} exceeds buffered data")

        raw = bytes(self._data[self._cursor : self._cursor + length])
        try:
            value = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedData(f"Invalid UTF-8 in string: {exc}") from exc
        self._cursor += length
        return value

    # -- Writing (into preallocated space) --------------------------------

    def put_u8(self, value: int) -> None:
        self._data[self._cursor] = value
        self._cursor += 1

    def write_varint(self, value: int) -> None:
        encode_varint(value, self)

    def write_raw(self, data: bytes) -> None:
        """Copy *data* into the buffer at the cursor."""
        end = self._cursor + len(data)
        if end > len(self._data):
            raise IndexError("write past the end of the buffer")
        self._data[self._cursor : end] = data
        self._cursor = end

    def __repr__(self) -> str:
        return f"ByteBuffer(length={len(self._data)}, cursor={self._cursor})"
