"""Packet codec for the Source RCON wire format.

Every packet on the wire is laid out as::

    int32 size | int32 id | int32 type | body bytes | 0x00 | 0x00

All integers are little-endian signed. ``size`` counts every byte after
itself, so the smallest legal packet (empty body) has ``size == 10``.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

from .errors import RconEncodingError, RconMalformedPacket

HEADER_FORMAT = "<iii"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

# id + type + body terminator + empty-string trailer
PACKET_OVERHEAD = 10
MIN_PACKET_SIZE = PACKET_OVERHEAD

# Outbound ceiling; larger command bodies are rejected, never split.
MAX_PACKET_SIZE = 4096
MAX_BODY_SIZE = MAX_PACKET_SIZE - PACKET_OVERHEAD

# Servers occasionally exceed 4096 on responses. Anything beyond this is
# treated as a desynchronised stream rather than a real packet.
MAX_INCOMING_PACKET_SIZE = 1 << 16

TRAILER = b"\x00\x00"
BODY_ENCODING = "utf-8"


class PacketType(IntEnum):
    """RCON packet types.

    ``AUTH_RESPONSE`` and ``EXECCOMMAND`` share the value 2. Which one a
    packet is depends on direction and on what the client just sent.
    """

    RESPONSE_VALUE = 0
    EXECCOMMAND = 2
    AUTH_RESPONSE = 2
    AUTH = 3


@dataclass(frozen=True, slots=True)
class Packet:
    """A single decoded RCON packet."""

    id: int
    type: int
    body: str = ""

    @property
    def size(self) -> int:
        """Value of the size field for this packet on the wire."""
        return PACKET_OVERHEAD + len(self.body.encode(BODY_ENCODING))

    def encode(self) -> bytes:
        """Encode the packet for transmission."""
        return encode_packet(self.id, self.type, self.body)


def encode_packet(packet_id: int, packet_type: int, body: str = "") -> bytes:
    """Serialize one packet into its wire representation.

    Args:
        packet_id: Signed 32-bit request identifier.
        packet_type: Numeric packet type (see PacketType).
        body: Packet body text.

    Returns:
        ``size|id|type|body\\0\\0`` ready to be written to the socket.

    Raises:
        RconEncodingError: If the body contains NUL, the packet would exceed
            MAX_PACKET_SIZE, or an integer field is outside the int32 range.
    """
    if "\x00" in body:
        raise RconEncodingError("Packet body must not contain NUL characters")

    payload = body.encode(BODY_ENCODING)
    size = PACKET_OVERHEAD + len(payload)
    if size > MAX_PACKET_SIZE:
        raise RconEncodingError(
            f"Packet size {size} exceeds the {MAX_PACKET_SIZE} byte limit"
        )

    try:
        header = struct.pack(HEADER_FORMAT, size, packet_id, packet_type)
    except struct.error as err:
        raise RconEncodingError(f"Invalid packet header field: {err}") from err
    return header + payload + TRAILER


def decode_header(data: bytes) -> tuple[int, int, int]:
    """Parse the fixed 12-byte packet prefix.

    Only the first HEADER_SIZE bytes are inspected; the caller buffers until
    at least that many are available.

    Returns:
        Tuple of (size, id, type).

    Raises:
        RconMalformedPacket: If fewer than 12 bytes are given or the declared
            size is outside the accepted range.
    """
    if len(data) < HEADER_SIZE:
        raise RconMalformedPacket(
            f"Packet header needs {HEADER_SIZE} bytes, got {len(data)}"
        )

    size, packet_id, packet_type = struct.unpack_from(HEADER_FORMAT, data)
    if size < MIN_PACKET_SIZE:
        raise RconMalformedPacket(f"Declared packet size {size} is too small")
    if size > MAX_INCOMING_PACKET_SIZE:
        raise RconMalformedPacket(f"Declared packet size {size} is too large")
    return size, packet_id, packet_type


def decode_body(data: bytes, size: int) -> str:
    """Decode the bytes that follow the header.

    Args:
        data: Exactly ``size - 8`` bytes: body plus the two NUL terminators.
        size: Size field from the header.

    Raises:
        RconMalformedPacket: If the length does not match ``size`` or the
            trailer is not two NUL bytes.
    """
    expected = size - 8
    if len(data) != expected:
        raise RconMalformedPacket(
            f"Declared size {size} expects {expected} body bytes, got {len(data)}"
        )
    if data[-2:] != TRAILER:
        raise RconMalformedPacket("Packet body is not terminated by two NUL bytes")
    return data[:-2].decode(BODY_ENCODING, errors="replace")


def decode_packet(frame: bytes) -> Packet:
    """Decode one complete frame (header and body) into a Packet."""
    size, packet_id, packet_type = decode_header(frame)
    body = decode_body(frame[HEADER_SIZE:], size)
    return Packet(id=packet_id, type=packet_type, body=body)
