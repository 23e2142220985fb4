"""Framed packet I/O over a single RCON TCP connection."""

from __future__ import annotations

import asyncio
import logging

from .errors import RconIoError
from .protocol import HEADER_SIZE, Packet, decode_header, decode_packet, encode_packet
from .tcp import fill_buffer, open_stream

_LOGGER = logging.getLogger(__name__)

CLOSE_TIMEOUT = 2.0


class RconTransport:
    """Send and receive whole RCON packets over an asyncio stream."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        label: str = "rcon",
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._label = label
        self._buffer = bytearray()
        self._closed = False

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int,
        *,
        timeout: float = 10.0,
    ) -> RconTransport:
        """Open a TCP connection and wrap it in a transport.

        Raises:
            RconConnectError: If the connection cannot be established.
        """
        reader, writer = await open_stream(host, port, timeout=timeout)
        _LOGGER.debug("[%s:%s] TCP stream opened", host, port)
        return cls(reader, writer, label=f"{host}:{port}")

    @property
    def is_closing(self) -> bool:
        """True once the transport was closed locally or by the peer."""
        return self._closed or self._writer.is_closing()

    async def send(self, data: bytes) -> None:
        """Write pre-encoded bytes and wait until they are flushed."""
        if self._closed:
            raise RconIoError("Transport is closed")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as err:
            raise RconIoError(f"Socket write failed: {err}") from err

    async def send_packet(self, packet_id: int, packet_type: int, body: str = "") -> None:
        """Encode and send one packet.

        Raises:
            RconEncodingError: If the packet cannot be encoded; nothing is sent.
            RconIoError: If the bytes cannot be written.
        """
        data = encode_packet(packet_id, packet_type, body)
        await self.send(data)
        _LOGGER.debug(
            "[%s] Sent packet id=%d type=%d (%d bytes)",
            self._label,
            packet_id,
            packet_type,
            len(data),
        )

    async def recv_packet(self) -> Packet:
        """Read one complete packet from the stream.

        The header and body are buffered on the transport until the frame is
        complete, so cancelling a pending read never desynchronises the
        stream.

        Raises:
            RconConnectionClosed: If the server closes mid-frame.
            RconIoError: On other socket errors.
            RconMalformedPacket: If the frame violates the wire format.
        """
        if self._closed:
            raise RconIoError("Transport is closed")

        await fill_buffer(self._reader, self._buffer, HEADER_SIZE)
        size, _, _ = decode_header(self._buffer)

        frame_length = size + 4
        await fill_buffer(self._reader, self._buffer, frame_length)
        frame = bytes(self._buffer[:frame_length])
        del self._buffer[:frame_length]

        packet = decode_packet(frame)
        _LOGGER.debug(
            "[%s] Received packet id=%d type=%d (%d body chars)",
            self._label,
            packet.id,
            packet.type,
            len(packet.body),
        )
        return packet

    async def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._writer.close()
        try:
            await asyncio.wait_for(self._writer.wait_closed(), timeout=CLOSE_TIMEOUT)
        except TimeoutError:
            _LOGGER.warning("[%s] Socket close timed out", self._label)
        except OSError as err:
            _LOGGER.debug("[%s] Error while closing socket: %s", self._label, err)
