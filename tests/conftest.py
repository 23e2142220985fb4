"""Pytest configuration and fixtures for rcon_shell tests."""

from __future__ import annotations

import asyncio
import struct
from collections.abc import Callable, Coroutine
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from rcon_shell.protocol import Packet, PacketType, decode_packet, encode_packet


class FakeRconServer:
    """In-process RCON server listening on localhost.

    Attributes tweak its behaviour between commands:
        auth_style: "standard" (ack then auth response), "reversed",
            "combined" (both in one write) or "no_ack".
        responses: Command text -> list of response fragments.
        echo_sentinel: Answer empty commands (the sentinel) when True.
        drop_commands: Close the connection instead of answering the next
            N non-empty commands.
        raw_reply: Bytes written verbatim instead of the next command reply.
        close_on_bad_auth: Hang up right after rejecting a password.
    """

    def __init__(self, password: str = "secret") -> None:
        self.password = password
        self.auth_style = "standard"
        self.responses: dict[str, list[str]] = {}
        self.echo_sentinel = True
        self.drop_commands = 0
        self.raw_reply: bytes | None = None
        self.close_on_bad_auth = False

        self.connections = 0
        self.received: list[Packet] = []
        self._server: asyncio.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    @property
    def commands(self) -> list[str]:
        """Non-empty command bodies received, in order."""
        return [
            p.body
            for p in self.received
            if p.type == PacketType.EXECCOMMAND and p.body
        ]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)

    async def stop(self) -> None:
        for writer in self._writers:
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.connections += 1
        self._writers.append(writer)
        try:
            while True:
                prefix = await reader.readexactly(4)
                (size,) = struct.unpack("<i", prefix)
                packet = decode_packet(prefix + await reader.readexactly(size))
                self.received.append(packet)
                if not await self._reply(packet, writer):
                    break
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    async def _reply(self, packet: Packet, writer: asyncio.StreamWriter) -> bool:
        if packet.type == PacketType.AUTH:
            result_id = packet.id if packet.body == self.password else -1
            ack = encode_packet(packet.id, PacketType.RESPONSE_VALUE, "")
            result = encode_packet(result_id, PacketType.AUTH_RESPONSE, "")
            if self.auth_style == "standard":
                writer.write(ack)
                await writer.drain()
                writer.write(result)
            elif self.auth_style == "reversed":
                writer.write(result)
                await writer.drain()
                writer.write(ack)
            elif self.auth_style == "combined":
                writer.write(ack + result)
            else:
                writer.write(result)
            await writer.drain()
            return not (self.close_on_bad_auth and result_id == -1)

        if not packet.body:
            if self.echo_sentinel:
                writer.write(encode_packet(packet.id, PacketType.RESPONSE_VALUE, ""))
                await writer.drain()
            return True

        if self.drop_commands > 0:
            self.drop_commands -= 1
            return False

        if self.raw_reply is not None:
            writer.write(self.raw_reply)
            self.raw_reply = None
            await writer.drain()
            return True

        fragments = self.responses.get(packet.body, [f"echo: {packet.body}"])
        for fragment in fragments:
            writer.write(encode_packet(packet.id, PacketType.RESPONSE_VALUE, fragment))
        await writer.drain()
        return True


class OneByteReader:
    """Stream reader stand-in that hands out a single byte per read()."""

    def __init__(self, data: bytes) -> None:
        self._data = bytearray(data)
        self.requested: list[int] = []

    async def read(self, n: int = -1) -> bytes:
        self.requested.append(n)
        if not self._data:
            return b""
        chunk = bytes(self._data[:1])
        del self._data[:1]
        return chunk


@pytest.fixture
async def rcon_server():
    """Start a FakeRconServer for the duration of a test."""
    server = FakeRconServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def mock_writer() -> MagicMock:
    """Create a mock asyncio StreamWriter."""
    writer = MagicMock(spec=asyncio.StreamWriter)
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    writer.is_closing.return_value = False
    return writer


def scripted_recv(
    *packets: Packet | BaseException,
) -> Callable[[], Coroutine[Any, Any, Packet]]:
    """Build a recv_packet replacement.

    Returns the given packets (raising any exception instances) in order,
    then blocks forever like a server that went quiet.
    """
    queue = list(packets)

    async def recv() -> Packet:
        if queue:
            item = queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    return recv


def create_mock_transport(*packets: Packet | BaseException) -> MagicMock:
    """Create a mock RconTransport that replays ``packets``.

    Args:
        packets: Packets (or exceptions) returned by recv_packet, in order

    Returns:
        Configured MagicMock transport
    """
    transport = MagicMock()
    transport.send = AsyncMock()
    transport.send_packet = AsyncMock()
    transport.recv_packet = AsyncMock(side_effect=scripted_recv(*packets))
    transport.close = AsyncMock()
    transport.is_closing = False
    return transport
