"""TCP stream helpers for the RCON transport."""

from __future__ import annotations

import asyncio
import socket

from .errors import RconConnectError, RconConnectionClosed, RconIoError


async def open_stream(
    host: str,
    port: int,
    *,
    timeout: float = 10.0,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a TCP stream to an RCON server.

    Args:
        host: Server hostname or IP
        port: Server RCON port
        timeout: Connection timeout in seconds

    Raises:
        RconConnectError: If the host is unreachable, refuses the connection
            or does not answer within ``timeout``.
    """
    try:
        return await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise RconConnectError(f"Connection to {host}:{port} timed out") from err
    except socket.gaierror as err:
        raise RconConnectError(f"Cannot resolve {host}: {err}") from err
    except OSError as err:
        raise RconConnectError(f"Connection to {host}:{port} failed: {err}") from err


async def fill_buffer(
    reader: asyncio.StreamReader, buffer: bytearray, count: int
) -> None:
    """Read from ``reader`` until ``buffer`` holds at least ``count`` bytes.

    TCP has no record boundaries, so a single frame can arrive in any number
    of segments. Never requests more than the missing byte count, so bytes of
    a following frame stay in the reader. Data already appended to ``buffer``
    survives cancellation of this coroutine.

    Raises:
        RconConnectionClosed: If the peer closes before ``count`` bytes arrive.
        RconIoError: On any other socket error.
    """
    while len(buffer) < count:
        try:
            chunk = await reader.read(count - len(buffer))
        except OSError as err:
            raise RconIoError(f"Socket read failed: {err}") from err
        if not chunk:
            raise RconConnectionClosed(
                "Connection closed by server",
                received=len(buffer),
                expected=count,
            )
        buffer.extend(chunk)


async def read_exactly(
    reader: asyncio.StreamReader,
    count: int,
    buffer: bytearray | None = None,
) -> bytes:
    """Return exactly ``count`` bytes, consuming them from ``buffer``.

    ``buffer`` carries bytes left over from an earlier, interrupted read.
    """
    if buffer is None:
        buffer = bytearray()
    await fill_buffer(reader, buffer, count)
    data = bytes(buffer[:count])
    del buffer[:count]
    return data
