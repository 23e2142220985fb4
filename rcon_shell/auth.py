"""RCON authentication handshake."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .errors import RconInvalidCredentials, RconMalformedPacket, RconResponseTimeout
from .protocol import PacketType

if TYPE_CHECKING:
    from .protocol import Packet
    from .transport import RconTransport

_LOGGER = logging.getLogger(__name__)

AUTH_FAILED_ID = -1


async def authenticate(
    transport: RconTransport,
    password: str,
    request_id: int,
    *,
    timeout: float = 10.0,
) -> None:
    """Authenticate the connection behind ``transport``.

    Servers answer an auth request with an empty RESPONSE_VALUE packet and
    then the AUTH_RESPONSE, but some send only the latter or merge both into
    one segment. Packets are read until the AUTH_RESPONSE shows up; anything
    before it is discarded.

    Args:
        transport: Freshly connected transport.
        password: RCON password.
        request_id: Id for the auth packet, allocated by the session.
        timeout: Seconds to wait for the AUTH_RESPONSE.

    Raises:
        RconInvalidCredentials: If the server answered with id -1.
        RconMalformedPacket: If the AUTH_RESPONSE carries an unknown id.
        RconResponseTimeout: If no AUTH_RESPONSE arrived in time.
        RconConnectionLost: If the connection failed during the exchange.
    """
    await transport.send_packet(request_id, PacketType.AUTH, password)

    try:
        response = await asyncio.wait_for(
            _wait_auth_response(transport, request_id), timeout=timeout
        )
    except TimeoutError as err:
        raise RconResponseTimeout(
            f"No auth response within {timeout:.1f}s"
        ) from err

    if response.id == AUTH_FAILED_ID:
        raise RconInvalidCredentials("Server rejected the RCON password")
    if response.id != request_id:
        raise RconMalformedPacket(
            f"Auth response id {response.id} does not match request id {request_id}"
        )


async def _wait_auth_response(transport: RconTransport, request_id: int) -> Packet:
    while True:
        packet = await transport.recv_packet()
        # Type 2 right after an auth request can only be the AUTH_RESPONSE
        if packet.type == PacketType.AUTH_RESPONSE:
            return packet
        if packet.id == request_id and not packet.body:
            _LOGGER.debug("Discarding empty auth acknowledgement id=%d", packet.id)
            continue
        _LOGGER.warning(
            "Discarding unexpected packet during auth: id=%d type=%d",
            packet.id,
            packet.type,
        )
