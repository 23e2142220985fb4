"""Command/response exchange with multi-packet reassembly.

RCON has no "more packets follow" flag. A response that does not fit one
packet is split over several RESPONSE_VALUE packets sharing the request id.
To find the end, an empty command with a second id (the sentinel) is sent
right behind the real one. Servers answer in order, so the sentinel's echo
arrives after the last fragment of the real response.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import RconResponseTimeout
from .protocol import PacketType, encode_packet

if TYPE_CHECKING:
    from .transport import RconTransport

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingExchange:
    """In-flight command awaiting its sentinel echo."""

    request_id: int
    sentinel_id: int
    fragments: list[str] = field(default_factory=list)
    complete: bool = False

    def accept(self, packet_id: int, body: str) -> bool:
        """Feed one received packet.

        Returns:
            True if the packet belonged to this exchange.
        """
        if packet_id == self.request_id:
            self.fragments.append(body)
            return True
        if packet_id == self.sentinel_id:
            self.complete = True
            return True
        return False

    @property
    def body(self) -> str:
        """Concatenated response body received so far."""
        return "".join(self.fragments)


async def run_exchange(
    transport: RconTransport,
    command: str,
    request_id: int,
    sentinel_id: int,
    *,
    timeout: float = 10.0,
) -> str:
    """Send ``command`` and collect its full response.

    Args:
        transport: Authenticated transport.
        command: Command text.
        request_id: Id for the command packet.
        sentinel_id: Id for the trailing empty packet; must differ from
            ``request_id`` and from any id still in flight.
        timeout: Seconds to wait for the sentinel echo.

    Returns:
        Response body, concatenated from all fragments in arrival order.

    Raises:
        RconEncodingError: If the command cannot be encoded; nothing is sent.
        RconResponseTimeout: If the sentinel echo did not arrive in time.
        RconConnectionLost: If the connection failed during the exchange.
        RconMalformedPacket: If the server sent an invalid frame.
    """
    # Encode both packets before writing anything
    data = encode_packet(request_id, PacketType.EXECCOMMAND, command)
    data += encode_packet(sentinel_id, PacketType.EXECCOMMAND, "")

    exchange = PendingExchange(request_id=request_id, sentinel_id=sentinel_id)
    await transport.send(data)
    _LOGGER.debug(
        "Command sent id=%d sentinel=%d (%d chars)",
        request_id,
        sentinel_id,
        len(command),
    )

    try:
        await asyncio.wait_for(_collect(transport, exchange), timeout=timeout)
    except TimeoutError as err:
        _LOGGER.warning(
            "No end of response for id=%d after %.1fs, dropping %d fragment(s)",
            request_id,
            timeout,
            len(exchange.fragments),
        )
        raise RconResponseTimeout(
            f"Response to request {request_id} not completed within {timeout:.1f}s"
        ) from err

    _LOGGER.debug(
        "Response id=%d complete: %d fragment(s)",
        request_id,
        len(exchange.fragments),
    )
    return exchange.body


async def _collect(transport: RconTransport, exchange: PendingExchange) -> None:
    while not exchange.complete:
        packet = await transport.recv_packet()
        if not exchange.accept(packet.id, packet.body):
            _LOGGER.warning(
                "Discarding packet with unknown id=%d type=%d",
                packet.id,
                packet.type,
            )
