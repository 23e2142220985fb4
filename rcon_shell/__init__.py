"""Source RCON client: packet codec, transport and session manager."""

__version__ = "0.1.0"

from .errors import (
    RconClientError,
    RconConnectError,
    RconConnectionClosed,
    RconConnectionLost,
    RconEncodingError,
    RconInvalidCredentials,
    RconIoError,
    RconMalformedPacket,
    RconProtocolError,
    RconResponseTimeout,
    RconSessionUnavailable,
)
from .protocol import (
    MAX_PACKET_SIZE,
    Packet,
    PacketType,
    decode_body,
    decode_header,
    decode_packet,
    encode_packet,
)
from .session import (
    RconSession,
    SessionState,
    connect_and_authenticate,
    shutdown,
    submit_command,
)
from .transport import RconTransport

__all__ = [
    "MAX_PACKET_SIZE",
    "Packet",
    "PacketType",
    "RconClientError",
    "RconConnectError",
    "RconConnectionClosed",
    "RconConnectionLost",
    "RconEncodingError",
    "RconInvalidCredentials",
    "RconIoError",
    "RconMalformedPacket",
    "RconProtocolError",
    "RconResponseTimeout",
    "RconSession",
    "RconSessionUnavailable",
    "RconTransport",
    "SessionState",
    "__version__",
    "connect_and_authenticate",
    "decode_body",
    "decode_header",
    "decode_packet",
    "encode_packet",
    "shutdown",
    "submit_command",
]
