"""Client error types for Source RCON server interactions."""

from __future__ import annotations


class RconClientError(Exception):
    """Base error for RCON client failures."""


class RconConnectError(RconClientError):
    """TCP connection to the server could not be established."""


class RconProtocolError(RconClientError):
    """Packet framing violated the RCON wire format."""


class RconEncodingError(RconProtocolError):
    """Outbound packet cannot be encoded (too large or embedded NUL)."""


class RconMalformedPacket(RconProtocolError):
    """Inbound bytes do not form a valid RCON packet."""


class RconInvalidCredentials(RconClientError):
    """Server rejected the RCON password."""


class RconConnectionLost(RconClientError):
    """Socket closed or errored while the session was in use."""


class RconConnectionClosed(RconConnectionLost):
    """Peer closed the stream before a full frame was read."""

    def __init__(self, message: str, *, received: int = 0, expected: int = 0) -> None:
        super().__init__(message)
        self.received = received
        self.expected = expected


class RconIoError(RconConnectionLost):
    """Socket read or write failed."""


class RconResponseTimeout(RconClientError):
    """The server did not finish answering within the allotted time."""


class RconSessionUnavailable(RconClientError):
    """Session cannot serve commands; the connect flow must be restarted."""
