"""High-level session manager for Source RCON servers.

This module provides the API the command loop talks to. It handles:
- Connection management and authentication
- Session state machine
- Request id allocation
- One-shot reconnect with re-authentication when the connection drops
- Serialising exchanges (one command in flight at a time)

Nothing outside this module touches the transport of a live session.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from types import TracebackType

from .auth import authenticate
from .errors import (
    RconClientError,
    RconConnectError,
    RconConnectionLost,
    RconInvalidCredentials,
    RconMalformedPacket,
    RconSessionUnavailable,
)
from .exchange import run_exchange
from .transport import RconTransport

_LOGGER = logging.getLogger(__name__)

# Request ids stay positive; -1 is the server's "auth failed" marker.
MIN_REQUEST_ID = 1
MAX_REQUEST_ID = 2**31 - 1


class SessionState(Enum):
    """Connection state of an RCON session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    FAILED = "failed"


class RconSession:
    """Session manager for one RCON server.

    Usage:
        session = RconSession("127.0.0.1", 27015, password="secret")
        await session.connect()
        output = await session.submit_command("status")
        await session.close()

    or as an async context manager, which connects on entry and always
    closes on exit.
    """

    def __init__(
        self,
        host: str,
        port: int,
        password: str | None = None,
        *,
        connect_timeout: float = 10.0,
        auth_timeout: float = 10.0,
        response_timeout: float = 10.0,
    ) -> None:
        """Initialize session.

        Args:
            host: Server hostname or IP
            port: Server RCON port
            password: RCON password; may also be given to connect()
            connect_timeout: TCP connect timeout (seconds)
            auth_timeout: Wait for the auth response (seconds)
            response_timeout: Wait for a command's sentinel echo (seconds)
        """
        self.host = host
        self.port = port
        self._password = password

        self._connect_timeout = connect_timeout
        self._auth_timeout = auth_timeout
        self._response_timeout = response_timeout

        self._transport: RconTransport | None = None
        self._state = SessionState.DISCONNECTED
        self._next_id = MIN_REQUEST_ID
        self._lock = asyncio.Lock()
        self._state_callback: Callable[[SessionState], None] | None = None

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    @property
    def address(self) -> str:
        """Server address as host:port."""
        return f"{self.host}:{self.port}"

    @property
    def connection_state(self) -> SessionState:
        """Get current connection state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """Check if session is connected and authenticated."""
        return self._state is SessionState.READY

    def on_connection_state_changed(
        self, callback: Callable[[SessionState], None]
    ) -> None:
        """Register callback for connection state changes."""
        self._state_callback = callback

    async def connect(self, password: str | None = None) -> None:
        """Open a fresh connection and authenticate.

        Any previous connection is closed first. The password becomes the
        one used for automatic re-authentication. Waits for a command in
        flight to finish before touching the connection.

        Raises:
            RconConnectError: If the TCP connection cannot be established.
            RconInvalidCredentials: If the server rejected the password. The
                connection stays open for another authenticate() call.
            RconConnectionLost: If the server dropped the connection during
                the handshake.
        """
        async with self._lock:
            await self._connect(password)

    async def authenticate(self, password: str | None = None) -> None:
        """Run the auth handshake on the current connection.

        Waits for a command in flight to finish first.

        Raises:
            RconSessionUnavailable: If there is no open connection.
            RconInvalidCredentials: If the server rejected the password.
        """
        async with self._lock:
            await self._authenticate(password)

    async def submit_command(self, text: str) -> str:
        """Execute a command and return its complete response.

        Only one command is in flight at a time; concurrent callers wait.
        If the connection is lost, the session reconnects, re-authenticates
        with the last known password and retries the command once.

        Raises:
            RconSessionUnavailable: If the session is not ready or the
                reconnect cycle failed.
            RconResponseTimeout: If the response did not complete in time.
                The session stays usable.
            RconEncodingError: If the command is too long to send.
            RconMalformedPacket: If the server sent an invalid frame. The
                connection is closed.
        """
        async with self._lock:
            if not self.is_ready or self._transport is None:
                raise RconSessionUnavailable(
                    f"Session to {self.address} is {self._state.value}"
                )

            try:
                return await self._exchange(text)
            except RconConnectionLost as err:
                _LOGGER.warning(
                    "[%s] Connection lost (%s), reconnecting", self.address, err
                )

            try:
                await self._connect()
                return await self._exchange(text)
            except RconClientError as err:
                _LOGGER.error("[%s] Reconnect failed: %s", self.address, err)
                await self._close_transport()
                self._set_state(SessionState.FAILED)
                raise RconSessionUnavailable(
                    f"Session to {self.address} could not be restored"
                ) from err

    async def close(self) -> None:
        """Gracefully close session."""
        _LOGGER.info("[%s] Closing session", self.address)
        await self._close_transport()
        self._set_state(SessionState.DISCONNECTED)

    shutdown = close

    async def __aenter__(self) -> RconSession:
        try:
            await self.connect()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        """Update connection state and notify callback."""
        if self._state is not state:
            _LOGGER.debug(
                "[%s] State: %s → %s", self.address, self._state.value, state.value
            )
            self._state = state
            if self._state_callback:
                self._state_callback(state)

    def _allocate_request_id(self) -> int:
        """Return the next request id. Ids keep counting across reconnects."""
        request_id = self._next_id
        self._next_id += 1
        if self._next_id > MAX_REQUEST_ID:
            self._next_id = MIN_REQUEST_ID
        return request_id

    async def _connect(self, password: str | None = None) -> None:
        """Reconnect and authenticate. The caller holds the lock."""
        if password is not None:
            self._password = password
        if self._password is None:
            raise RconInvalidCredentials("No RCON password configured")

        await self._close_transport()
        self._set_state(SessionState.CONNECTING)
        _LOGGER.info("[%s] Connecting", self.address)

        try:
            self._transport = await RconTransport.connect(
                self.host, self.port, timeout=self._connect_timeout
            )
        except RconConnectError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self.address, err)
            self._set_state(SessionState.DISCONNECTED)
            raise
        except BaseException:
            self._set_state(SessionState.DISCONNECTED)
            raise

        await self._authenticate()

    async def _authenticate(self, password: str | None = None) -> None:
        """Run the auth handshake. The caller holds the lock."""
        if password is not None:
            self._password = password
        if self._password is None:
            raise RconInvalidCredentials("No RCON password configured")
        transport = self._transport
        if transport is None or transport.is_closing:
            raise RconSessionUnavailable(f"Not connected to {self.address}")

        self._set_state(SessionState.AUTHENTICATING)
        try:
            await authenticate(
                transport,
                self._password,
                self._allocate_request_id(),
                timeout=self._auth_timeout,
            )
        except RconInvalidCredentials:
            _LOGGER.warning("[%s] Authentication rejected", self.address)
            self._set_state(SessionState.FAILED)
            raise
        except BaseException:
            # Connection-level failure (or cancellation): the stream is unusable
            await self._close_transport()
            self._set_state(SessionState.DISCONNECTED)
            raise

        _LOGGER.info("[%s] Authenticated", self.address)
        self._set_state(SessionState.READY)

    async def _exchange(self, text: str) -> str:
        transport = self._transport
        if transport is None:
            raise RconSessionUnavailable(f"Not connected to {self.address}")

        request_id = self._allocate_request_id()
        sentinel_id = self._allocate_request_id()
        try:
            return await run_exchange(
                transport,
                text,
                request_id,
                sentinel_id,
                timeout=self._response_timeout,
            )
        except RconMalformedPacket:
            _LOGGER.error(
                "[%s] Invalid packet from server, closing connection", self.address
            )
            await self._close_transport()
            self._set_state(SessionState.DISCONNECTED)
            raise

    async def _close_transport(self) -> None:
        if self._transport is not None:
            transport, self._transport = self._transport, None
            await transport.close()


async def connect_and_authenticate(
    host: str,
    port: int,
    password: str,
    **options: float,
) -> RconSession:
    """Create a session and bring it to the ready state.

    Keyword options are passed on to RconSession.

    Raises:
        RconConnectError: If the server cannot be reached.
        RconInvalidCredentials: If the password was rejected. The connection
            is closed.
    """
    session = RconSession(host, port, password, **options)
    try:
        await session.connect()
    except BaseException:
        await session.close()
        raise
    return session


async def submit_command(session: RconSession, text: str) -> str:
    """Run one command on ``session`` and return the response body."""
    return await session.submit_command(text)


async def shutdown(session: RconSession) -> None:
    """Release the session's socket."""
    await session.close()
