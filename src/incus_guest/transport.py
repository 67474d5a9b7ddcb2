"""Transports for the dev-incus socket.

The guest API is plain HTTP spoken over a Unix socket, and the events
endpoint upgrades to a WebSocket over that same socket.

Architecture:
- GuestTransport is the PROTOCOL both clients depend on
- UnixSocketTransport talks to the real socket (httpx + websockets)
- MockTransport serves canned HTTP responses and scripted stream
  messages in memory, for tests

A transport hands out two things: an httpx.AsyncClient for one-shot
calls, and a stream connection (async context manager) for the events
endpoint. The stream connection translates transport failures into
SocketError / StreamError so callers never see library exceptions.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AbstractAsyncContextManager
from typing import Protocol, runtime_checkable

import httpx
from websockets.asyncio.client import ClientConnection, unix_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus

from .config import SOCKET_PATH, GuestConfig
from .errors import SocketError, StreamError, UnexpectedStatusError

logger = logging.getLogger(__name__)

# Host name used in request URLs. The socket ignores it but HTTP needs one.
API_HOST = "incus"
BASE_URL = f"http://{API_HOST}"


def is_inside_instance(socket_path: str = SOCKET_PATH) -> bool:
    """Check whether the dev-incus socket can be reached.

    Opens a connection to the socket and closes it straight away. No
    request is sent.
    """
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.connect(socket_path)
    except OSError as e:
        logger.debug(f"Socket {socket_path} not reachable: {e}")
        return False
    return True


@runtime_checkable
class StreamConnection(Protocol):
    """A connection delivering discrete messages from the events endpoint."""

    async def recv(self) -> str | bytes:
        """Wait for the next message.

        Raises:
            StreamError: If the connection failed or was closed
        """
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...


@runtime_checkable
class GuestTransport(Protocol):
    """Protocol for guest API transports."""

    def http_client(self) -> httpx.AsyncClient:
        """Create an HTTP client bound to the guest API."""
        ...

    def open_stream(self, path: str) -> AbstractAsyncContextManager[StreamConnection]:
        """Open a streaming connection to the given API path.

        Raises:
            SocketError: If the connection could not be established
            UnexpectedStatusError: If the host refused the upgrade
        """
        ...


class WebSocketStream:
    """StreamConnection backed by a websockets client connection."""

    def __init__(self, ws: ClientConnection):
        self._ws = ws

    async def recv(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise StreamError(f"error in reader: {e}") from e
        except OSError as e:
            raise StreamError(f"error in reader: {e}") from e

    async def close(self) -> None:
        await self._ws.close()


class UnixSocketTransport:
    """Transport over the dev-incus Unix socket."""

    def __init__(self, config: GuestConfig | None = None):
        self.config = config or GuestConfig()

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.AsyncHTTPTransport(uds=self.config.socket_path),
            base_url=BASE_URL,
            timeout=httpx.Timeout(self.config.timeout),
        )

    @contextlib.asynccontextmanager
    async def open_stream(self, path: str) -> AsyncIterator[StreamConnection]:
        uri = f"ws://{API_HOST}{path}"
        try:
            ws = await unix_connect(
                self.config.socket_path,
                uri,
                open_timeout=self.config.timeout,
                ping_interval=30,
                ping_timeout=10,
            )
        except InvalidStatus as e:
            raise UnexpectedStatusError(e.response.status_code, path) from e
        except (OSError, InvalidHandshake, TimeoutError) as e:
            raise SocketError(f"socket error: {e}") from e

        logger.debug(f"Stream connected: {uri}")
        stream = WebSocketStream(ws)
        try:
            yield stream
        finally:
            await stream.close()
            logger.debug(f"Stream closed: {uri}")


class MockStream:
    """In-memory StreamConnection replaying scripted messages.

    Items that are exceptions are raised from recv() instead of being
    returned. Once the script runs out, recv() reports a closed
    connection, the same way a host hanging up would surface.
    """

    def __init__(
        self,
        messages: Iterable[str | bytes | Exception],
        on_recv: Callable[[int], None] | None = None,
    ):
        self._messages: asyncio.Queue[str | bytes | Exception] = asyncio.Queue()
        for message in messages:
            self._messages.put_nowait(message)
        self._on_recv = on_recv
        self.received = 0
        self.closed = False

    def push(self, message: str | bytes | Exception) -> None:
        """Queue another message."""
        self._messages.put_nowait(message)

    async def recv(self) -> str | bytes:
        if self.closed:
            raise StreamError("error in reader: connection closed")
        if self._messages.empty():
            raise StreamError("error in reader: connection closed by host")

        message = await self._messages.get()
        if isinstance(message, StreamError):
            raise message
        if isinstance(message, Exception):
            raise StreamError(f"error in reader: {message}") from message

        self.received += 1
        if self._on_recv:
            self._on_recv(self.received)
        return message

    async def close(self) -> None:
        self.closed = True


class MockTransport:
    """Mock transport for testing.

    HTTP calls are served by any httpx transport (httpx.MockTransport,
    or httpx.ASGITransport wrapping a fake host app). Stream messages
    are scripted up front and every opened path is recorded.

    Usage:
        transport = MockTransport(
            messages=['{"timestamp": "t", "type": "config"}'],
        )
        listener = EventListener(transport)
        await listener.listen(handler, EventType.CONFIG)

        assert transport.opened_paths == ["/1.0/events?type=config"]
    """

    def __init__(
        self,
        http: httpx.AsyncBaseTransport | None = None,
        messages: Iterable[str | bytes | Exception] = (),
        on_recv: Callable[[int], None] | None = None,
        open_error: Exception | None = None,
    ):
        self._http = http or httpx.MockTransport(lambda request: httpx.Response(404))
        self._open_error = open_error
        self.stream = MockStream(messages, on_recv=on_recv)
        self.opened_paths: list[str] = []

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._http, base_url=BASE_URL)

    @contextlib.asynccontextmanager
    async def open_stream(self, path: str) -> AsyncIterator[StreamConnection]:
        self.opened_paths.append(path)
        if self._open_error is not None:
            raise self._open_error
        try:
            yield self.stream
        finally:
            await self.stream.close()


def create_transport(config: GuestConfig | None = None) -> UnixSocketTransport:
    """Create a transport for the configured dev-incus socket."""
    return UnixSocketTransport(config)
