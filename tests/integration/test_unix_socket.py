"""Integration tests against a real Unix socket.

A websockets server bound to a temporary socket plays the host: it
serves the events endpoint and answers plain HTTP requests through
process_request.
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
from collections.abc import AsyncIterator, Callable
from http import HTTPStatus
from pathlib import Path

import pytest
from websockets.asyncio.server import ServerConnection, unix_serve
from websockets.http11 import Request, Response

from incus_guest import (
    ConfigEvent,
    DeviceEvent,
    EventType,
    GuestClient,
    GuestConfig,
    StreamError,
    UnexpectedStatusError,
    is_inside_instance,
)
from tests.helpers.messages import config_message, device_message

pytestmark = [
    pytest.mark.anyio,
    pytest.mark.integration,
    pytest.mark.skipif(sys.platform == "win32", reason="needs AF_UNIX"),
]

ProcessRequest = Callable[[ServerConnection, Request], Response | None]


@contextlib.asynccontextmanager
async def fake_host(
    socket_path: str,
    messages: list[str],
    process_request: ProcessRequest | None = None,
    hold_open: bool = False,
) -> AsyncIterator[list[str]]:
    """Serve the events endpoint; yields the list of requested paths."""
    paths: list[str] = []

    async def handler(ws: ServerConnection) -> None:
        paths.append(ws.request.path)
        for message in messages:
            await ws.send(message)
        if hold_open:
            await ws.wait_closed()

    async with unix_serve(handler, socket_path, process_request=process_request):
        yield paths


@pytest.fixture
def socket_path(short_tmp: Path) -> str:
    return str(short_tmp / "sock")


async def test_probe_sees_server(socket_path: str) -> None:
    async with fake_host(socket_path, []):
        assert is_inside_instance(socket_path) is True


async def test_events_until_host_closes(socket_path: str) -> None:
    """Messages sent before the close are all delivered, then StreamError."""
    messages = [config_message("user.a", value="1"), device_message("serial")]

    async with fake_host(socket_path, messages) as paths:
        client = GuestClient(GuestConfig(socket_path=socket_path))
        seen: list[ConfigEvent | DeviceEvent] = []

        async def handler(event: ConfigEvent | DeviceEvent) -> None:
            seen.append(event)

        with pytest.raises(StreamError):
            await client.listen_for_events(handler, EventType.CONFIG, EventType.DEVICE)
        await client.listener.join()

    assert paths == ["/1.0/events?type=config,device"]
    assert [event.event_type for event in seen] == [EventType.CONFIG, EventType.DEVICE]
    assert seen[0].metadata.value == "1"


async def test_cancelling_task_closes_connection(socket_path: str) -> None:
    async with fake_host(socket_path, [config_message("user.a")], hold_open=True) as paths:
        client = GuestClient(GuestConfig(socket_path=socket_path))
        received = asyncio.Event()

        async def handler(event: ConfigEvent | DeviceEvent) -> None:
            received.set()

        task = asyncio.create_task(client.listen_for_events(handler))
        await asyncio.wait_for(received.wait(), timeout=5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    assert paths == ["/1.0/events"]


async def test_refused_upgrade(socket_path: str) -> None:
    def refuse(connection: ServerConnection, request: Request) -> Response:
        return connection.respond(HTTPStatus.FORBIDDEN, "not allowed\n")

    async with fake_host(socket_path, [], process_request=refuse):
        client = GuestClient(GuestConfig(socket_path=socket_path))

        with pytest.raises(UnexpectedStatusError) as exc_info:
            await client.listen_for_events(lambda event: None)

    assert exc_info.value.status_code == 403


async def test_config_over_http(socket_path: str) -> None:
    """One-shot calls reach the socket through httpx."""
    requested: list[str] = []

    def answer(connection: ServerConnection, request: Request) -> Response | None:
        requested.append(request.path)
        if request.path == "/1.0/config/user.foo":
            return connection.respond(HTTPStatus.OK, "bar")
        return connection.respond(HTTPStatus.NOT_FOUND, "not found")

    async with fake_host(socket_path, [], process_request=answer):
        async with GuestClient(GuestConfig(socket_path=socket_path)) as client:
            assert await client.get_config("foo") == "bar"
            assert await client.get_config("missing") == ""

    assert requested == ["/1.0/config/user.foo", "/1.0/config/user.missing"]
