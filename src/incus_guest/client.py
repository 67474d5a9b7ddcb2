"""Guest API client.

One-shot calls against the dev-incus API plus entry points into the
event stream. The API is documented at
https://linuxcontainers.org/incus/docs/main/dev-incus/

Usage:
    async with create_client() as client:
        info = await client.info()
        value = await client.get_config("my_config_item")

        await client.listen_for_events(on_event, EventType.CONFIG, cancel=stop)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
import pydantic
from pydantic import TypeAdapter

from .config import GuestConfig
from .errors import (
    DecodeError,
    GuestAPIError,
    MissingConfigError,
    SocketError,
    UnexpectedStatusError,
)
from .events import EventHandler, EventListener
from .transport import GuestTransport, UnixSocketTransport
from .types import ConfigEvent, DeviceEvent, Devices, EventType, InstanceInfo

logger = logging.getLogger(__name__)

T = TypeVar("T")

INSTANCE_INFO_PATH = "/1.0"
DEVICES_PATH = "/1.0/devices"
CONFIG_PATH = "/1.0/config"
METADATA_PATH = "/1.0/meta-data"

# Instances may only read these config namespaces
CONFIG_KEY_PREFIXES = ("user.", "cloud-init.")
DEFAULT_CONFIG_KEY_PREFIX = "user."

_config_keys_adapter: TypeAdapter[list[str]] = TypeAdapter(list[str])
_devices_adapter: TypeAdapter[Devices] = TypeAdapter(Devices)
_info_adapter: TypeAdapter[InstanceInfo] = TypeAdapter(InstanceInfo)


def format_config_key(key: str) -> str:
    """Prefix a config key with `user.` unless it is already namespaced."""
    if key.startswith(CONFIG_KEY_PREFIXES):
        return key
    return f"{DEFAULT_CONFIG_KEY_PREFIX}{key}"


def config_key_path(key: str) -> str:
    """Path of a single config key, with the key escaped as one segment."""
    return f"{CONFIG_PATH}/{quote(format_config_key(key), safe='')}"


class GuestClient:
    """Client for the dev-incus guest API.

    No call retries; every error surfaces as a GuestAPIError subclass
    naming the stage that failed.
    """

    def __init__(
        self,
        config: GuestConfig | None = None,
        transport: GuestTransport | None = None,
    ):
        self.config = config or GuestConfig()
        self._transport = transport or UnixSocketTransport(self.config)
        self._http_client: httpx.AsyncClient | None = None
        self._listener: EventListener | None = None

    # =========================================================================
    # Instance
    # =========================================================================

    async def info(self) -> InstanceInfo:
        """Return information about the API and the instance state."""
        return await self._get_json(INSTANCE_INFO_PATH, _info_adapter)

    async def devices(self) -> Devices:
        """Return the devices attached to the instance, keyed by name."""
        return await self._get_json(DEVICES_PATH, _devices_adapter)

    async def metadata(self) -> str:
        """Return the cloud-init meta-data of the instance."""
        response = await self._request("GET", METADATA_PATH)
        self._check_status(response, METADATA_PATH)
        return response.text

    # =========================================================================
    # Config
    # =========================================================================

    async def list_config(self) -> list[str]:
        """Return all config keys available to the instance."""
        return await self._get_json(CONFIG_PATH, _config_keys_adapter)

    async def get_config(self, key: str) -> str:
        """Return the value of a config key, or "" if it is not set.

        Keys without a `user.` or `cloud-init.` prefix are looked up
        under `user.`, since instances can only see those namespaces.
        """
        path = config_key_path(key)
        response = await self._request("GET", path)
        if response.status_code == httpx.codes.NOT_FOUND:
            return ""
        self._check_status(response, path)
        return response.text

    async def has_config(self, key: str) -> bool:
        """Check whether a config key is set. Keys are prefixed as in get_config."""
        path = config_key_path(key)
        response = await self._request("HEAD", path)
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        self._check_status(response, path)
        return True

    async def must_config(self, key: str) -> str:
        """Return the value of a config key that has to be set.

        Raises:
            MissingConfigError: If the key could not be loaded or is blank
        """
        try:
            value = await self.get_config(key)
        except GuestAPIError as e:
            raise MissingConfigError(key, f"error loading config key {key}: {e}") from e

        if value == "":
            raise MissingConfigError(key, f"loaded key {key} is blank")
        return value

    # =========================================================================
    # Events
    # =========================================================================

    @property
    def listener(self) -> EventListener:
        """Event listener shared by listen_for_events and events."""
        if self._listener is None:
            self._listener = EventListener(
                self._transport,
                max_pending=self.config.max_pending_handlers,
                skip_invalid=self.config.skip_invalid_events,
            )
        return self._listener

    async def listen_for_events(
        self,
        handler: EventHandler,
        *event_types: EventType | str,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Listen for events, calling handler for each one.

        Blocks until `cancel` is set (returns) or the stream fails
        (raises). Subscribes to all event types when none are given;
        invalid types are ignored. Run it in its own task to keep
        doing other work meanwhile.
        """
        await self.listener.listen(handler, *event_types, cancel=cancel)

    async def events(
        self, *event_types: EventType | str
    ) -> AsyncIterator[ConfigEvent | DeviceEvent]:
        """Iterate over events as they arrive.

        Use `contextlib.aclosing` to close the stream as soon as the
        loop ends, as with `EventListener.stream`.
        """
        async with aclosing(self.listener.stream(*event_types)) as stream:
            async for event in stream:
                yield event

    # =========================================================================
    # Plumbing
    # =========================================================================

    async def _request(self, method: str, path: str) -> httpx.Response:
        """Execute a request against the guest API."""
        if self._http_client is None:
            self._http_client = self._transport.http_client()

        try:
            response = await self._http_client.request(method, path)
        except (httpx.ReadError, httpx.RemoteProtocolError) as e:
            raise SocketError(f"reader error: {e}") from e
        except httpx.HTTPError as e:
            raise SocketError(f"socket error: {e}") from e

        logger.debug(f"{method} {path} -> {response.status_code}")
        return response

    async def _get_json(self, path: str, adapter: TypeAdapter[T]) -> T:
        response = await self._request("GET", path)
        self._check_status(response, path)
        try:
            return adapter.validate_json(response.content)
        except pydantic.ValidationError as e:
            raise DecodeError(f"unmarshal error: {path}: {e.errors()[0]['msg']}") from e

    @staticmethod
    def _check_status(response: httpx.Response, path: str) -> None:
        if response.status_code != httpx.codes.OK:
            raise UnexpectedStatusError(response.status_code, path)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> GuestClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def create_client(socket_path: str | None = None, **overrides: Any) -> GuestClient:
    """Create a client configured from the environment.

    Args:
        socket_path: Override for the dev-incus socket path
        **overrides: Other GuestConfig fields

    Returns:
        GuestClient talking to the Unix socket
    """
    config = GuestConfig.from_env(socket_path=socket_path, **overrides)
    return GuestClient(config)
