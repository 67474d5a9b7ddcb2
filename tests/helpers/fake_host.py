"""Starlette stand-in for the dev-incus API."""

from __future__ import annotations

from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route


class FakeHost:
    """Starlette app answering like the dev-incus API of a running instance.

    Records every (method, path) it serves.
    """

    def __init__(self) -> None:
        self.info: dict[str, Any] = {
            "api_version": "1.0",
            "location": "node1",
            "instance_type": "container",
            "state": "Running",
        }
        self.config: dict[str, str] = {
            "user.foo": "bar",
            "user.blank": "",
            "cloud-init.user-data": "#cloud-config\n",
        }
        self.devices: dict[str, dict[str, str]] = {
            "eth0": {"type": "nic", "network": "incusbr0"},
            "root": {"type": "disk", "path": "/", "pool": "default"},
        }
        self.meta_data = "#cloud-config\ninstance-id: c1\nlocal-hostname: c1\n"
        self.requests: list[tuple[str, str]] = []

        self.app = Starlette(
            routes=[
                Route("/1.0", self._info),
                Route("/1.0/devices", self._devices),
                Route("/1.0/config", self._config_list),
                Route("/1.0/config/{key}", self._config_key),
                Route("/1.0/meta-data", self._meta_data),
            ]
        )

    def _record(self, request: Request) -> None:
        self.requests.append((request.method, request.url.path))

    async def _info(self, request: Request) -> Response:
        self._record(request)
        return JSONResponse(self.info)

    async def _devices(self, request: Request) -> Response:
        self._record(request)
        return JSONResponse(self.devices)

    async def _config_list(self, request: Request) -> Response:
        self._record(request)
        return JSONResponse(sorted(self.config))

    async def _config_key(self, request: Request) -> Response:
        self._record(request)
        key = request.path_params["key"]
        if key not in self.config:
            return PlainTextResponse("not found", status_code=404)
        return PlainTextResponse(self.config[key])

    async def _meta_data(self, request: Request) -> Response:
        self._record(request)
        return PlainTextResponse(self.meta_data)
