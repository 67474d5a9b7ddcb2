"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest

from incus_guest import GuestClient, GuestConfig, MockTransport
from tests.helpers.fake_host import FakeHost


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def host_transport(fake_host: FakeHost) -> MockTransport:
    """Transport serving HTTP calls from the fake host app."""
    return MockTransport(http=httpx.ASGITransport(app=fake_host.app))


@pytest.fixture
def client(host_transport: MockTransport) -> GuestClient:
    return GuestClient(GuestConfig(), transport=host_transport)


@pytest.fixture
def short_tmp() -> Iterator[Path]:
    """Temporary directory with a path short enough for AF_UNIX sockets."""
    path = Path(tempfile.mkdtemp(prefix="ig", dir="/tmp"))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
