"""pytest configuration and shared fixtures for Atrium tests."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from atrium.discovery.config_store import ConfigStore
from atrium.discovery.models import ConfigDocument
from atrium.discovery.prober import HttpProber
from atrium.discovery.registry import ServiceRegistry


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeNetwork:
    """Stands in for the network behind an :class:`httpx.MockTransport`.

    ``endpoints`` maps ``"host:port"`` to a dict with optional keys:

    * ``health`` — status code for ``/health`` (default 200)
    * ``info``   — JSON body (or raw ``str``) for ``/service-info``; absent → 404
    * ``delay``  — seconds to sleep before answering anything
    * ``paths``  — extra ``{path: status}`` entries (e.g. custom health paths)

    Hosts not listed refuse the connection.  Every request URL is appended to
    ``calls`` and every 200 health answer to ``healthy``.
    """

    def __init__(self, endpoints: dict[str, dict[str, Any]] | None = None) -> None:
        self.endpoints: dict[str, dict[str, Any]] = endpoints or {}
        self.calls: list[str] = []
        self.healthy: list[str] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        key = f"{request.url.host}:{request.url.port}"
        spec = self.endpoints.get(key)
        if spec is None:
            raise httpx.ConnectError("Connection refused", request=request)
        if spec.get("delay"):
            await asyncio.sleep(spec["delay"])
        path = request.url.path
        if path in spec.get("paths", {}):
            return httpx.Response(spec["paths"][path])
        if path == "/health":
            code = spec.get("health", 200)
            if code == 200:
                self.healthy.append(key)
            return httpx.Response(code, json={"status": "ok"})
        if path == "/service-info":
            if "info" not in spec:
                return httpx.Response(404)
            body = spec["info"]
            if isinstance(body, str):
                return httpx.Response(200, text=body)
            return httpx.Response(200, json=body)
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
async def prober(network):
    p = HttpProber(timeout=0.5, info_timeout=0.5, transport=network.transport())
    yield p
    await p.aclose()


@pytest.fixture
def config_store(tmp_path):
    return ConfigStore(tmp_path / "services.json")


@pytest.fixture
def registry(config_store):
    """Registry seeded with the default document (board/calendar/gallery internal)."""
    return ServiceRegistry.bootstrap(config_store)


@pytest.fixture
def empty_registry(config_store):
    """Registry with no internal services and no categories."""
    return ServiceRegistry(config_store, ConfigDocument())
