"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from avail.runtime import RuntimeLocation

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def location(tmp_path: Path) -> RuntimeLocation:
    """Runtime root inside the test's tmp dir."""
    return RuntimeLocation(tmp_path / "run")


def mock_client(handler: Handler) -> httpx.AsyncClient:
    """AsyncClient answering every request with ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_response(status_code: int = 200, body: bytes = b"ok", **headers: str) -> httpx.Response:
    request = httpx.Request("GET", "http://example.test/health")
    return httpx.Response(
        status_code,
        headers={"content-type": "text/plain", **headers},
        content=body,
        request=request,
    )


@pytest.fixture(name="make_response")
def make_response_fixture() -> Callable[..., httpx.Response]:
    return make_response


@pytest.fixture(name="mock_client")
def mock_client_fixture() -> Callable[[Handler], httpx.AsyncClient]:
    return mock_client
