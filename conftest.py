"""Shared fixtures: a scriptable fake of the remote HealthNet API."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest

from services.portal_api import PortalApiClient

BASE_URL = "http://healthnet.test"


class FakeHealthNet:
    """Answers requests from canned replies keyed by (method, path)."""

    def __init__(self) -> None:
        self.replies: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def reply(self, method: str, path: str, status_code: int = 200, **kwargs: Any) -> None:
        self.replies[(method, path)] = lambda request: httpx.Response(status_code, **kwargs)

    def fail(self, method: str, path: str) -> None:
        def raise_error(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        self.replies[(method, path)] = raise_error

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        build = self.replies.get((request.method, request.url.path))
        if build is None:
            return httpx.Response(404, text="Not found")
        return build(request)

    def client(self) -> PortalApiClient:
        return PortalApiClient(BASE_URL, transport=httpx.MockTransport(self.handler))

    def sent(self, path: str) -> List[Dict[str, Any]]:
        """Decoded JSON bodies of every request made to `path`."""
        return [json.loads(r.content) for r in self.requests if r.url.path == path and r.content]


@pytest.fixture
def healthnet() -> FakeHealthNet:
    return FakeHealthNet()


@pytest.fixture
def api(healthnet: FakeHealthNet) -> PortalApiClient:
    return healthnet.client()
