"""Shared fixtures: the app wired to a mocked upstream through httpx.MockTransport."""

import httpx
import pytest
from fastapi.testclient import TestClient

from geoapp.main import create_app


class Upstream:
    """Records requests and answers with ``handler`` (or a fixed response)."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handler = lambda request: httpx.Response(200, json={})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def app(upstream):
    return create_app(http_client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)))


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
