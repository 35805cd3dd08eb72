"""
Pytest configuration and fixtures.
Adds src/ to Python path so tests can import chankura_gateway without installing it.
"""

import sys
from pathlib import Path

import httpx
import pytest

# Add the repo root's src/ directory to sys.path
repo_root = Path(__file__).parent.parent
src_path = repo_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from chankura_gateway.core.event_bus import EventBus  # noqa: E402
from chankura_gateway.infra.nonce import NonceCounter  # noqa: E402
from chankura_gateway.infra.transport import SignedTransport  # noqa: E402

BASE_URL = "https://www.chankura.com/api/v2"


class VenueStub:
    """
    Scripted venue behind an httpx.MockTransport.

    ``routes`` maps a path suffix (e.g. ``"orders.json"``) to either a JSON
    body, a list of bodies served in turn, or a callable(request) -> httpx.Response.
    Every request is recorded in ``requests``.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for suffix, route in self.routes.items():
            if path.endswith("/" + suffix):
                if callable(route):
                    return route(request)
                if isinstance(route, list) and route and isinstance(route[0], _Queued):
                    body = route.pop(0).body if len(route) > 1 else route[0].body
                    return httpx.Response(200, json=body)
                return httpx.Response(200, json=route)
        return httpx.Response(404, json={"error": {"code": 404, "message": f"no route {path}"}})

    def calls(self, suffix):
        return [r for r in self.requests if r.url.path.endswith("/" + suffix)]


class _Queued:
    def __init__(self, body):
        self.body = body


def sequence(*bodies):
    """Serve ``bodies`` one per request; the last one repeats."""
    return [_Queued(b) for b in bodies]


@pytest.fixture
def venue():
    return VenueStub()


@pytest.fixture
def client(venue):
    return httpx.AsyncClient(transport=httpx.MockTransport(venue))


@pytest.fixture
def transport(client):
    return SignedTransport(BASE_URL, "KEY", "SECRET", client=client, nonce=NonceCounter(seed=1_000, clock_ms=lambda: 0))


@pytest.fixture
def bus():
    return EventBus()
