"""Shared pytest fixtures for the TidalVoice test suite."""

import json
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
import requests

from tidalvoice.api.client import ApiRequest, ResilientClient
from tidalvoice.app import create_app
from tidalvoice.config_schema import AppSettings
from tidalvoice.context import build_context
from tidalvoice.services.playback_store import PLAYBACK_TABLE_SCHEMA
from tidalvoice.services.token_store import TOKEN_TABLE_SCHEMA
from tidalvoice.storage import MemoryStore
from tidalvoice.utils.ttl_cache import TTLCache


def make_response(status: int = 200, payload: Any = None,
                  headers: Optional[Dict[str, str]] = None) -> requests.Response:
    """Build a real ``requests.Response`` with a JSON body."""
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(payload).encode("utf-8") if payload is not None else b""
    response.headers.update(headers or {})
    response.url = "https://openapi.tidal.com/v2/test"
    return response


Handler = Union[requests.Response, Exception, Callable[[ApiRequest], requests.Response]]


class FakeTransport:
    """Route-based stand-in for the network, plugged in as ``ResilientClient(send=...)``.

    Routes are matched on the request path with the ``/v1`` or ``/v2`` API
    prefix removed. Each route holds a queue of handlers; the last one is
    reused once the queue is down to a single entry.
    """

    def __init__(self):
        self.routes: Dict[str, List[Handler]] = {}
        self.calls: List[ApiRequest] = []

    def add(self, path: str, *handlers: Handler) -> "FakeTransport":
        self.routes[path] = list(handlers)
        return self

    @staticmethod
    def _route_of(request: ApiRequest) -> str:
        path = request.path
        for prefix in ("/v2", "/v1"):
            if path.startswith(prefix + "/"):
                return path[len(prefix):]
        return path

    def calls_to(self, path: str) -> List[ApiRequest]:
        return [call for call in self.calls if self._route_of(call) == path]

    def __call__(self, request: ApiRequest) -> requests.Response:
        self.calls.append(request)
        route = self._route_of(request)
        queue = self.routes.get(route)
        if not queue:
            return make_response(404, {"error": f"no route {route}"})
        handler = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(handler, Exception):
            raise handler
        if callable(handler) and not isinstance(handler, requests.Response):
            return handler(request)
        return handler


def bearer_of(request: ApiRequest) -> Optional[str]:
    header = (request.headers or {}).get("Authorization", "")
    return header[7:] if header.startswith("Bearer ") else None


def requires_token(token: str, payload: Any) -> Callable[[ApiRequest], requests.Response]:
    """Handler answering ``payload`` for ``token`` and 401 for anything else."""
    def handler(request: ApiRequest) -> requests.Response:
        if bearer_of(request) == token:
            return make_response(200, payload)
        return make_response(401, {"error": "token expired"})
    return handler


def track_item(track_id: str, title: str, artist: str = "Artist", album: str = "Album") -> Dict[str, Any]:
    return {"id": track_id, "title": title, "artist": {"name": artist}, "album": {"title": album}}


def playback_info(url: str) -> Dict[str, Any]:
    return {"manifest": {"url": url}}


class Clock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        environment="testing",
        tidal={"client_id": "test-client", "client_secret": "test-secret"},
        retry={"max_retries": 3, "base_delay_ms": 100, "max_delay_ms": 1000, "timeout_seconds": 2},
    )


@pytest.fixture
def transport() -> FakeTransport:
    fake = FakeTransport()
    fake.add("/oauth2/token", make_response(200, {"access_token": "client-token", "expires_in": 3600}))
    return fake


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def http(settings, transport, sleeps) -> ResilientClient:
    return ResilientClient.from_settings(settings.retry, send=transport, sleep=sleeps.append)


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(default_ttl=300, max_size=100, clock=clock)


@pytest.fixture
def token_backend(clock) -> MemoryStore:
    return MemoryStore("TidalTokens", TOKEN_TABLE_SCHEMA, clock=clock)


@pytest.fixture
def playback_backend(clock) -> MemoryStore:
    return MemoryStore("TidalPlaybackState", PLAYBACK_TABLE_SCHEMA, clock=clock)


@pytest.fixture
def context(settings, http, cache, token_backend, playback_backend, clock):
    ctx = build_context(
        settings,
        http=http,
        cache=cache,
        token_backend=token_backend,
        playback_backend=playback_backend,
        clock=clock,
    )
    yield ctx
    ctx.close()


@pytest.fixture
def flask_app(context):
    app = create_app(context)
    app.config.update({"TESTING": True})
    return app


@pytest.fixture
def client(flask_app):
    """Provide a fresh Flask test client for each test."""
    with flask_app.test_client() as test_client:
        yield test_client
