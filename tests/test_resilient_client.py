"""
Unit tests for the resilient HTTP client (retry with backoff)

Tests cover:
- No retry on permanent errors (400, 401, 403, 404)
- Retry on transient errors (429, 5xx, network errors, timeouts)
- Exponential backoff with bounded jitter, extended by Retry-After on 429
- Max attempt limits and recovery after failures
"""
import random

import pytest
import requests
from requests.exceptions import ConnectionError, Timeout
from urllib3.util import Retry

from conftest import FakeTransport, make_response
from tidalvoice.api.client import ApiRequest, ResilientClient, compute_backoff_ms
from tidalvoice.api.http import _build_retry_configuration, build_session
from tidalvoice.errors import (AuthExpiredError, BadRequestError, ForbiddenError,
                               NotFoundError, RateLimitedError, ServerError,
                               TransientNetworkError)

URL = "https://openapi.tidal.com/v2/tracks/1"


def _client(transport, sleeps, **kwargs) -> ResilientClient:
    kwargs.setdefault("max_retries", 3)
    kwargs.setdefault("base_delay_ms", 1000)
    kwargs.setdefault("max_delay_ms", 10000)
    return ResilientClient(send=transport, sleep=sleeps.append, rng=random.Random(42), **kwargs)


def _request() -> ApiRequest:
    return ApiRequest(method="GET", url=URL)


class TestBackoff:
    """Delay computation"""

    def test_delay_doubles_per_attempt(self):
        rng = random.Random(0)
        for attempt, base in enumerate([1000, 2000, 4000, 8000]):
            delay = compute_backoff_ms(attempt, 1000, 100000, rng)
            assert base <= delay <= base * 1.2

    def test_delay_is_capped(self):
        delay = compute_backoff_ms(10, 1000, 5000, random.Random(0))

        assert 5000 <= delay <= 6000

    def test_zero_base_means_no_delay(self):
        assert compute_backoff_ms(3, 0, 1000, random.Random(0)) == 0


class TestNonRetryable:
    """Permanent errors fail on the first attempt"""

    @pytest.mark.parametrize("status,error_cls", [
        (400, BadRequestError),
        (401, AuthExpiredError),
        (403, ForbiddenError),
        (404, NotFoundError),
    ])
    def test_single_attempt(self, status, error_cls):
        transport = FakeTransport().add("/tracks/1", make_response(status, {}))
        sleeps = []

        with pytest.raises(error_cls) as exc_info:
            _client(transport, sleeps).execute(_request())

        assert len(transport.calls) == 1
        assert sleeps == []
        assert exc_info.value.status == status


class TestRetryable:
    """Transient errors are retried with growing delays"""

    def test_persistent_503_exhausts_attempts(self):
        transport = FakeTransport().add("/tracks/1", make_response(503, {}))
        sleeps = []

        with pytest.raises(ServerError) as exc_info:
            _client(transport, sleeps).execute(_request())

        assert len(transport.calls) == 3
        assert len(sleeps) == 2
        assert 1.0 <= sleeps[0] <= 1.2
        assert 2.0 <= sleeps[1] <= 2.4
        assert sleeps[0] < sleeps[1]
        assert exc_info.value.status == 503

    def test_recovers_after_transient_failures(self):
        transport = FakeTransport().add(
            "/tracks/1",
            make_response(500, {}),
            make_response(429, {}, headers={"Retry-After": "1"}),
            make_response(200, {"id": "1"}),
        )
        sleeps = []

        response = _client(transport, sleeps).execute(_request())

        assert response.status_code == 200
        assert response.json() == {"id": "1"}
        assert len(transport.calls) == 3
        assert len(sleeps) == 2

    def test_rate_limit_error_keeps_retry_after(self):
        transport = FakeTransport().add("/tracks/1", make_response(429, {}, headers={"Retry-After": "7"}))

        with pytest.raises(RateLimitedError) as exc_info:
            _client(transport, [], max_retries=1).execute(_request())

        assert exc_info.value.retry_after == 7.0

    def test_retry_after_extends_the_backoff(self):
        transport = FakeTransport().add(
            "/tracks/1",
            make_response(429, {}, headers={"Retry-After": "7"}),
            make_response(200, {"id": "1"}),
        )
        sleeps = []

        response = _client(transport, sleeps).execute(_request())

        assert response.status_code == 200
        assert sleeps == [7.0]

    def test_short_retry_after_keeps_the_backoff(self):
        transport = FakeTransport().add(
            "/tracks/1",
            make_response(429, {}, headers={"Retry-After": "0"}),
            make_response(200, {"id": "1"}),
        )
        sleeps = []

        _client(transport, sleeps).execute(_request())

        assert len(sleeps) == 1
        assert 1.0 <= sleeps[0] <= 1.2

    @pytest.mark.parametrize("exc", [ConnectionError("reset"), Timeout("slow")])
    def test_network_errors_are_retried(self, exc):
        transport = FakeTransport().add("/tracks/1", exc, exc, make_response(200, {"ok": True}))
        sleeps = []

        response = _client(transport, sleeps).execute(_request())

        assert response.status_code == 200
        assert len(sleeps) == 2

    def test_network_error_exhaustion(self):
        transport = FakeTransport().add("/tracks/1", ConnectionError("down"))

        with pytest.raises(TransientNetworkError) as exc_info:
            _client(transport, []).execute(_request())

        assert exc_info.value.status is None
        assert len(transport.calls) == 3

    def test_delays_respect_the_cap(self):
        transport = FakeTransport().add("/tracks/1", make_response(502, {}))
        sleeps = []

        with pytest.raises(ServerError):
            _client(transport, sleeps, max_retries=6, base_delay_ms=1000, max_delay_ms=3000).execute(_request())

        assert len(sleeps) == 5
        assert all(delay <= 3.6 for delay in sleeps)

    def test_per_call_override_of_attempts(self):
        transport = FakeTransport().add("/tracks/1", make_response(503, {}))

        with pytest.raises(ServerError):
            _client(transport, []).execute(_request(), max_retries=1)

        assert len(transport.calls) == 1

    def test_seeded_rng_gives_repeatable_delays(self):
        first, second = [], []
        for sleeps in (first, second):
            transport = FakeTransport().add("/tracks/1", make_response(503, {}))
            with pytest.raises(ServerError):
                _client(transport, sleeps).execute(_request())

        assert first == second


class TestSessionConfiguration:
    """The shared session must not retry on its own"""

    def test_adapter_retry_is_disabled(self):
        retry = _build_retry_configuration()

        assert isinstance(retry, Retry)
        assert retry.total == 0

    def test_session_has_adapters_and_headers(self):
        session = build_session(5, client_id="cid")

        adapter = session.get_adapter("https://")
        assert isinstance(adapter.max_retries, Retry)
        assert adapter.max_retries.total == 0
        assert session.headers["X-Tidal-Token"] == "cid"
        assert "TidalVoice/" in session.headers["User-Agent"]

    def test_session_injects_default_timeout(self, monkeypatch):
        captured = {}

        def fake_request(self, method, url, **kwargs):
            captured.update(kwargs)
            return make_response(200, {})

        monkeypatch.setattr(requests.Session, "request", fake_request)
        session = build_session(3)
        session.request("GET", URL)

        assert captured["timeout"] == (3.0, 3.0)
