"""
Unit tests for the TIDAL request builder
"""
import pytest

from conftest import FakeTransport, make_response
from tidalvoice.api.client import ResilientClient
from tidalvoice.api.tidal import TidalApiClient, TokenResponse
from tidalvoice.errors import ApiError


@pytest.fixture
def fake():
    return FakeTransport()


@pytest.fixture
def tidal(settings, fake):
    return TidalApiClient(settings.tidal, ResilientClient(send=fake, sleep=lambda s: None))


class TestRequests:

    def test_get_sends_both_auth_headers(self, tidal, fake):
        fake.add("/tracks/1", make_response(200, {"id": "1"}))

        assert tidal.get("/tracks/1", {"countryCode": "US"}, "user-token") == {"id": "1"}

        request = fake.calls[0]
        assert request.url == "https://openapi.tidal.com/v2/tracks/1"
        assert request.headers["Authorization"] == "Bearer user-token"
        assert request.headers["X-Tidal-Token"] == "test-client"
        assert request.params == {"countryCode": "US"}

    def test_empty_body_decodes_to_empty_dict(self, tidal, fake):
        fake.add("/favorites/tracks", make_response(204))

        assert tidal.post("/favorites/tracks", {"trackId": "1"}, "user-token") == {}
        assert fake.calls[0].json == {"trackId": "1"}

    def test_invalid_json_is_an_api_error(self, tidal, fake):
        response = make_response(200)
        response._content = b"<html>oops</html>"
        fake.add("/tracks/1", response)

        with pytest.raises(ApiError):
            tidal.get("/tracks/1")

    def test_absolute_urls_are_kept(self, tidal):
        assert tidal.url_for("https://other.example/x") == "https://other.example/x"
        assert tidal.url_for("me") == "https://openapi.tidal.com/v2/me"


class TestTokenGrants:

    def test_refresh_grant(self, tidal, fake):
        fake.add("/oauth2/token", make_response(200, {
            "access_token": "new", "refresh_token": "r2", "expires_in": 1800, "token_type": "Bearer",
        }))

        token = tidal.refresh_access_token("r1")

        assert token.access_token == "new"
        assert token.refresh_token == "r2"
        assert token.expires_at == pytest.approx(token.received_at + 1800)
        request = fake.calls[0]
        assert request.url == "https://auth.tidal.com/v1/oauth2/token"
        assert request.data == {"grant_type": "refresh_token", "refresh_token": "r1"}
        assert request.auth == ("test-client", "test-secret")

    def test_missing_access_token(self):
        with pytest.raises(ApiError):
            TokenResponse.from_payload({"refresh_token": "r"})

    def test_rejected_grant_is_not_retried(self, tidal, fake):
        fake.add("/oauth2/token", make_response(401, {"error": "invalid_client"}))

        with pytest.raises(ApiError):
            tidal.client_credentials_token()

        assert len(fake.calls) == 1
