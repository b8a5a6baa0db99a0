#!/usr/bin/env python3
"""
🎵 TIDAL API client
Thin request builder on top of ``ResilientClient``:
- Bearer token plus ``X-Tidal-Token`` client header on catalog calls
- OAuth2 ``client_credentials`` and ``refresh_token`` grants (HTTP Basic client auth)
- JSON body decoding
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from ..errors import ApiError
from ..utils.logger import mask_token
from .client import ApiRequest, ResilientClient
from .http import build_session

logger = logging.getLogger("tidalvoice.tidal")


@dataclass
class TokenResponse:
    """Normalized OAuth2 token endpoint response."""
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None
    received_at: float = field(default_factory=time.time)

    @property
    def expires_at(self) -> float:
        return self.received_at + max(0, int(self.expires_in))

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenResponse":
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise ApiError("Token response missing access_token", details={"keys": sorted(payload or {})})
        return cls(
            access_token=token,
            expires_in=int(payload.get("expires_in", 3600)),
            refresh_token=payload.get("refresh_token"),
            scope=payload.get("scope"),
            token_type=payload.get("token_type"),
        )


class TidalApiClient:
    """Low-level access to the TIDAL open API."""

    def __init__(self, settings, client: Optional[ResilientClient] = None):
        """
        Args:
            settings: ``TidalSettings``
            client: Resilient client used for every call
        """
        self.settings = settings
        self.client_id = settings.client_id
        self.client_secret = settings.client_secret
        self.base_url = settings.api_url.rstrip("/")
        self.auth_url = settings.auth_url
        self.client = client or ResilientClient(build_session(client_id=self.client_id))

        if not self.client_id or not self.client_secret:
            logger.warning("tidal.client.no_credentials")

    def _auth_headers(self, access_token: Optional[str]) -> Dict[str, str]:
        headers = {"X-Tidal-Token": self.client_id}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    @staticmethod
    def _decode(response: requests.Response, path: str) -> Dict[str, Any]:
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                f"Invalid JSON from TIDAL on {path}",
                status=response.status_code,
                details={"path": path, "reason": str(exc)},
                response=response,
            )

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def get(self, path: str, params: Optional[Dict[str, Any]] = None,
            access_token: Optional[str] = None) -> Dict[str, Any]:
        """GET a catalog resource and return the decoded body."""
        request = ApiRequest(
            method="GET",
            url=self.url_for(path),
            params=params or None,
            headers=self._auth_headers(access_token),
        )
        logger.debug("tidal.get", extra={"path": path, "token": mask_token(access_token)})
        return self._decode(self.client.execute(request), path)

    def post(self, path: str, payload: Optional[Dict[str, Any]] = None,
             access_token: Optional[str] = None) -> Dict[str, Any]:
        request = ApiRequest(
            method="POST",
            url=self.url_for(path),
            json=payload or {},
            headers=self._auth_headers(access_token),
        )
        return self._decode(self.client.execute(request), path)

    def _token_grant(self, form: Dict[str, str]) -> TokenResponse:
        request = ApiRequest(
            method="POST",
            url=self.auth_url,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            auth=(self.client_id, self.client_secret),
        )
        response = self.client.execute(request)
        return TokenResponse.from_payload(self._decode(response, request.path))

    def client_credentials_token(self) -> TokenResponse:
        """Fetch an app-level token through the ``client_credentials`` grant."""
        token = self._token_grant({"grant_type": "client_credentials"})
        logger.info("token.client_credentials.ok", extra={"expires_in": token.expires_in})
        return token

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Exchange ``refresh_token`` for a new access token.

        Raises:
            ApiError: Classified failure of the token endpoint
        """
        token = self._token_grant({"grant_type": "refresh_token", "refresh_token": refresh_token})
        logger.info(
            "token.refresh.exchange_ok",
            extra={"expires_in": token.expires_in, "rotated": bool(token.refresh_token)},
        )
        return token


__all__ = ["TidalApiClient", "TokenResponse"]
