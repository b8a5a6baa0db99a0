"""
🔄 Token refresh coordinator
============================

Wraps a catalog call that needs a user token. When the call fails with
``AuthExpiredError`` the coordinator looks up the refresh token, exchanges
it, stores the rotated pair, drops cache entries tied to the old token and
invokes the call again, once, with the new token.

Callers never see ``RefreshFailedError``: when no refresh is possible the
original ``AuthExpiredError`` is raised.
"""

import logging
from typing import Callable, Optional, Tuple, TypeVar

from ..errors import (ApiError, AuthExpiredError, PersistenceError,
                      RefreshFailedError, TidalVoiceError)
from ..utils.logger import mask_token
from ..utils.ttl_cache import TTLCache
from .token_store import TokenStore

logger = logging.getLogger("tidalvoice.token_refresh")

T = TypeVar("T")

AUTH_NAMESPACE = "auth"
CLIENT_TOKEN_KEY = "client_credentials"
# Client tokens are dropped from the cache this long before they expire
CLIENT_TOKEN_SAFETY_SECONDS = 60


class TokenRefreshCoordinator:
    """Refresh-once wrapper around token-bearing calls."""

    def __init__(self, token_store: TokenStore, tidal_client, cache: TTLCache,
                 cache_namespaces=("catalog",)):
        """
        Args:
            token_store: Durable token pairs
            tidal_client: ``TidalApiClient`` used for the token grants
            cache: Shared TTL cache
            cache_namespaces: Namespaces searched when invalidating by token
        """
        self.token_store = token_store
        self.tidal_client = tidal_client
        self.cache = cache
        self.cache_namespaces = tuple(cache_namespaces)
        self._metrics = {"refreshes": 0, "refresh_failures": 0}

    def with_auto_refresh(self, user_id: Optional[str], access_token: str,
                          api_call_fn: Callable[[str], T]) -> T:
        """Run ``api_call_fn(access_token)``, refreshing once on auth expiry.

        Args:
            user_id: Owner of the token, may be None
            access_token: Token presented with the request
            api_call_fn: Callable issuing the catalog request for a given token

        Returns:
            Whatever ``api_call_fn`` returns

        Raises:
            AuthExpiredError: Original error when the token cannot be refreshed
        """
        try:
            return api_call_fn(access_token)
        except AuthExpiredError as original:
            logger.info(
                "token.refresh.needed",
                extra={"user_id": user_id, "token": mask_token(access_token)},
            )
            try:
                new_access_token = self.refresh(user_id, access_token)
            except TidalVoiceError as exc:
                self._metrics["refresh_failures"] += 1
                logger.warning(
                    "token.refresh.fail",
                    extra={"user_id": user_id, "reason": exc.message, "error_type": type(exc).__name__},
                )
                raise original

        return api_call_fn(new_access_token)

    def _resolve_refresh_token(self, user_id: Optional[str], access_token: str) -> Tuple[Optional[str], Optional[str]]:
        """Owner and refresh token for the presented access token."""
        if user_id:
            record = self.token_store.get_tokens_by_user(user_id)
            if record is not None and record.refresh_token:
                return user_id, record.refresh_token
        record = self.token_store.get_token_record(access_token)
        if record is None:
            return user_id, None
        return record.user_id, record.refresh_token

    def refresh(self, user_id: Optional[str], access_token: str) -> str:
        """Exchange the refresh token paired with ``access_token``.

        The rotated pair is stored under the owner of the old pair, which is
        looked up through the access token when ``user_id`` is None.

        Returns:
            str: The new access token

        Raises:
            RefreshFailedError: No refresh token known, the lookup failed or
                the exchange failed
        """
        try:
            owner, refresh_token = self._resolve_refresh_token(user_id, access_token)
        except PersistenceError as exc:
            raise RefreshFailedError(
                f"Refresh token lookup failed: {exc.message}",
                details={"user_id": user_id},
            ) from exc
        if not refresh_token:
            raise RefreshFailedError("No refresh token available", details={"user_id": user_id})

        try:
            token = self.tidal_client.refresh_access_token(refresh_token)
        except ApiError as exc:
            raise RefreshFailedError(
                f"Refresh token exchange failed: {exc.message}",
                details={"user_id": owner, "status": exc.status},
            ) from exc

        try:
            self.token_store.update_tokens(
                owner,
                access_token,
                token.access_token,
                token.refresh_token or refresh_token,
                token.expires_in,
            )
        except PersistenceError as exc:
            # The new token is valid even if persisting it failed
            logger.error("token.refresh.persist_failed", extra={"user_id": owner, "error": str(exc)})

        removed = self.invalidate_token_cache(access_token)
        self._metrics["refreshes"] += 1
        logger.info(
            "token.refresh.ok",
            extra={"user_id": owner, "token": mask_token(token.access_token), "invalidated": removed},
        )
        return token.access_token

    def invalidate_token_cache(self, access_token: str) -> int:
        """Remove cache entries whose key embeds ``access_token``."""
        removed = 0
        for namespace in self.cache_namespaces:
            removed += self.cache.delete_matching(namespace, lambda key: access_token in key)
        return removed

    def get_client_token(self) -> str:
        """App-level token from the ``client_credentials`` grant, cached until shortly before expiry."""
        def fetch() -> str:
            token = self.tidal_client.client_credentials_token()
            ttl = max(1, token.expires_in - CLIENT_TOKEN_SAFETY_SECONDS)
            self.cache.set(AUTH_NAMESPACE, CLIENT_TOKEN_KEY, token.access_token, ttl)
            return token.access_token

        cached = self.cache.get(AUTH_NAMESPACE, CLIENT_TOKEN_KEY)
        return cached if cached else fetch()

    def get_metrics(self) -> dict:
        return dict(self._metrics)
