"""
Exception hierarchy for TidalVoice.

Every failure that crosses a component boundary is one of these classes so
callers can branch on the *kind* of failure instead of on status codes:

    TidalVoiceError (base)
        ApiError - the catalog service answered badly or not at all
            TransientNetworkError - no response received (retryable)
            RateLimitedError - HTTP 429 (retryable)
            ServerError - HTTP 5xx (retryable)
            AuthExpiredError - HTTP 401 (refresh, never plain retry)
            ClientError - HTTP 400/403/404 and other 4xx (not retryable)
                BadRequestError, ForbiddenError, NotFoundError
        RefreshFailedError - refresh token missing or exchange rejected
        PersistenceError - durable store unavailable or rejected a write
            StorageUnavailableError, ConditionalCheckFailedError
        PlaybackError - no playable state for the requested operation
"""

from typing import Any, Dict, Optional

import requests


class TidalVoiceError(Exception):
    """
    Base exception for all TidalVoice errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (path, user id...).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ApiError(TidalVoiceError):
    """Raised when a catalog request fails.

    Attributes:
        status: HTTP status code, ``None`` when no response was received.
        retryable: Whether the resilient client may try again.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        response: Optional[requests.Response] = None,
    ) -> None:
        super().__init__(message, details)
        self.status = status
        self.response = response


class TransientNetworkError(ApiError):
    """No response was received (connection error, timeout)."""

    retryable = True


class RateLimitedError(ApiError):
    """HTTP 429 from the catalog service."""

    retryable = True

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs: Any) -> None:
        super().__init__(message, status=429, **kwargs)
        self.retry_after = retry_after


class ServerError(ApiError):
    """HTTP 5xx from the catalog service."""

    retryable = True


class AuthExpiredError(ApiError):
    """HTTP 401. Handled by the token refresh coordinator, never retried as-is."""


class ClientError(ApiError):
    """Non-retryable 4xx answer."""


class BadRequestError(ClientError):
    pass


class ForbiddenError(ClientError):
    pass


class NotFoundError(ClientError):
    pass


class RefreshFailedError(TidalVoiceError):
    """Refresh token missing or the exchange was rejected.

    Internal to the refresh coordinator: callers always receive the original
    ``AuthExpiredError`` instead.
    """


class PersistenceError(TidalVoiceError):
    """Base class for durable store failures."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, details)
        self.original_error = original_error


class StorageUnavailableError(PersistenceError):
    """Store unreachable, throttled, misconfigured or failing."""


class ConditionalCheckFailedError(PersistenceError):
    """A conditional write was rejected by the store."""


class PlaybackError(TidalVoiceError):
    """No playable state for the requested operation (nothing to resume, end of list)."""


_STATUS_ERRORS = {
    400: BadRequestError,
    401: AuthExpiredError,
    403: ForbiddenError,
    404: NotFoundError,
}


def _retry_after_seconds(response: requests.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After") if response.headers else None
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except (TypeError, ValueError):
        return None


def classify_response(response: requests.Response, path: str = "") -> Optional[ApiError]:
    """Map an HTTP response onto the error taxonomy.

    Args:
        response: Response returned by the transport
        path: Request path, recorded in the error details

    Returns:
        Optional[ApiError]: ``None`` for 2xx/3xx answers, otherwise the error to raise
    """
    status = response.status_code
    if status < 400:
        return None

    details = {"path": path, "status": status}
    if status == 429:
        return RateLimitedError(
            f"Rate limited by TIDAL on {path}",
            retry_after=_retry_after_seconds(response),
            details=details,
            response=response,
        )
    if status >= 500:
        return ServerError(f"TIDAL service error {status} on {path}", status=status,
                           details=details, response=response)

    error_cls = _STATUS_ERRORS.get(status, ClientError)
    return error_cls(f"TIDAL request failed with {status} on {path}", status=status,
                     details=details, response=response)


def classify_exception(exc: requests.RequestException, path: str = "") -> ApiError:
    """Map a transport-level exception (no response) onto the taxonomy."""
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        classified = classify_response(exc.response, path)
        if classified is not None:
            return classified
    return TransientNetworkError(
        f"Network error talking to TIDAL on {path}: {exc.__class__.__name__}",
        details={"path": path, "reason": str(exc)},
    )


def describe_error(exc: BaseException) -> str:
    """Return a stable category code for user-facing messaging upstream."""
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, AuthExpiredError):
        return "auth_required"
    if isinstance(exc, ForbiddenError):
        return "forbidden"
    if isinstance(exc, RateLimitedError):
        return "rate_limited"
    if isinstance(exc, TransientNetworkError):
        return "network_error"
    if isinstance(exc, PersistenceError):
        return "storage_unavailable"
    if isinstance(exc, PlaybackError):
        return "nothing_to_play"
    if isinstance(exc, ClientError):
        return "bad_request"
    return "service_error"
