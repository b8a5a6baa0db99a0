"""
🛠️ Route Helpers
Shared utilities for all route blueprints.
"""

import datetime
import logging
import uuid
from functools import wraps
from typing import Any, Callable, Dict, Optional

from flask import Response, current_app, jsonify, request

from ..errors import TidalVoiceError, describe_error

logger = logging.getLogger(__name__)

# Category code -> HTTP status
_ERROR_STATUS = {
    "not_found": 404,
    "auth_required": 401,
    "forbidden": 403,
    "rate_limited": 429,
    "network_error": 503,
    "storage_unavailable": 503,
    "nothing_to_play": 409,
    "bad_request": 400,
    "service_error": 502,
}


def _iso_timestamp_now() -> str:
    """Return ISO 8601 timestamp in UTC with a trailing Z."""
    now_utc = datetime.datetime.now(tz=datetime.timezone.utc)
    return now_utc.isoformat(timespec="microseconds").replace("+00:00", "Z")


def api_response(
    success: bool,
    *,
    data: Optional[Any] = None,
    message: str = "",
    status: int = 200,
    error_code: Optional[str] = None
) -> Response:
    """Build the JSON envelope shared by every endpoint.

    ``success``, ``timestamp`` and ``request_id`` are always present;
    ``data``, ``message`` and ``error_code`` only when given. The request id
    and timestamp are echoed as ``X-Request-ID`` / ``X-Response-Timestamp``.
    """
    envelope: Dict[str, Any] = {
        "success": success,
        "timestamp": _iso_timestamp_now(),
        "request_id": uuid.uuid4().hex,
    }
    optional = {"message": message or None, "data": data, "error_code": error_code or None}
    envelope.update({key: value for key, value in optional.items() if value is not None})

    resp = jsonify(envelope)
    resp.status_code = status
    resp.headers["X-Request-ID"] = envelope["request_id"]
    resp.headers["X-Response-Timestamp"] = envelope["timestamp"]
    return resp


def api_error(
    message: str,
    *,
    status: int = 400,
    error_code: Optional[str] = None,
    data: Optional[Any] = None,
) -> Response:
    """Convenience wrapper for standardized error responses."""
    return api_response(
        False,
        data=data,
        message=message,
        status=status,
        error_code=error_code,
    )


def error_response(exc: TidalVoiceError) -> Response:
    """Map a domain error onto its category code and HTTP status."""
    code = describe_error(exc)
    return api_error(exc.message, status=_ERROR_STATUS.get(code, 500), error_code=code)


def api_error_handler(func: Callable) -> Callable:
    """Decorator for consistent API error handling.

    Domain errors become their category response; anything else is a 500.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TidalVoiceError as e:
            logger.warning("api.domain_error", extra={"endpoint": func.__name__, "error": e.message})
            return error_response(e)
        except Exception:
            logger.exception(f"Error in {func.__name__}")
            return api_error(
                "An internal error occurred",
                status=500,
                error_code="unhandled_exception",
            )
    return wrapper


def get_context():
    """The ``AppContext`` the running app was built with."""
    return current_app.extensions["tidalvoice"]


def json_payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def access_token_from(payload: Dict[str, Any]) -> Optional[str]:
    """Token from the JSON body, falling back to a Bearer Authorization header."""
    token = payload.get("access_token")
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def missing_fields(payload: Dict[str, Any], *names: str) -> Optional[Response]:
    """400 response naming absent fields, or None when all are present."""
    missing = [name for name in names if payload.get(name) in (None, "")]
    if not missing:
        return None
    return api_error(
        f"Missing required field(s): {', '.join(missing)}",
        status=400,
        error_code="missing_field",
        data={"missing": missing},
    )


def invalid_int_fields(payload: Dict[str, Any], *names: str) -> Optional[Response]:
    """400 response naming fields present but not integers, or None."""
    invalid = []
    for name in names:
        value = payload.get(name)
        if value is None:
            continue
        if isinstance(value, bool):
            invalid.append(name)
            continue
        try:
            int(value)
        except (TypeError, ValueError, OverflowError):
            invalid.append(name)
    if not invalid:
        return None
    return api_error(
        f"Field(s) must be integers: {', '.join(invalid)}",
        status=400,
        error_code="invalid_field",
        data={"invalid": invalid},
    )
