#!/usr/bin/env python3
"""HTTP session configuration for TIDAL API access."""

import logging
import os
import platform
from typing import Any, Callable, Tuple, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from ..version import APP_NAME, VERSION

TimeoutValue = Union[float, Tuple[float, float]]

_LOGGER = logging.getLogger("tidalvoice.http")


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _coerce_timeout(value: TimeoutValue) -> Tuple[float, float]:
    """Normalise timeout values to a tuple of (connect, read)."""
    if isinstance(value, tuple):
        if len(value) == 2:
            return max(0.5, float(value[0])), max(1.0, float(value[1]))
        raise ValueError("Timeout tuples must be length 2 (connect, read)")
    numeric = max(0.5, float(value))
    return numeric, numeric


def _with_default_timeout(
    request_func: Callable[..., requests.Response],
    timeout: Tuple[float, float],
) -> Callable[..., requests.Response]:
    """Wrap session.request to inject default timeouts."""

    def wrapper(method: str, url: str, **kwargs: Any) -> requests.Response:
        provided = kwargs.get("timeout")
        if provided is None:
            kwargs["timeout"] = timeout
        else:
            try:
                kwargs["timeout"] = _coerce_timeout(provided)
            except (TypeError, ValueError):
                kwargs["timeout"] = timeout
        return request_func(method, url, **kwargs)

    return wrapper


def _build_retry_configuration() -> Retry:
    # Retries live in ResilientClient; the adapter must fail fast so
    # attempts are counted and logged in one place.
    return Retry(total=0, connect=0, read=0, status=0, redirect=3, raise_on_status=False)


def build_session(timeout_seconds: TimeoutValue = 10.0, client_id: str = "") -> requests.Session:
    """Create a configured requests.Session with pooled connections and a default timeout.

    Args:
        timeout_seconds: Per-attempt timeout applied when a call passes none
        client_id: Sent as ``X-Tidal-Token`` on every request when set

    Returns:
        requests.Session: Session ready for the resilient client
    """
    session = requests.Session()

    timeout = _coerce_timeout(timeout_seconds)
    pool_connections = _int_env("TIDALVOICE_HTTP_POOL_CONNECTIONS", 10)
    pool_maxsize = _int_env("TIDALVOICE_HTTP_POOL_MAXSIZE", 20)
    adapter = HTTPAdapter(
        max_retries=_build_retry_configuration(),
        pool_connections=pool_connections,
        pool_maxsize=pool_maxsize,
    )

    session.mount("https://", adapter)
    session.mount("http://", adapter)
    python_version = platform.python_version()
    session.headers.update(
        {
            "Connection": "keep-alive",
            "Accept": "application/vnd.api+json, application/json",
            "User-Agent": f"{APP_NAME}/{VERSION} (Python {python_version}; Requests {requests.__version__})",
        }
    )
    if client_id:
        session.headers["X-Tidal-Token"] = client_id
    session.request = _with_default_timeout(session.request, timeout)

    _LOGGER.debug(
        "http.session.configured",
        extra={
            "timeout_connect": timeout[0],
            "timeout_read": timeout[1],
            "pool_connections": pool_connections,
            "pool_maxsize": pool_maxsize,
        },
    )
    return session


__all__ = ["build_session"]
