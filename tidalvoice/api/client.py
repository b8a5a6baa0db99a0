#!/usr/bin/env python3
"""
🔁 Resilient HTTP client
========================

Executes one logical request with bounded retries:
- 400/401/403/404 fail immediately
- 429, 5xx and network errors/timeouts are retried
- Exponential backoff with up to 20% jitter, capped at ``max_delay_ms``
- A 429 carrying ``Retry-After`` waits at least that long

The client knows nothing about tokens, caching or catalog semantics.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

import requests

from ..constants import JITTER_RATIO, NON_RETRYABLE_STATUS
from ..errors import ApiError, RateLimitedError, classify_exception, classify_response
from .http import build_session

logger = logging.getLogger("tidalvoice.http")


@dataclass
class ApiRequest:
    """Everything needed to (re)send one HTTP request."""
    method: str
    url: str
    params: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None
    json: Optional[Any] = None
    headers: Dict[str, str] = field(default_factory=dict)
    auth: Optional[Tuple[str, str]] = None
    timeout: Optional[float] = None

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or self.url


def compute_backoff_ms(
    attempt: int,
    base_delay_ms: float,
    max_delay_ms: float,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay before the retry that follows ``attempt`` (0-indexed).

    ``min(max_delay_ms, base_delay_ms * 2**attempt)`` plus a uniform jitter
    of up to 20% of that value.
    """
    rng = rng or random
    capped = min(float(max_delay_ms), float(base_delay_ms) * (2 ** max(attempt, 0)))
    return capped + rng.uniform(0, JITTER_RATIO * capped)


class ResilientClient:
    """Retrying executor for ``ApiRequest`` objects."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 10000,
        timeout_seconds: float = 10.0,
        send: Optional[Callable[[ApiRequest], requests.Response]] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            session: Shared session; built lazily when omitted
            max_retries: Total attempts per logical call
            base_delay_ms: Backoff base
            max_delay_ms: Backoff cap
            timeout_seconds: Timeout applied to each attempt
            send: Transport override, receives the ``ApiRequest`` (tests)
            sleep: Sleep function (tests)
            rng: Jitter source; seed it for deterministic delays
        """
        self._session = session
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.timeout_seconds = timeout_seconds
        self._send_fn = send
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, retry_settings, session: Optional[requests.Session] = None, **kwargs: Any) -> "ResilientClient":
        return cls(
            session,
            max_retries=retry_settings.max_retries,
            base_delay_ms=retry_settings.base_delay_ms,
            max_delay_ms=retry_settings.max_delay_ms,
            timeout_seconds=retry_settings.timeout_seconds,
            **kwargs,
        )

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = build_session(self.timeout_seconds)
        return self._session

    def _send(self, request: ApiRequest) -> requests.Response:
        if self._send_fn is not None:
            return self._send_fn(request)
        return self.session.request(
            request.method.upper(),
            request.url,
            params=request.params,
            data=request.data,
            json=request.json,
            headers=request.headers or None,
            auth=request.auth,
            timeout=request.timeout or self.timeout_seconds,
        )

    def execute(
        self,
        request: ApiRequest,
        max_retries: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
    ) -> requests.Response:
        """Send ``request`` until it succeeds or the attempts run out.

        Returns:
            requests.Response: The first 2xx/3xx response

        Raises:
            ApiError: Classified error of the last attempt, or the first
                non-retryable one
        """
        attempts = max(1, self.max_retries if max_retries is None else max_retries)
        base = self.base_delay_ms if base_delay_ms is None else base_delay_ms
        cap = self.max_delay_ms if max_delay_ms is None else max_delay_ms
        path = request.path

        last_error: Optional[ApiError] = None
        for attempt in range(attempts):
            start = time.perf_counter()
            try:
                response = self._send(request)
            except requests.RequestException as exc:
                error = classify_exception(exc, path)
            else:
                error = classify_response(response, path)
                if error is None:
                    if attempt:
                        logger.info("http.recovered", extra={"path": path, "attempts": attempt + 1})
                    return response

            last_error = error
            elapsed = round(time.perf_counter() - start, 3)

            if not error.retryable or error.status in NON_RETRYABLE_STATUS:
                logger.debug(
                    "http.fail.non_retryable",
                    extra={"path": path, "status": error.status, "elapsed": elapsed},
                )
                raise error

            if attempt + 1 >= attempts:
                break

            delay_ms = compute_backoff_ms(attempt, base, cap, self._rng)
            retry_after = error.retry_after if isinstance(error, RateLimitedError) else None
            if retry_after:
                delay_ms = max(delay_ms, retry_after * 1000.0)
            logger.warning(
                "http.retry",
                extra={
                    "path": path,
                    "attempt": attempt + 1,
                    "status": error.status,
                    "reason": error.__class__.__name__,
                    "delay_ms": round(delay_ms),
                    "retry_after": retry_after,
                    "elapsed": elapsed,
                },
            )
            self._sleep(delay_ms / 1000.0)

        logger.error(
            "http.fail.exhausted",
            extra={"path": path, "attempts": attempts, "reason": last_error.__class__.__name__},
        )
        raise last_error


__all__ = ["ApiRequest", "ResilientClient", "compute_backoff_ms"]
