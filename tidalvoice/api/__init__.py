"""HTTP access to the TIDAL API."""

from .client import ApiRequest, ResilientClient, compute_backoff_ms
from .tidal import TidalApiClient, TokenResponse

__all__ = [
    "ApiRequest",
    "ResilientClient",
    "TidalApiClient",
    "TokenResponse",
    "compute_backoff_ms",
]
