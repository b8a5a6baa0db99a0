"""
Application context: every component instance, wired explicitly.

There are no module-level singletons; whoever needs a component receives the
context (or the component) it was built into.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .api.client import ResilientClient
from .api.http import build_session
from .api.tidal import TidalApiClient
from .config_schema import AppSettings
from .core.playback import PlaybackService, PlaybackStateMachine
from .services.catalog_service import CatalogService
from .services.playback_store import PLAYBACK_TABLE_SCHEMA, PlaybackStore
from .services.token_refresh import TokenRefreshCoordinator
from .services.token_store import TOKEN_TABLE_SCHEMA, TokenStore
from .storage import DurableStore, build_store
from .utils.ttl_cache import TTLCache

logger = logging.getLogger("tidalvoice.context")


@dataclass
class AppContext:
    """Runtime context containing all shared components."""

    settings: AppSettings
    cache: TTLCache
    http: ResilientClient
    tidal: TidalApiClient
    token_store: TokenStore
    token_refresh: TokenRefreshCoordinator
    catalog: CatalogService
    playback_store: PlaybackStore
    playback: PlaybackStateMachine
    player: PlaybackService

    def start(self) -> None:
        """Start background work (cache sweeper)."""
        self.cache.start_sweeper()

    def close(self) -> None:
        self.cache.stop_sweeper()


def build_context(
    settings: Optional[AppSettings] = None,
    *,
    http: Optional[ResilientClient] = None,
    token_backend: Optional[DurableStore] = None,
    playback_backend: Optional[DurableStore] = None,
    cache: Optional[TTLCache] = None,
    clock: Callable[[], float] = time.time,
) -> AppContext:
    """Build every component from ``settings``.

    Args:
        settings: Validated settings (defaults when omitted)
        http: Resilient client override (tests inject a fake transport)
        token_backend: Durable store for token pairs
        playback_backend: Durable store for playback snapshots
        cache: Shared TTL cache override
        clock: Time source for token and playback bookkeeping

    Returns:
        AppContext: Fully wired components
    """
    if settings is None:
        settings = AppSettings()

    if cache is None:
        cache = TTLCache.from_settings(settings.cache)
    if http is None:
        session = build_session(settings.retry.timeout_seconds, client_id=settings.tidal.client_id)
        http = ResilientClient.from_settings(settings.retry, session)
    tidal = TidalApiClient(settings.tidal, http)

    if token_backend is None:
        token_backend = build_store(settings.storage, settings.storage.token_table, TOKEN_TABLE_SCHEMA)
    if playback_backend is None:
        playback_backend = build_store(settings.storage, settings.storage.playback_table, PLAYBACK_TABLE_SCHEMA)

    token_store = TokenStore(
        token_backend,
        lookaside_size=settings.storage.token_lookaside_size,
        clock=clock,
    )
    token_refresh = TokenRefreshCoordinator(token_store, tidal, cache)
    catalog = CatalogService(tidal, cache, token_refresh, settings.tidal)

    playback_store = PlaybackStore(
        playback_backend,
        ttl_seconds=settings.storage.ttl_seconds,
        clock=clock,
    )
    playback = PlaybackStateMachine(playback_store, catalog, settings.playback, clock=clock)
    player = PlaybackService(catalog, playback)

    logger.info(
        "context.ready",
        extra={"environment": settings.environment, "storage": settings.storage.backend,
               "cache_enabled": settings.cache.enabled},
    )
    return AppContext(
        settings=settings,
        cache=cache,
        http=http,
        tidal=tidal,
        token_store=token_store,
        token_refresh=token_refresh,
        catalog=catalog,
        playback_store=playback_store,
        playback=playback,
        player=player,
    )
