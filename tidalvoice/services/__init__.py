"""
🏗️ Service Layer
================

Token persistence, token refresh, catalog access and playback session
storage. Services are constructed explicitly and wired by
``tidalvoice.context.build_context``.
"""

from .catalog_service import CatalogService
from .playback_store import PLAYBACK_TABLE_SCHEMA, PlaybackStore
from .token_refresh import TokenRefreshCoordinator
from .token_store import TOKEN_TABLE_SCHEMA, TokenRecord, TokenStore

__all__ = [
    "CatalogService",
    "PLAYBACK_TABLE_SCHEMA",
    "PlaybackStore",
    "TOKEN_TABLE_SCHEMA",
    "TokenRecord",
    "TokenRefreshCoordinator",
    "TokenStore",
]
