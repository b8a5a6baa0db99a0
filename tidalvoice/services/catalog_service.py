"""
🎵 Catalog access layer
=======================

Every TIDAL catalog lookup goes through here:

    cache hit  -> return cached value
    cache miss -> token refresh coordinator -> resilient client -> cache store

Only this layer writes catalog entries to the cache. Errors from the client
and coordinator propagate unchanged.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..constants import (CATALOG_NAMESPACE, CATALOG_TTL_SECONDS,
                         PLAYLIST_TRACKS_LIMIT, SEARCH_LIMIT, SEARCH_TYPES)
from ..errors import NotFoundError
from ..utils.ttl_cache import TTLCache
from .token_refresh import TokenRefreshCoordinator

logger = logging.getLogger("tidalvoice.catalog")

# Operation kind -> cache key prefixes it owns
_KIND_PREFIXES = {
    "user_info": ("user_info",),
    "search": ("search",),
    "tracks": ("track", "track_details"),
    "albums": ("album", "album_tracks"),
    "playlists": ("playlist", "playlist_tracks"),
    "artists": ("artist", "artist_top_tracks"),
    "stream_url": ("stream_url",),
    "favorites": ("favorites",),
    "user_playlists": ("user_playlists",),
    "recommendations": ("recommendations",),
}


def _items(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        items = payload.get("items")
        return list(items) if isinstance(items, list) else []
    return []


class CatalogService:
    """Cached, refresh-aware access to the TIDAL catalog."""

    def __init__(self, tidal_client, cache: TTLCache, coordinator: TokenRefreshCoordinator,
                 settings, namespace: str = CATALOG_NAMESPACE):
        """
        Args:
            tidal_client: ``TidalApiClient``
            cache: Shared TTL cache
            coordinator: Refresh-once wrapper for user tokens
            settings: ``TidalSettings`` (country code, sound quality, stream URL TTL)
            namespace: Cache namespace holding catalog entries
        """
        self.tidal_client = tidal_client
        self.cache = cache
        self.coordinator = coordinator
        self.settings = settings
        self.namespace = namespace
        self.ttl = dict(CATALOG_TTL_SECONDS)
        self.ttl["stream_url"] = settings.stream_url_ttl
        logger.info("catalog.init", extra={"namespace": namespace, "stream_url_ttl": settings.stream_url_ttl})

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _call(self, fetch: Callable[[str], Any], access_token: Optional[str], user_id: Optional[str]) -> Any:
        if not access_token:
            return fetch(self.coordinator.get_client_token())
        return self.coordinator.with_auto_refresh(user_id, access_token, fetch)

    def _cached(self, kind: str, key: str, fetch: Callable[[str], Any],
                access_token: Optional[str], user_id: Optional[str]) -> Any:
        return self.cache.get_or_set(
            self.namespace,
            key,
            lambda: self._call(fetch, access_token, user_id),
            self.ttl[kind],
        )

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Callable[[str], Dict[str, Any]]:
        query = {"countryCode": self.settings.country_code}
        query.update(params or {})

        def fetch(token: str) -> Dict[str, Any]:
            return self.tidal_client.get(path, query, token)

        return fetch

    def _items_of(self, path: str, params: Optional[Dict[str, Any]] = None) -> Callable[[str], List[Dict[str, Any]]]:
        fetch = self._get(path, params)
        return lambda token: _items(fetch(token))

    @staticmethod
    def _owner(user_id: Optional[str], access_token: Optional[str]) -> str:
        return user_id or access_token or "client"

    @staticmethod
    def _query(name: str, artist_name: Optional[str]) -> str:
        return f"{name} {artist_name}" if artist_name else name

    # ------------------------------------------------------------------
    # Catalog operations
    # ------------------------------------------------------------------

    def get_user_info(self, access_token: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Profile of the token owner (``/me``)."""
        return self._cached("user_info", self.cache.make_key("user_info", access_token),
                            self._get("/me"), access_token, user_id)

    def search(self, access_token: Optional[str], query: str, limit: int = 5,
               user_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Multi-type search.

        Returns:
            Dict with ``tracks``, ``artists``, ``albums`` and ``playlists`` lists
        """
        fetch = self._get("/search", {
            "query": query,
            "limit": limit,
            "offset": 0,
            "types": ",".join(SEARCH_TYPES),
            "includeContributors": "true",
        })

        def run(token: str) -> Dict[str, List[Dict[str, Any]]]:
            payload = fetch(token)
            return {
                "tracks": _items(payload.get("tracks")),
                "artists": _items(payload.get("artists")),
                "albums": _items(payload.get("albums")),
                "playlists": _items(payload.get("playlists")),
            }

        return self._cached("search", self.cache.make_key("search", query, limit), run, access_token, user_id)

    def _search_one(self, kind: str, prefix: str, endpoint: str, result_key: str, query: str,
                    access_token: Optional[str], user_id: Optional[str]) -> Dict[str, List[Dict[str, Any]]]:
        fetch = self._items_of(endpoint, {"query": query, "limit": SEARCH_LIMIT, "offset": 0})
        return self._cached(kind, self.cache.make_key(prefix, query),
                            lambda token: {result_key: fetch(token)}, access_token, user_id)

    def search_track(self, access_token: Optional[str], track_name: str, artist_name: Optional[str] = None,
                     user_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        return self._search_one("tracks", "track", "/search/tracks", "tracks",
                                self._query(track_name, artist_name), access_token, user_id)

    def search_album(self, access_token: Optional[str], album_name: str, artist_name: Optional[str] = None,
                     user_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        return self._search_one("albums", "album", "/search/albums", "albums",
                                self._query(album_name, artist_name), access_token, user_id)

    def search_artist(self, access_token: Optional[str], artist_name: str,
                      user_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        return self._search_one("artists", "artist", "/search/artists", "artists",
                                artist_name, access_token, user_id)

    def search_playlist(self, access_token: Optional[str], playlist_name: str,
                        user_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        return self._search_one("playlists", "playlist", "/search/playlists", "playlists",
                                playlist_name, access_token, user_id)

    def get_album_tracks(self, access_token: Optional[str], album_id: str,
                         user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        fetch = self._items_of(f"/albums/{album_id}/tracks", {"limit": PLAYLIST_TRACKS_LIMIT, "offset": 0})
        return self._cached("albums", self.cache.make_key("album_tracks", album_id), fetch, access_token, user_id)

    def get_playlist_tracks(self, access_token: Optional[str], playlist_id: str,
                            user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        fetch = self._items_of(f"/playlists/{playlist_id}/tracks", {"limit": PLAYLIST_TRACKS_LIMIT, "offset": 0})
        return self._cached("playlists", self.cache.make_key("playlist_tracks", playlist_id),
                            fetch, access_token, user_id)

    def get_artist_top_tracks(self, access_token: Optional[str], artist_id: str, limit: int = 10,
                              user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        fetch = self._items_of(f"/artists/{artist_id}/toptracks", {"limit": limit, "offset": 0})
        return self._cached("artists", self.cache.make_key("artist_top_tracks", artist_id, limit),
                            fetch, access_token, user_id)

    def get_track_details(self, access_token: Optional[str], track_id: str,
                          user_id: Optional[str] = None) -> Dict[str, Any]:
        return self._cached("tracks", self.cache.make_key("track_details", track_id),
                            self._get(f"/tracks/{track_id}"), access_token, user_id)

    def get_stream_url(self, access_token: Optional[str], track_id: str,
                       user_id: Optional[str] = None, fresh: bool = False) -> str:
        """Playable URL from the track's playback info manifest.

        Args:
            fresh: Skip (and replace) any cached URL for the track

        Raises:
            NotFoundError: The playback info carries no manifest URL
        """
        key = self.cache.make_key("stream_url", track_id)
        if fresh:
            self.cache.delete(self.namespace, key)
        fetch = self._get(f"/tracks/{track_id}/playbackinfo", {"soundQuality": self.settings.sound_quality})

        def run(token: str) -> str:
            manifest = fetch(token).get("manifest") or {}
            url = manifest.get("url") if isinstance(manifest, dict) else None
            if not url:
                raise NotFoundError(f"No stream URL for track {track_id}", details={"track_id": track_id})
            return url

        return self._cached("stream_url", key, run, access_token, user_id)

    def get_favorites(self, access_token: str, favorite_type: str,
                      user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        fetch = self._items_of(f"/favorites/{favorite_type}", {"limit": PLAYLIST_TRACKS_LIMIT, "offset": 0})
        key = self.cache.make_key("favorites", favorite_type, self._owner(user_id, access_token))
        return self._cached("favorites", key, fetch, access_token, user_id)

    def get_user_playlists(self, access_token: str, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        fetch = self._items_of("/my-collection/playlists/folders", {"limit": PLAYLIST_TRACKS_LIMIT, "offset": 0})
        key = self.cache.make_key("user_playlists", self._owner(user_id, access_token))
        return self._cached("user_playlists", key, fetch, access_token, user_id)

    def get_recommendations(self, access_token: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        key = self.cache.make_key("recommendations", self._owner(user_id, access_token))
        return self._cached("recommendations", key, self._get("/recommended/sections"), access_token, user_id)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache(self, kind: Optional[str] = None) -> int:
        """Drop catalog entries of one operation kind, or all of them.

        Returns:
            int: Number of entries removed
        """
        if kind is None:
            removed = self.cache.clear(self.namespace)
            logger.info("catalog.cache.cleared", extra={"removed": removed})
            return removed

        prefixes = _KIND_PREFIXES.get(kind)
        if prefixes is None:
            raise ValueError(f"Unknown catalog kind: {kind}")
        removed = self.cache.delete_matching(self.namespace, lambda key: key.split(":", 1)[0] in prefixes)
        logger.info("catalog.cache.cleared", extra={"kind": kind, "removed": removed})
        return removed

    def cache_stats(self) -> Dict[str, Any]:
        stats = self.cache.stats()
        stats["catalog_entries"] = self.cache.namespace_size(self.namespace)
        return stats

    @staticmethod
    def kinds() -> List[str]:
        return sorted(_KIND_PREFIXES)
