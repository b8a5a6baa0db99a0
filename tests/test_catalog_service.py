"""
Unit tests for the cached catalog access layer

Tests cover:
- Cache keys and namespace of each lookup
- Cache hits avoid network calls; failures are never cached
- Client credentials fallback when no user token is given
- Stream URL resolution and fresh re-resolution
- Per-kind cache clearing
"""
import pytest

from conftest import make_response, playback_info, requires_token, track_item
from tidalvoice.errors import NotFoundError, ServerError


def _page(*items):
    return {"items": list(items)}


class TestSearch:

    def test_search_track_uses_track_key(self, context, transport):
        transport.add("/search/tracks", make_response(200, _page(track_item("1", "Despacito"))))

        result = context.catalog.search_track("access-1", "Despacito", user_id="user-1")

        assert result == {"tracks": [track_item("1", "Despacito")]}
        assert context.cache.has("catalog", "track:Despacito")

    def test_artist_name_is_part_of_the_query(self, context, transport):
        transport.add("/search/tracks", make_response(200, _page()))

        context.catalog.search_track("access-1", "Despacito", "Luis Fonsi")

        call = transport.calls_to("/search/tracks")[0]
        assert call.params["query"] == "Despacito Luis Fonsi"
        assert call.params["countryCode"] == "US"
        assert context.cache.has("catalog", "track:Despacito Luis Fonsi")

    def test_second_lookup_is_served_from_cache(self, context, transport):
        transport.add("/search/albums", make_response(200, _page({"id": "a1", "title": "Vida"})))

        first = context.catalog.search_album("access-1", "Vida")
        second = context.catalog.search_album("access-1", "Vida")

        assert first == second == {"albums": [{"id": "a1", "title": "Vida"}]}
        assert len(transport.calls_to("/search/albums")) == 1

    def test_multi_type_search(self, context, transport):
        transport.add("/search", make_response(200, {
            "tracks": _page(track_item("1", "Song")),
            "artists": _page({"id": "ar1", "name": "Band"}),
            "albums": {},
        }))

        result = context.catalog.search("access-1", "Song", limit=3)

        assert result["tracks"][0]["id"] == "1"
        assert result["artists"] == [{"id": "ar1", "name": "Band"}]
        assert result["albums"] == []
        assert result["playlists"] == []
        assert transport.calls_to("/search")[0].params["types"] == "ARTISTS,ALBUMS,TRACKS,PLAYLISTS"
        assert context.cache.has("catalog", "search:Song:3")

    def test_failures_are_not_cached(self, context, transport):
        transport.add(
            "/search/artists",
            make_response(500, {}), make_response(500, {}), make_response(500, {}),
            make_response(200, _page({"id": "ar1", "name": "Band"})),
        )

        with pytest.raises(ServerError):
            context.catalog.search_artist("access-1", "Band")
        assert context.cache.has("catalog", "artist:Band") is False

        assert context.catalog.search_artist("access-1", "Band") == {"artists": [{"id": "ar1", "name": "Band"}]}

    def test_anonymous_lookup_uses_client_token(self, context, transport):
        transport.add("/search/playlists", requires_token("client-token", _page({"id": "p1", "title": "Mix"})))

        result = context.catalog.search_playlist(None, "Mix")

        assert result == {"playlists": [{"id": "p1", "title": "Mix"}]}
        assert len(transport.calls_to("/oauth2/token")) == 1


class TestTrackLists:

    def test_album_tracks(self, context, transport):
        transport.add("/albums/a1/tracks", make_response(200, _page(track_item("1", "One"), track_item("2", "Two"))))

        tracks = context.catalog.get_album_tracks("access-1", "a1")

        assert [t["id"] for t in tracks] == ["1", "2"]
        assert context.cache.has("catalog", "album_tracks:a1")

    def test_playlist_tracks(self, context, transport):
        transport.add("/playlists/p1/tracks", make_response(200, _page(track_item("9", "Nine"))))

        assert context.catalog.get_playlist_tracks("access-1", "p1")[0]["title"] == "Nine"
        assert context.cache.has("catalog", "playlist_tracks:p1")

    def test_artist_top_tracks(self, context, transport):
        transport.add("/artists/ar1/toptracks", make_response(200, _page(track_item("5", "Hit"))))

        assert context.catalog.get_artist_top_tracks("access-1", "ar1", limit=5)[0]["id"] == "5"
        assert context.cache.has("catalog", "artist_top_tracks:ar1:5")

    def test_missing_items_give_empty_list(self, context, transport):
        transport.add("/albums/a1/tracks", make_response(200, {"data": []}))

        assert context.catalog.get_album_tracks("access-1", "a1") == []


class TestStreamUrl:

    def test_stream_url_from_manifest(self, context, transport):
        transport.add("/tracks/1/playbackinfo", make_response(200, playback_info("https://cdn/1.flac")))

        assert context.catalog.get_stream_url("access-1", "1") == "https://cdn/1.flac"
        assert transport.calls_to("/tracks/1/playbackinfo")[0].params["soundQuality"] == "HIGH"
        assert context.cache.has("catalog", "stream_url:1")

    def test_fresh_bypasses_cached_url(self, context, transport):
        transport.add(
            "/tracks/1/playbackinfo",
            make_response(200, playback_info("https://cdn/old")),
            make_response(200, playback_info("https://cdn/new")),
        )

        assert context.catalog.get_stream_url("access-1", "1") == "https://cdn/old"
        assert context.catalog.get_stream_url("access-1", "1") == "https://cdn/old"
        assert context.catalog.get_stream_url("access-1", "1", fresh=True) == "https://cdn/new"

    def test_missing_manifest_is_not_found(self, context, transport):
        transport.add("/tracks/1/playbackinfo", make_response(200, {"manifest": {}}))

        with pytest.raises(NotFoundError):
            context.catalog.get_stream_url("access-1", "1")
        assert context.cache.has("catalog", "stream_url:1") is False


class TestUserLibrary:

    def test_favorites_are_keyed_by_owner(self, context, transport):
        transport.add("/favorites/tracks", make_response(200, _page(track_item("1", "Fav"))))

        context.catalog.get_favorites("access-1", "tracks", user_id="user-1")

        assert context.cache.has("catalog", "favorites:tracks:user-1")

    def test_user_playlists_and_recommendations(self, context, transport):
        transport.add("/my-collection/playlists/folders", make_response(200, _page({"id": "p1"})))
        transport.add("/recommended/sections", make_response(200, {"sections": ["mix"]}))

        assert context.catalog.get_user_playlists("access-1", user_id="user-1") == [{"id": "p1"}]
        assert context.catalog.get_recommendations("access-1", user_id="user-1") == {"sections": ["mix"]}
        assert context.cache.has("catalog", "user_playlists:user-1")
        assert context.cache.has("catalog", "recommendations:user-1")

    def test_user_info_is_keyed_by_token(self, context, transport):
        transport.add("/me", make_response(200, {"id": "user-1"}))

        context.catalog.get_user_info("access-1")

        assert context.cache.has("catalog", "user_info:access-1")


class TestCacheManagement:

    def test_clear_one_kind(self, context):
        context.cache.set("catalog", "track:A", 1)
        context.cache.set("catalog", "track_details:1", 2)
        context.cache.set("catalog", "album:B", 3)

        removed = context.catalog.clear_cache("tracks")

        assert removed == 2
        assert context.cache.has("catalog", "album:B")

    def test_clear_all_catalog_entries(self, context):
        context.cache.set("catalog", "track:A", 1)
        context.cache.set("auth", "client_credentials", "tok")

        assert context.catalog.clear_cache() == 1
        assert context.cache.has("auth", "client_credentials")

    def test_unknown_kind(self, context):
        with pytest.raises(ValueError):
            context.catalog.clear_cache("videos")

    def test_cache_stats_include_catalog_entries(self, context):
        context.cache.set("catalog", "track:A", 1)

        stats = context.catalog.cache_stats()

        assert stats["catalog_entries"] == 1
        assert "hit_rate" in stats
