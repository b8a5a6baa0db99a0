"""
End-to-end scenarios across cache, refresh coordinator, client and session store
"""
from conftest import make_response, playback_info, requires_token, track_item
from tidalvoice.core.models import PlaybackState


def test_play_despacito_with_expired_token(context, transport, sleeps):
    """Expired token, one transient failure, then a cached replay."""
    context.token_store.save_tokens("user-1", "expired-access", "refresh-1")
    transport.add("/oauth2/token", make_response(200, {
        "access_token": "fresh-access", "refresh_token": "refresh-2", "expires_in": 3600,
    }))
    search_hits = {"items": [track_item("155", "Despacito", "Luis Fonsi", "Vida")]}
    transport.add(
        "/search/tracks",
        requires_token("fresh-access", search_hits),
        make_response(503, {}),
        requires_token("fresh-access", search_hits),
    )
    transport.add("/tracks/155/playbackinfo", make_response(200, playback_info("https://cdn/155.flac")))

    directive = context.player.play_track("user-1", "expired-access", "Despacito")

    assert directive.stream_url == "https://cdn/155.flac"
    assert directive.metadata["title"] == "Despacito"
    assert directive.metadata["artist"] == "Luis Fonsi"
    assert directive.metadata["album_name"] == "Vida"
    assert len(sleeps) == 1
    assert context.cache.has("catalog", "track:Despacito")
    assert context.token_store.get_tokens_by_user("user-1").access_token == "fresh-access"

    search_calls = len(transport.calls_to("/search/tracks"))
    context.player.play_track("user-1", "fresh-access", "Despacito")

    assert len(transport.calls_to("/search/tracks")) == search_calls
    assert context.cache.stats()["hits"] >= 1


def test_album_session_runs_to_completion(context, transport):
    tracks = [track_item(str(i), f"Song {i}") for i in range(1, 4)]
    transport.add("/search/albums", make_response(200, {"items": [{"id": "a1", "title": "Record"}]}))
    transport.add("/albums/a1/tracks", make_response(200, {"items": tracks}))
    for item in tracks:
        transport.add(f"/tracks/{item['id']}/playbackinfo",
                      make_response(200, playback_info(f"https://cdn/{item['id']}")))

    directive = context.player.play_album("user-1", "access-1", "Record")
    played = [directive.stream_url]
    while directive is not None:
        directive = context.playback.handle_event("user-1", "Finished", directive.token, "access-1")
        if directive is not None:
            played.append(directive.stream_url)

    latest = context.playback_store.get_latest("user-1")
    assert played == ["https://cdn/1", "https://cdn/2", "https://cdn/3"]
    assert latest.state is PlaybackState.FINISHED
    assert latest.is_complete is True
    assert latest.current_index == 2
