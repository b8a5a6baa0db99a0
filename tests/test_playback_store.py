"""
Unit tests for the append-only playback session store

Tests cover:
- Latest snapshot selection and strictly increasing timestamps
- Passive expiry of old snapshots
- Track list lookup and session clearing
"""
import json

import pytest

from tidalvoice.core.models import PlaybackSnapshot, PlaybackState, TrackRef
from tidalvoice.services.playback_store import PlaybackStore

TRACKS = [TrackRef("1", "One", "A"), TrackRef("2", "Two", "B"), TrackRef("3", "Three", "C")]


@pytest.fixture
def store(playback_backend, clock) -> PlaybackStore:
    return PlaybackStore(playback_backend, ttl_seconds=3600, clock=clock)


class TestAppend:

    def test_latest_is_the_newest_append(self, store):
        store.append(PlaybackSnapshot(user_id="u1", token="t1", track_id="1"))
        store.append(PlaybackSnapshot(user_id="u1", token="t2", track_id="2"))

        latest = store.get_latest("u1")

        assert latest.token == "t2"
        assert latest.track_id == "2"

    def test_appends_in_the_same_instant_do_not_overwrite(self, store):
        first = store.append(PlaybackSnapshot(user_id="u1", token="t1"))
        second = store.append(PlaybackSnapshot(user_id="u1", token="t2"))

        assert second.timestamp > first.timestamp
        assert len(store.list_snapshots("u1")) == 2

    def test_item_layout(self, store, playback_backend, clock):
        stored = store.append(PlaybackSnapshot(user_id="u1", token="t1", title="Song"))

        item = playback_backend.query("u1")[0]
        assert item["timestamp"] == stored.timestamp
        assert item["timestamp"].endswith("Z")
        assert item["ttl"] == int(clock.now) + 3600
        assert json.loads(item["state"])["title"] == "Song"

    def test_users_are_isolated(self, store):
        store.append(PlaybackSnapshot(user_id="u1", token="t1"))

        assert store.get_latest("u2") is None

    def test_snapshots_expire(self, store, clock):
        store.append(PlaybackSnapshot(user_id="u1", token="t1"))

        clock.advance(3601)

        assert store.get_latest("u1") is None

    def test_unreadable_state_is_skipped(self, store, playback_backend):
        playback_backend.put_item({"userId": "u1", "timestamp": "2030-01-01T00:00:00.000000Z",
                                   "state": "{broken", "ttl": 9999999999})

        assert store.get_latest("u1") is None

    def test_list_snapshots_newest_first(self, store):
        for token in ("t1", "t2", "t3"):
            store.append(PlaybackSnapshot(user_id="u1", token=token))

        assert [s.token for s in store.list_snapshots("u1")] == ["t3", "t2", "t1"]
        assert [s.token for s in store.list_snapshots("u1", limit=2, newest_first=False)] == ["t1", "t2"]


class TestPlaylist:

    def test_get_playlist(self, store):
        store.append(PlaybackSnapshot(user_id="u1", token="2:tok", track_id="2", current_index=1,
                                      track_list=list(TRACKS)))

        playlist = store.get_playlist("u1")

        assert playlist["current_index"] == 1
        assert [t.id for t in playlist["track_list"]] == ["1", "2", "3"]

    def test_get_playlist_without_track_list(self, store):
        store.append(PlaybackSnapshot(user_id="u1", token="t1"))

        assert store.get_playlist("u1") is None

    def test_clear_session(self, store):
        for token in ("t1", "t2", "t3"):
            store.append(PlaybackSnapshot(user_id="u1", token=token))
        store.append(PlaybackSnapshot(user_id="u2", token="x"))

        assert store.clear_session("u1") == {"removed_count": 3}
        assert store.get_latest("u1") is None
        assert store.get_latest("u2") is not None

    def test_clear_empty_session(self, store):
        assert store.clear_session("nobody") == {"removed_count": 0}


class TestSnapshotModel:

    def test_negative_offset_is_rejected(self):
        with pytest.raises(ValueError):
            PlaybackSnapshot(user_id="u1", token="t", offset_ms=-1)

    def test_index_must_be_inside_track_list(self):
        with pytest.raises(ValueError):
            PlaybackSnapshot(user_id="u1", token="t", track_list=TRACKS, current_index=3)

    def test_merge_returns_a_new_snapshot(self):
        snapshot = PlaybackSnapshot(user_id="u1", token="t", track_list=TRACKS)
        moved = snapshot.merge(current_index=2)

        assert snapshot.current_index == 0
        assert moved.current_index == 2
        assert moved.has_next is False
        assert moved.has_previous is True

    def test_dict_round_trip_keeps_tracks(self):
        snapshot = PlaybackSnapshot(user_id="u1", token="t", state=PlaybackState.PAUSED,
                                    track_list=TRACKS, current_index=1)

        restored = PlaybackSnapshot.from_dict(snapshot.to_dict())

        assert restored == snapshot
