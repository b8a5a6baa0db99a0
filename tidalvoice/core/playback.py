#!/usr/bin/env python3
"""
▶️ Playback state machine for TidalVoice
Decides what happens after each playback lifecycle event:

    IDLE -> PLAYING -> {PAUSED, FINISHED, FAILED}
    PAUSED -> PLAYING (resume)
    FINISHED / FAILED stay put until a new play request

Every transition appends a new snapshot to the session store. Events whose
token is not the latest snapshot's token are stale and change nothing.
"""

import logging
import time
import uuid
from typing import Callable, List, Optional

from ..errors import ApiError, NotFoundError, PlaybackError
from .models import (LifecycleEvent, PlayDirective, PlaybackSnapshot,
                     PlaybackState, TrackRef)

logger = logging.getLogger("tidalvoice.playback")

_TERMINAL_STATES = (PlaybackState.FINISHED, PlaybackState.FAILED)


def new_play_token(track_id: str) -> str:
    """Opaque token identifying one play of one track."""
    return f"{track_id}:{uuid.uuid4().hex[:12]}"


class PlaybackStateMachine:
    """Lifecycle transitions over the append-only session store."""

    def __init__(self, store, catalog, settings,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            store: ``PlaybackStore``
            catalog: ``CatalogService`` used to resolve stream URLs
            settings: ``PlaybackSettings``
            clock: Time source for URL freshness
        """
        self.store = store
        self.catalog = catalog
        self.settings = settings
        self._clock = clock

    @staticmethod
    def _directive(snapshot: PlaybackSnapshot) -> PlayDirective:
        return PlayDirective(
            stream_url=snapshot.stream_url or "",
            token=snapshot.token,
            offset_ms=snapshot.offset_ms,
            metadata={
                "title": snapshot.title,
                "artist": snapshot.artist,
                "album_name": snapshot.album_name,
                "context_name": snapshot.context_name,
                "type": snapshot.type,
                "current_index": snapshot.current_index,
                "track_count": len(snapshot.track_list),
            },
        )

    def _stream_url(self, user_id: str, access_token: Optional[str], track_id: str,
                    fresh: bool = False) -> str:
        return self.catalog.get_stream_url(access_token, track_id, user_id=user_id, fresh=fresh)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self, user_id: str, access_token: Optional[str], tracks: List[TrackRef],
              context_type: str = "track", context_name: Optional[str] = None,
              album_name: Optional[str] = None, index: int = 0) -> PlayDirective:
        """Begin a new play of ``tracks[index]`` with a fresh snapshot.

        Raises:
            PlaybackError: ``tracks`` is empty
        """
        if not tracks:
            raise PlaybackError("Nothing to play", details={"user_id": user_id})
        index = max(0, min(index, len(tracks) - 1))
        track = tracks[index]
        url = self._stream_url(user_id, access_token, track.id)

        snapshot = self.store.append(PlaybackSnapshot(
            user_id=user_id,
            token=new_play_token(track.id),
            type=context_type,
            state=PlaybackState.PLAYING,
            track_id=track.id,
            title=track.title,
            artist=track.artist,
            album_name=album_name,
            context_name=context_name,
            offset_ms=0,
            current_index=index if len(tracks) > 1 else 0,
            track_list=list(tracks) if len(tracks) > 1 else [],
            stream_url=url,
            stream_url_fetched_at=self._clock(),
        ))
        logger.info(
            "playback.start",
            extra={"user_id": user_id, "type": context_type, "track_count": len(tracks)},
        )
        return self._directive(snapshot)

    def resume(self, user_id: str, access_token: Optional[str]) -> PlayDirective:
        """Continue the latest paused (or playing) track at its stored offset.

        A stored stream URL younger than the validity window is reused;
        older ones are resolved again.

        Raises:
            PlaybackError: Nothing to resume
        """
        latest = self.store.get_latest(user_id)
        if latest is None or not latest.track_id or latest.state in _TERMINAL_STATES or latest.is_complete:
            raise PlaybackError("Nothing to resume", details={"user_id": user_id})

        now = self._clock()
        fetched_at = latest.stream_url_fetched_at
        url_is_fresh = (
            bool(latest.stream_url)
            and fetched_at is not None
            and now - fetched_at < self.settings.stream_url_validity_seconds
        )
        changes = {"state": PlaybackState.PLAYING}
        if not url_is_fresh:
            changes["stream_url"] = self._stream_url(user_id, access_token, latest.track_id, fresh=True)
            changes["stream_url_fetched_at"] = now

        snapshot = self.store.append(latest.merge(**changes))
        logger.info(
            "playback.resume",
            extra={"user_id": user_id, "offset_ms": snapshot.offset_ms, "url_reused": url_is_fresh},
        )
        return self._directive(snapshot)

    def skip(self, user_id: str, access_token: Optional[str], step: int) -> PlayDirective:
        """Jump ``step`` tracks within the current multi-track context.

        Raises:
            PlaybackError: No track list, or the jump leaves its bounds
        """
        latest = self.store.get_latest(user_id)
        if latest is None or not latest.track_list:
            raise PlaybackError("No track list to skip through", details={"user_id": user_id})
        target = latest.current_index + step
        if not 0 <= target < len(latest.track_list):
            raise PlaybackError(
                "No next track" if step > 0 else "No previous track",
                details={"user_id": user_id, "current_index": latest.current_index},
            )
        return self._advance(latest, target, access_token)

    def jump_to(self, user_id: str, access_token: Optional[str], index: int) -> PlayDirective:
        """Play ``track_list[index]`` of the current context, index clamped into the list.

        Raises:
            PlaybackError: No track list
        """
        latest = self.store.get_latest(user_id)
        if latest is None or not latest.track_list:
            raise PlaybackError("No track list to jump through", details={"user_id": user_id})
        target = max(0, min(int(index), len(latest.track_list) - 1))
        return self._advance(latest, target, access_token)

    def next(self, user_id: str, access_token: Optional[str]) -> PlayDirective:
        return self.skip(user_id, access_token, 1)

    def previous(self, user_id: str, access_token: Optional[str]) -> PlayDirective:
        return self.skip(user_id, access_token, -1)

    def _advance(self, latest: PlaybackSnapshot, index: int, access_token: Optional[str]) -> PlayDirective:
        track = latest.track_at(index)
        url = self._stream_url(latest.user_id, access_token, track.id)
        snapshot = self.store.append(latest.merge(
            token=new_play_token(track.id),
            state=PlaybackState.PLAYING,
            current_index=index,
            track_id=track.id,
            title=track.title,
            artist=track.artist,
            offset_ms=0,
            stream_url=url,
            stream_url_fetched_at=self._clock(),
            error=None,
            error_type=None,
            is_complete=False,
        ))
        logger.info(
            "playback.advance",
            extra={"user_id": latest.user_id, "from_index": latest.current_index, "to_index": index},
        )
        return self._directive(snapshot)

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def handle_event(self, user_id: str, event, token: str, access_token: Optional[str] = None,
                     offset_ms: Optional[int] = None, error_type: Optional[str] = None,
                     error_message: Optional[str] = None) -> Optional[PlayDirective]:
        """Apply one lifecycle event.

        Args:
            user_id: Owner of the session
            event: ``LifecycleEvent`` or its name
            token: Token of the track the event refers to
            access_token: User token for stream URL resolution
            offset_ms: Playback position (``Stopped``)
            error_type: Failure category (``Failed``)
            error_message: Failure description (``Failed``)

        Returns:
            Optional[PlayDirective]: Next thing to play, if any
        """
        if not isinstance(event, LifecycleEvent):
            event = LifecycleEvent.parse(event)

        latest = self.store.get_latest(user_id)
        if latest is None or latest.token != token:
            logger.info(
                "playback.event.stale",
                extra={"user_id": user_id, "event": event.value, "has_state": latest is not None},
            )
            return None

        if latest.state in _TERMINAL_STATES:
            logger.debug("playback.event.terminal", extra={"user_id": user_id, "event": event.value})
            return None

        if event is LifecycleEvent.STARTED:
            if latest.state is not PlaybackState.PLAYING:
                self.store.append(latest.merge(state=PlaybackState.PLAYING))
            return None

        if event is LifecycleEvent.STOPPED:
            position = latest.offset_ms if offset_ms is None else max(0, int(offset_ms))
            self.store.append(latest.merge(state=PlaybackState.PAUSED, offset_ms=position))
            logger.info("playback.paused", extra={"user_id": user_id, "offset_ms": position})
            return None

        if event is LifecycleEvent.FINISHED:
            if latest.has_next:
                return self._advance(latest, latest.current_index + 1, access_token)
            self.store.append(latest.merge(state=PlaybackState.FINISHED, is_complete=True))
            logger.info("playback.complete", extra={"user_id": user_id})
            return None

        if event is LifecycleEvent.FAILED:
            self.store.append(latest.merge(
                state=PlaybackState.FAILED,
                error=error_message or "Playback failed",
                error_type=error_type or "UNKNOWN",
            ))
            logger.warning(
                "playback.failed",
                extra={"user_id": user_id, "error_type": error_type, "error": error_message},
            )
            return None

        self._prefetch_next(latest, access_token)
        return None

    def _prefetch_next(self, latest: PlaybackSnapshot, access_token: Optional[str]) -> None:
        if not self.settings.prefetch_on_nearly_finished or not latest.has_next:
            return
        track = latest.track_at(latest.current_index + 1)
        try:
            self._stream_url(latest.user_id, access_token, track.id)
        except ApiError as exc:
            # Finished resolves the URL again
            logger.warning(
                "playback.prefetch.fail",
                extra={"user_id": latest.user_id, "track_id": track.id, "reason": exc.__class__.__name__},
            )


class PlaybackService:
    """Play requests for a track, album, playlist or artist name."""

    def __init__(self, catalog, machine: PlaybackStateMachine):
        self.catalog = catalog
        self.machine = machine

    @staticmethod
    def _first(results: dict, key: str, what: str, name: str) -> dict:
        items = (results or {}).get(key) or []
        if not items:
            raise NotFoundError(f"No {what} found for '{name}'", details={"query": name})
        return items[0]

    @staticmethod
    def _refs(items: List[dict], what: str, name: str) -> List[TrackRef]:
        refs = [TrackRef.from_catalog(item) for item in items or [] if item.get("id") is not None]
        if not refs:
            raise NotFoundError(f"No tracks for {what} '{name}'", details={"query": name})
        return refs

    def play_track(self, user_id: str, access_token: Optional[str], track_name: str,
                   artist_name: Optional[str] = None) -> PlayDirective:
        results = self.catalog.search_track(access_token, track_name, artist_name, user_id=user_id)
        track = self._first(results, "tracks", "track", track_name)
        album = track.get("album") if isinstance(track.get("album"), dict) else {}
        return self.machine.start(
            user_id, access_token, [TrackRef.from_catalog(track)],
            context_type="track", album_name=album.get("title"),
        )

    def play_album(self, user_id: str, access_token: Optional[str], album_name: str,
                   artist_name: Optional[str] = None) -> PlayDirective:
        results = self.catalog.search_album(access_token, album_name, artist_name, user_id=user_id)
        album = self._first(results, "albums", "album", album_name)
        tracks = self._refs(self.catalog.get_album_tracks(access_token, album["id"], user_id=user_id),
                            "album", album_name)
        return self.machine.start(
            user_id, access_token, tracks,
            context_type="album", context_name=album.get("title"), album_name=album.get("title"),
        )

    def play_playlist(self, user_id: str, access_token: Optional[str], playlist_name: str) -> PlayDirective:
        results = self.catalog.search_playlist(access_token, playlist_name, user_id=user_id)
        playlist = self._first(results, "playlists", "playlist", playlist_name)
        tracks = self._refs(self.catalog.get_playlist_tracks(access_token, playlist["id"], user_id=user_id),
                            "playlist", playlist_name)
        return self.machine.start(
            user_id, access_token, tracks,
            context_type="playlist", context_name=playlist.get("title"),
        )

    def play_artist(self, user_id: str, access_token: Optional[str], artist_name: str) -> PlayDirective:
        results = self.catalog.search_artist(access_token, artist_name, user_id=user_id)
        artist = self._first(results, "artists", "artist", artist_name)
        top_tracks = self.catalog.get_artist_top_tracks(access_token, artist["id"], user_id=user_id)
        tracks = self._refs(top_tracks, "artist", artist_name)
        first_album = top_tracks[0].get("album") if isinstance(top_tracks[0].get("album"), dict) else {}
        return self.machine.start(
            user_id, access_token, tracks,
            context_type="artist", context_name=artist.get("name"), album_name=first_album.get("title"),
        )
