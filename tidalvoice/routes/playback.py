"""
🎵 Playback Routes Blueprint
Play requests, lifecycle events and session state.
"""

import logging

from flask import Blueprint

from ..core.models import LifecycleEvent
from .helpers import (access_token_from, api_error, api_error_handler,
                      api_response, get_context, invalid_int_fields,
                      json_payload, missing_fields)

playback_bp = Blueprint("playback", __name__)
logger = logging.getLogger(__name__)

_PLAY_KINDS = ("track", "album", "playlist", "artist")


def _optional_int(value):
    return None if value is None else int(value)


@playback_bp.route("/api/playback/play", methods=["POST"])
@api_error_handler
def play():
    """▶️ Start a track, album, playlist or artist by name."""
    payload = json_payload()
    invalid = missing_fields(payload, "user_id", "kind", "name")
    if invalid is not None:
        return invalid
    kind = payload["kind"]
    if kind not in _PLAY_KINDS:
        return api_error(f"Unknown play kind: {kind}", status=400, error_code="unknown_kind",
                         data={"kinds": list(_PLAY_KINDS)})

    player = get_context().player
    user_id = payload["user_id"]
    token = access_token_from(payload)
    name = payload["name"]
    artist = payload.get("artist")
    if kind == "track":
        directive = player.play_track(user_id, token, name, artist)
    elif kind == "album":
        directive = player.play_album(user_id, token, name, artist)
    elif kind == "playlist":
        directive = player.play_playlist(user_id, token, name)
    else:
        directive = player.play_artist(user_id, token, name)
    return api_response(True, data={"directive": directive.to_dict()})


@playback_bp.route("/api/playback/events", methods=["POST"])
@api_error_handler
def playback_event():
    """📻 Apply a lifecycle event reported by the device."""
    payload = json_payload()
    invalid = missing_fields(payload, "user_id", "event", "token")
    if invalid is not None:
        return invalid
    try:
        event = LifecycleEvent.parse(payload["event"])
    except ValueError as e:
        return api_error(str(e), status=400, error_code="unknown_event")
    invalid = invalid_int_fields(payload, "offset_ms")
    if invalid is not None:
        return invalid

    directive = get_context().playback.handle_event(
        payload["user_id"],
        event,
        payload["token"],
        access_token=access_token_from(payload),
        offset_ms=_optional_int(payload.get("offset_ms")),
        error_type=payload.get("error_type"),
        error_message=payload.get("error_message"),
    )
    return api_response(True, data={"directive": directive.to_dict() if directive else None})


@playback_bp.route("/api/playback/resume", methods=["POST"])
@api_error_handler
def resume():
    """⏯️ Resume the latest paused track."""
    payload = json_payload()
    invalid = missing_fields(payload, "user_id")
    if invalid is not None:
        return invalid
    directive = get_context().playback.resume(payload["user_id"], access_token_from(payload))
    return api_response(True, data={"directive": directive.to_dict()})


@playback_bp.route("/api/playback/next", methods=["POST"])
@api_error_handler
def next_track():
    payload = json_payload()
    invalid = missing_fields(payload, "user_id")
    if invalid is not None:
        return invalid
    directive = get_context().playback.next(payload["user_id"], access_token_from(payload))
    return api_response(True, data={"directive": directive.to_dict()})


@playback_bp.route("/api/playback/previous", methods=["POST"])
@api_error_handler
def previous_track():
    payload = json_payload()
    invalid = missing_fields(payload, "user_id")
    if invalid is not None:
        return invalid
    directive = get_context().playback.previous(payload["user_id"], access_token_from(payload))
    return api_response(True, data={"directive": directive.to_dict()})


@playback_bp.route("/api/playback/jump", methods=["POST"])
@api_error_handler
def jump():
    """⏭️ Play the track at `index` of the current album or playlist."""
    payload = json_payload()
    invalid = missing_fields(payload, "user_id", "index")
    if invalid is None:
        invalid = invalid_int_fields(payload, "index")
    if invalid is not None:
        return invalid
    directive = get_context().playback.jump_to(
        payload["user_id"], access_token_from(payload), int(payload["index"])
    )
    return api_response(True, data={"directive": directive.to_dict()})


@playback_bp.route("/api/playback/<user_id>/state")
@api_error_handler
def playback_state(user_id: str):
    """📊 Latest snapshot of the user's session."""
    snapshot = get_context().playback_store.get_latest(user_id)
    if snapshot is None:
        return api_error("No playback state", status=404, error_code="not_found")
    return api_response(True, data={"state": snapshot.to_dict()})


@playback_bp.route("/api/playback/<user_id>", methods=["DELETE"])
@api_error_handler
def clear_playback(user_id: str):
    """🗑️ Delete every snapshot of the user's session."""
    result = get_context().playback_store.clear_session(user_id)
    return api_response(True, data=result,
                        message=f"Removed {result['removed_count']} playback snapshots")
