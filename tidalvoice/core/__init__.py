"""Playback domain: snapshot types and the lifecycle state machine."""

from .models import (LifecycleEvent, PlayDirective, PlaybackSnapshot,
                     PlaybackState, TrackRef)
from .playback import PlaybackService, PlaybackStateMachine

__all__ = [
    "LifecycleEvent",
    "PlayDirective",
    "PlaybackService",
    "PlaybackSnapshot",
    "PlaybackState",
    "PlaybackStateMachine",
    "TrackRef",
]
