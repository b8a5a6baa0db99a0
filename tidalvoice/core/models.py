"""
Playback domain types shared by the session store and the state machine.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class PlaybackState(str, Enum):
    IDLE = "IDLE"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    FAILED = "FAILED"


class LifecycleEvent(str, Enum):
    """Playback lifecycle events reported by the audio device."""
    STARTED = "Started"
    FINISHED = "Finished"
    STOPPED = "Stopped"
    FAILED = "Failed"
    NEARLY_FINISHED = "NearlyFinished"

    @classmethod
    def parse(cls, value: str) -> "LifecycleEvent":
        """Accept ``Finished``, ``PlaybackFinished`` or ``AudioPlayer.PlaybackFinished``."""
        name = str(value).rsplit(".", 1)[-1]
        if name.startswith("Playback"):
            name = name[len("Playback"):]
        for event in cls:
            if event.value.lower() == name.lower():
                return event
        raise ValueError(f"Unknown lifecycle event: {value}")


@dataclass(frozen=True)
class TrackRef:
    """Entry of a multi-track context."""
    id: str
    title: str = ""
    artist: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "artist": self.artist}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackRef":
        return cls(id=str(data["id"]), title=data.get("title") or "", artist=data.get("artist") or "")

    @classmethod
    def from_catalog(cls, item: Dict[str, Any]) -> "TrackRef":
        """Build from a catalog track item (``artist`` may be an object or a name)."""
        artist = item.get("artist")
        if isinstance(artist, dict):
            artist = artist.get("name")
        elif artist is None and isinstance(item.get("artists"), list) and item["artists"]:
            first = item["artists"][0]
            artist = first.get("name") if isinstance(first, dict) else first
        return cls(id=str(item["id"]), title=item.get("title") or "", artist=artist or "")


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Immutable playback state of one user at one point in time.

    A change is a new snapshot built with ``merge``; snapshots are never
    edited in place.
    """
    user_id: str
    token: str
    timestamp: str = ""
    type: str = "track"
    state: PlaybackState = PlaybackState.PLAYING
    track_id: Optional[str] = None
    title: str = ""
    artist: str = ""
    album_name: Optional[str] = None
    context_name: Optional[str] = None
    offset_ms: int = 0
    current_index: int = 0
    track_list: List[TrackRef] = field(default_factory=list)
    stream_url: Optional[str] = None
    stream_url_fetched_at: Optional[float] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    is_complete: bool = False

    def __post_init__(self):
        if self.offset_ms < 0:
            raise ValueError("offset_ms must be >= 0")
        if self.track_list and not 0 <= self.current_index < len(self.track_list):
            raise ValueError(
                f"current_index {self.current_index} outside track list of {len(self.track_list)}"
            )

    def merge(self, **changes: Any) -> "PlaybackSnapshot":
        """Return a copy with ``changes`` applied (unknown fields raise TypeError)."""
        return dataclasses.replace(self, **changes)

    @property
    def is_multi_track(self) -> bool:
        return len(self.track_list) > 1

    @property
    def has_next(self) -> bool:
        return bool(self.track_list) and self.current_index < len(self.track_list) - 1

    @property
    def has_previous(self) -> bool:
        return bool(self.track_list) and self.current_index > 0

    def track_at(self, index: int) -> TrackRef:
        return self.track_list[index]

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["state"] = self.state.value
        data["track_list"] = [track.to_dict() for track in self.track_list]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaybackSnapshot":
        known = {f.name for f in dataclasses.fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["state"] = PlaybackState(values.get("state") or PlaybackState.PLAYING.value)
        values["track_list"] = [TrackRef.from_dict(t) for t in values.get("track_list") or []]
        values["offset_ms"] = int(values.get("offset_ms") or 0)
        values["current_index"] = int(values.get("current_index") or 0)
        return cls(**values)


@dataclass(frozen=True)
class PlayDirective:
    """What the audio device should play next."""
    stream_url: str
    token: str
    offset_ms: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)
