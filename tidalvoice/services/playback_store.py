"""
💾 Playback session store
=========================

Append-only history of ``PlaybackSnapshot`` objects per user, stored in a
table keyed by ``(userId, timestamp)``. Each item carries a ``ttl`` so old
sessions disappear on their own; the latest snapshot is the current state.
Snapshots are appended by ``PlaybackStateMachine`` only.
"""

import json
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from ..constants import PLAYBACK_TTL_SECONDS
from ..core.models import PlaybackSnapshot
from ..storage import DurableStore, TableSchema

logger = logging.getLogger("tidalvoice.playback_store")

PLAYBACK_TABLE_SCHEMA = TableSchema(partition_key="userId", sort_key="timestamp", ttl_attribute="ttl")


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


class PlaybackStore:
    """Durable, append-only playback snapshots."""

    def __init__(self, store: DurableStore, ttl_seconds: int = PLAYBACK_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._last_timestamp: Dict[str, str] = {}

    def _next_timestamp(self, user_id: str, now: float) -> str:
        """Strictly increasing ISO timestamp per user, so appends never overwrite."""
        with self._lock:
            candidate = _iso(now)
            previous = self._last_timestamp.get(user_id)
            if previous is not None and candidate <= previous:
                bumped = datetime.fromisoformat(previous.replace("Z", "+00:00")) + timedelta(microseconds=1)
                candidate = bumped.isoformat(timespec="microseconds").replace("+00:00", "Z")
            self._last_timestamp[user_id] = candidate
            return candidate

    def append(self, snapshot: PlaybackSnapshot) -> PlaybackSnapshot:
        """Persist ``snapshot`` as the newest state of its user.

        Returns:
            PlaybackSnapshot: The stored snapshot with its timestamp assigned
        """
        now = self._clock()
        stored = snapshot.merge(timestamp=self._next_timestamp(snapshot.user_id, now))
        self.store.put_item({
            "userId": stored.user_id,
            "timestamp": stored.timestamp,
            "state": json.dumps(stored.to_dict(), sort_keys=True),
            "ttl": int(now) + self.ttl_seconds,
            "createdAt": _iso(now),
        })
        logger.info(
            "playback.snapshot.saved",
            extra={"user_id": stored.user_id, "state": stored.state.value, "type": stored.type,
                   "current_index": stored.current_index},
        )
        return stored

    def _parse(self, item: Dict[str, Any]) -> Optional[PlaybackSnapshot]:
        raw = item.get("state")
        try:
            data = json.loads(raw) if isinstance(raw, str) else dict(raw or {})
            data.setdefault("timestamp", item.get("timestamp", ""))
            return PlaybackSnapshot.from_dict(data)
        except (TypeError, ValueError, KeyError) as exc:
            logger.error(
                "playback.snapshot.unreadable",
                extra={"user_id": item.get("userId"), "timestamp": item.get("timestamp"), "error": str(exc)},
            )
            return None

    def get_latest(self, user_id: str) -> Optional[PlaybackSnapshot]:
        """Newest live snapshot of ``user_id``, or None."""
        items = self.store.query(user_id, scan_forward=False, limit=1)
        if not items:
            logger.debug("playback.snapshot.none", extra={"user_id": user_id})
            return None
        return self._parse(items[0])

    def list_snapshots(self, user_id: str, limit: Optional[int] = None,
                       newest_first: bool = True) -> List[PlaybackSnapshot]:
        items = self.store.query(user_id, scan_forward=not newest_first, limit=limit)
        return [snapshot for snapshot in (self._parse(item) for item in items) if snapshot is not None]

    def get_playlist(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Track list and index of the latest multi-track snapshot, or None."""
        latest = self.get_latest(user_id)
        if latest is None or not latest.track_list:
            return None
        return {"track_list": list(latest.track_list), "current_index": latest.current_index}

    def clear_session(self, user_id: str) -> Dict[str, int]:
        """Delete every snapshot of ``user_id``.

        Returns:
            Dict[str, int]: ``{"removed_count": n}``
        """
        items = self.store.query(user_id)
        if items:
            self.store.batch_write(
                [{"userId": user_id, "timestamp": item["timestamp"]} for item in items],
                operation="delete",
            )
        with self._lock:
            self._last_timestamp.pop(user_id, None)
        logger.info("playback.session.cleared", extra={"user_id": user_id, "removed_count": len(items)})
        return {"removed_count": len(items)}
