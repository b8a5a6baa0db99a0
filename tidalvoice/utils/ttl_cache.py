#!/usr/bin/env python3
"""
🗃️ Namespaced TTL Cache
=======================

In-memory cache shared by every catalog lookup:
- Namespaces isolate unrelated operation kinds
- Per-entry expiry, enforced on read even if the sweeper never ran
- Bounded namespaces (oldest-created entry evicted on overflow)
- ``get_or_set`` memoization that never caches failures or ``None``
- Periodic background sweep on a daemon thread
- Hit/miss statistics

Bookkeeping problems never escape: a broken cache behaves like an empty one.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

_MISSING = object()


@dataclass
class CacheEntry:
    """Individual cache entry with metadata."""
    value: Any
    created_at: float
    expires_at: float
    hit_count: int = 0
    last_access: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.created_at)


@dataclass
class _Stats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expired: int = 0
    errors: int = 0
    last_sweep: Optional[float] = field(default=None)


class TTLCache:
    """Thread-safe namespaced cache with per-entry TTL and bounded namespaces."""

    def __init__(
        self,
        default_ttl: int = 300,
        max_size: int = 1000,
        enabled: bool = True,
        cleanup_interval: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            default_ttl: TTL in seconds used when ``set`` gets none
            max_size: Maximum number of entries per namespace
            enabled: When False every read misses and nothing is stored
            cleanup_interval: Seconds between background sweeps
            clock: Time source, injectable for tests
        """
        self.logger = logging.getLogger("tidalvoice.cache")
        self.default_ttl = default_ttl
        self.max_size = max(1, int(max_size))
        self.enabled = enabled
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._lock = threading.RLock()
        self._namespaces: Dict[str, Dict[str, CacheEntry]] = {}
        self._stats = _Stats()
        self._sweeper: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self.logger.debug(
            "cache.init",
            extra={"enabled": enabled, "default_ttl": default_ttl, "max_size": self.max_size},
        )

    @classmethod
    def from_settings(cls, settings) -> "TTLCache":
        """Build a cache from ``CacheSettings``."""
        return cls(
            default_ttl=settings.default_ttl,
            max_size=settings.max_size,
            enabled=settings.enabled,
            cleanup_interval=settings.cleanup_interval,
        )

    @staticmethod
    def make_key(*parts: Any) -> str:
        """Join parts into a composite key; ``None`` becomes an empty segment."""
        segments = []
        for part in parts:
            if part is None:
                segments.append("")
            elif isinstance(part, (dict, list, tuple)):
                segments.append(json.dumps(part, sort_keys=True, default=str))
            else:
                segments.append(str(part))
        return ":".join(segments)

    def _bucket(self, namespace: str) -> Dict[str, CacheEntry]:
        bucket = self._namespaces.get(namespace)
        if bucket is None:
            bucket = {}
            self._namespaces[namespace] = bucket
        return bucket

    def set(self, namespace: str, key: str, value: Any, ttl: Optional[int] = None) -> Any:
        """Store ``value`` and return it unchanged.

        Args:
            namespace: Partition for related entries
            key: Entry key within the namespace
            value: Value to store
            ttl: Lifetime in seconds (defaults to ``default_ttl``)
        """
        if not self.enabled:
            return value

        try:
            lifetime = self.default_ttl if ttl is None else ttl
            with self._lock:
                now = self._clock()
                bucket = self._bucket(namespace)
                if key not in bucket and len(bucket) >= self.max_size:
                    self._evict_oldest(namespace, bucket, now)
                bucket[key] = CacheEntry(
                    value=value,
                    created_at=now,
                    expires_at=now + lifetime,
                    last_access=now,
                )
                self._stats.sets += 1
        except Exception as exc:
            self._record_error("set", namespace, key, exc)
        return value

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` when absent or expired."""
        if not self.enabled:
            return default

        try:
            with self._lock:
                bucket = self._namespaces.get(namespace)
                entry = bucket.get(key) if bucket else None
                if entry is None:
                    self._stats.misses += 1
                    return default

                now = self._clock()
                if entry.is_expired(now):
                    del bucket[key]
                    self._stats.expired += 1
                    self._stats.misses += 1
                    return default

                entry.hit_count += 1
                entry.last_access = now
                self._stats.hits += 1
                return entry.value
        except Exception as exc:
            self._record_error("get", namespace, key, exc)
            return default

    def has(self, namespace: str, key: str) -> bool:
        """Check presence without touching hit/miss statistics."""
        if not self.enabled:
            return False

        try:
            with self._lock:
                bucket = self._namespaces.get(namespace)
                entry = bucket.get(key) if bucket else None
                if entry is None:
                    return False
                if entry.is_expired(self._clock()):
                    del bucket[key]
                    self._stats.expired += 1
                    return False
                return True
        except Exception as exc:
            self._record_error("has", namespace, key, exc)
            return False

    def delete(self, namespace: str, key: str) -> bool:
        """Remove one entry; returns True if something was removed."""
        try:
            with self._lock:
                bucket = self._namespaces.get(namespace)
                if not bucket or key not in bucket:
                    return False
                del bucket[key]
                return True
        except Exception as exc:
            self._record_error("delete", namespace, key, exc)
            return False

    def delete_matching(self, namespace: str, predicate: Callable[[str], bool]) -> int:
        """Remove every key of ``namespace`` for which ``predicate(key)`` is true."""
        try:
            with self._lock:
                bucket = self._namespaces.get(namespace)
                if not bucket:
                    return 0
                victims = [key for key in list(bucket.keys()) if predicate(key)]
                for key in victims:
                    bucket.pop(key, None)
                return len(victims)
        except Exception as exc:
            self._record_error("delete_matching", namespace, None, exc)
            return 0

    def clear(self, namespace: Optional[str] = None) -> int:
        """Drop one namespace, or everything when ``namespace`` is None."""
        try:
            with self._lock:
                if namespace is not None:
                    removed = len(self._namespaces.get(namespace, {}))
                    self._namespaces.pop(namespace, None)
                    self.logger.debug("cache.clear", extra={"namespace": namespace, "removed": removed})
                    return removed
                removed = self.size()
                self._namespaces.clear()
                self.logger.debug("cache.clear_all", extra={"removed": removed})
                return removed
        except Exception as exc:
            self._record_error("clear", namespace, None, exc)
            return 0

    def get_or_set(
        self,
        namespace: str,
        key: str,
        compute_fn: Callable[[], Any],
        ttl: Optional[int] = None,
    ) -> Any:
        """Return the cached value or compute, store and return it.

        ``None`` results are returned but not stored. Exceptions raised by
        ``compute_fn`` propagate and leave the cache untouched.
        """
        if not self.enabled:
            return compute_fn()

        cached = self.get(namespace, key, _MISSING)
        if cached is not _MISSING:
            return cached

        value = compute_fn()
        if value is not None:
            self.set(namespace, key, value, ttl)
        return value

    def _evict_oldest(self, namespace: str, bucket: Dict[str, CacheEntry], now: float) -> None:
        """Remove the single oldest-created entry. Caller holds the lock."""
        keys = list(bucket.keys())
        if not keys:
            return
        oldest_key = min(keys, key=lambda k: bucket[k].created_at)
        entry = bucket.pop(oldest_key)
        self._stats.evictions += 1
        self.logger.debug(
            "cache.evict",
            extra={"namespace": namespace, "key": oldest_key, "age_s": round(entry.age_seconds(now))},
        )

    def sweep(self) -> int:
        """Remove all expired entries across all namespaces.

        Returns:
            int: Number of entries removed
        """
        removed = 0
        try:
            with self._lock:
                now = self._clock()
                for namespace in list(self._namespaces.keys()):
                    bucket = self._namespaces[namespace]
                    expired_keys = [k for k, entry in list(bucket.items()) if entry.is_expired(now)]
                    for key in expired_keys:
                        del bucket[key]
                    removed += len(expired_keys)
                self._stats.expired += removed
                self._stats.last_sweep = now
        except Exception as exc:
            self._record_error("sweep", None, None, exc)
            return removed

        if removed:
            self.logger.info("cache.sweep", extra={"removed": removed, "size": self.size()})
        return removed

    def size(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._namespaces.values())

    def namespace_size(self, namespace: str) -> int:
        with self._lock:
            return len(self._namespaces.get(namespace, {}))

    def stats(self) -> Dict[str, Any]:
        """Return usage statistics.

        Returns:
            Dict[str, Any]: hits, misses, sets, evictions, expired, hit_rate
            (percentage, two decimals), size and a few extras
        """
        with self._lock:
            total = self._stats.hits + self._stats.misses
            hit_rate = (self._stats.hits / total) * 100 if total else 0.0
            return {
                "hits": self._stats.hits,
                "misses": self._stats.misses,
                "sets": self._stats.sets,
                "evictions": self._stats.evictions,
                "expired": self._stats.expired,
                "errors": self._stats.errors,
                "total_requests": total,
                "hit_rate": round(hit_rate, 2),
                "size": self.size(),
                "namespaces": len(self._namespaces),
                "enabled": self.enabled,
                "last_sweep": self._stats.last_sweep,
            }

    def _record_error(self, operation: str, namespace: Optional[str], key: Optional[str], exc: Exception) -> None:
        with self._lock:
            self._stats.errors += 1
        self.logger.error(
            "cache.error",
            extra={"operation": operation, "namespace": namespace, "key": key, "error": str(exc)},
        )

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start_sweeper(self) -> None:
        """Start the periodic sweep on a daemon thread (idempotent)."""
        if not self.enabled:
            return
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop_event.clear()
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name="tidalvoice-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    def stop_sweeper(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join(timeout)
        self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.cleanup_interval):
            self.sweep()
