"""Shared utilities: logging setup and the namespaced TTL cache."""

from .ttl_cache import CacheEntry, TTLCache

__all__ = ["CacheEntry", "TTLCache"]
