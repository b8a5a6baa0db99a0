"""
🗑️ Cache Management Routes Blueprint
Handles cache statistics, invalidation and sweeping.
"""

import logging

from flask import Blueprint

from .helpers import api_error, api_error_handler, api_response, get_context, json_payload

cache_bp = Blueprint("cache", __name__)
logger = logging.getLogger(__name__)


@cache_bp.route("/api/cache/stats")
@api_error_handler
def get_cache_stats():
    """📊 Cache statistics including the catalog namespace size."""
    return api_response(True, data=get_context().catalog.cache_stats())


@cache_bp.route("/api/cache/clear", methods=["POST"])
@api_error_handler
def clear_cache():
    """🗑️ Drop catalog entries, optionally only those of one kind."""
    catalog = get_context().catalog
    kind = json_payload().get("kind")
    if kind and kind not in catalog.kinds():
        return api_error(
            f"Unknown cache kind: {kind}",
            status=400,
            error_code="unknown_kind",
            data={"kinds": catalog.kinds()},
        )
    removed = catalog.clear_cache(kind or None)
    return api_response(
        True,
        data={"removed_count": removed, "kind": kind or "all"},
        message=f"Successfully invalidated {removed} cache entries",
    )


@cache_bp.route("/api/cache/sweep", methods=["POST"])
@api_error_handler
def sweep_cache():
    """🧹 Remove expired entries from every namespace now."""
    removed = get_context().cache.sweep()
    return api_response(True, data={"removed_count": removed})
