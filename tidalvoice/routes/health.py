"""
🩺 Health & Status Routes Blueprint
Liveness, readiness and process resource endpoints.
"""

import logging
import time
from typing import Any, Dict

import psutil
from flask import Blueprint, jsonify

from ..version import APP_NAME, VERSION
from .helpers import api_error_handler, api_response, get_context

health_bp = Blueprint("health", __name__)
logger = logging.getLogger(__name__)

_STARTED_AT = time.time()


def _process_resources() -> Dict[str, Any]:
    """Memory and thread usage of this process."""
    try:
        process = psutil.Process()
        process_memory = process.memory_info()
        return {
            "memory_mb": round(process_memory.rss / (1024**2), 1),
            "memory_percent": round(process.memory_percent(), 2),
            "threads": process.num_threads(),
            "pid": process.pid,
        }
    except psutil.Error as e:
        logger.error(f"Error getting process resources: {e}")
        return {"error": "Unable to retrieve process resources"}


@health_bp.route("/healthz")
def healthz():
    """Basic health check endpoint."""
    return jsonify({"ok": True, "version": str(VERSION)})


@health_bp.route("/readyz")
def readyz():
    """Readiness check: both durable stores answer a describe call."""
    context = get_context()
    try:
        stores = {
            "tokens": context.token_store.store.describe(),
            "playback": context.playback_store.store.describe(),
        }
    except Exception as e:
        logger.warning("health.not_ready", extra={"error": str(e)})
        return jsonify({"ok": False, "error": str(e)}), 503
    return jsonify({"ok": True, "stores": stores})


@health_bp.route("/api/health")
@api_error_handler
def api_health():
    """🩺 Component overview with cache, token and process figures."""
    context = get_context()
    cache_stats = context.cache.stats()
    return api_response(True, data={
        "app": APP_NAME,
        "version": str(VERSION),
        "environment": context.settings.environment,
        "uptime_seconds": round(time.time() - _STARTED_AT, 1),
        "cache": {
            "enabled": cache_stats["enabled"],
            "size": cache_stats["size"],
            "hit_rate": cache_stats["hit_rate"],
        },
        "tokens": context.token_store.get_info(),
        "token_refresh": context.token_refresh.get_metrics(),
        "storage": context.settings.storage.backend,
        "process": _process_resources(),
    })
