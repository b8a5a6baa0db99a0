"""
TidalVoice Route Blueprints
"""

from .cache import cache_bp
from .health import health_bp
from .playback import playback_bp

__all__ = [
    "cache_bp",
    "health_bp",
    "playback_bp",
]
