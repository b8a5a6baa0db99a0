"""
Application factory for TidalVoice.

Builds the component context (unless one is given) and exposes it to the
blueprints through ``app.extensions["tidalvoice"]``.
"""

import logging
import os
from typing import Optional

from flask import Flask
from flask_compress import Compress

from .context import AppContext, build_context
from .routes import cache_bp, health_bp, playback_bp
from .routes.errors import register_error_handlers
from .version import APP_NAME, VERSION

logger = logging.getLogger("tidalvoice.app")


def _configure_compression(app: Flask) -> None:
    app.config.setdefault('COMPRESS_REGISTER', True)
    app.config.setdefault('COMPRESS_ALGORITHM', os.getenv('TIDALVOICE_COMPRESS_ALGO', 'gzip'))
    app.config.setdefault('COMPRESS_MIMETYPES', ('application/json',))
    try:
        app.config['COMPRESS_MIN_SIZE'] = max(256, int(os.getenv('TIDALVOICE_COMPRESS_MIN_BYTES', '1024')))
    except ValueError:
        app.config['COMPRESS_MIN_SIZE'] = 1024
    Compress().init_app(app)


def create_app(context: Optional[AppContext] = None, *, start_background: bool = False) -> Flask:
    """Return a freshly constructed Flask application.

    Args:
        context: Prebuilt component context (built from defaults when omitted)
        start_background: Start the cache sweeper thread

    Returns:
        Flask: Configured application
    """
    if context is None:
        context = build_context()

    app = Flask(__name__)
    app.config["DEBUG"] = context.settings.debug
    app.json.sort_keys = False
    app.extensions["tidalvoice"] = context
    _configure_compression(app)

    app.register_blueprint(health_bp)
    app.register_blueprint(cache_bp)
    app.register_blueprint(playback_bp)
    register_error_handlers(app)

    if start_background:
        context.start()

    logger.info(
        "app.ready",
        extra={"app": APP_NAME, "version": VERSION, "environment": context.settings.environment},
    )
    return app


__all__ = ["create_app"]
