#!/usr/bin/env python3
"""
TidalVoice Runner - Starts the HTTP surface under Waitress (or Flask in debug)
"""

import os

from waitress import serve

from tidalvoice.app import create_app
from tidalvoice.config import load_settings
from tidalvoice.context import build_context
from tidalvoice.utils.logger import setup_logging
from tidalvoice.version import get_app_info

if __name__ == "__main__":
    settings = load_settings()
    logger = setup_logging(settings.log_level)

    # Determine port based on environment
    if settings.is_production():
        default_port = 5000
    else:
        default_port = 5001

    port = int(os.environ.get("PORT", default_port))
    host = os.environ.get("HOST", "0.0.0.0")

    context = build_context(settings)
    app = create_app(context, start_background=True)

    print(f"🚀 Starting {get_app_info()} on {host}:{port}")
    print(f"🌍 Environment: {settings.environment}")
    print(f"🔧 Debug mode: {settings.debug}")

    try:
        if settings.debug:
            app.run(host=host, port=port, debug=True, use_reloader=False)
        else:
            threads = int(os.environ.get("TIDALVOICE_WAITRESS_THREADS", "4"))
            backlog = int(os.environ.get("TIDALVOICE_WAITRESS_BACKLOG", "128"))
            print(f"🍽️ Using Waitress WSGI server (threads={threads}, backlog={backlog})")
            serve(app, host=host, port=port, threads=threads, backlog=backlog)
    finally:
        context.close()
        logger.info("runner.stopped")
