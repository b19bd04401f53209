#!/usr/bin/env python
"""Application entry point."""
import logging

import uvicorn

from roomcast.app_factory import create_app
from roomcast.settings import settings

logging.basicConfig(level=settings.LOG_LEVEL)

app = create_app()

if __name__ == "__main__":
    logging.info("Serving realtime socket on ws://%s:%s/ws", settings.APP_HOST, settings.APP_PORT)
    try:
        uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT)
    except OSError as exc:
        logging.error("Server failed to start: %s", exc)
        raise
