"""
Server entry point.

Usage:
    python -m payflow
    payflow-server

Outside production this binds uvicorn on HOST:PORT.  In the production
profile the hosting platform owns the listener and serves the ASGI app
``payflow.main:app`` itself, so nothing is bound here.
"""

import logging
import sys
from typing import Optional

import uvicorn

from payflow.config import Settings, get_settings
from payflow.logging_config import configure_logging
from payflow.main import create_app

logger = logging.getLogger(__name__)


def serve(settings: Optional[Settings] = None) -> bool:
    """Run the server until shutdown. Returns False when binding was skipped."""
    settings = settings or get_settings()
    if settings.is_production:
        logger.info(
            "Production profile: listener is managed by the host; serve payflow.main:app with an ASGI server"
        )
        return False

    logger.info("%s server starting on http://localhost:%d", settings.project_name, settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        server_header=False,
    )
    return True


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    try:
        serve(settings)
    except Exception:
        logger.exception("Failed to start %s server", settings.project_name)
        sys.exit(1)


if __name__ == "__main__":
    main()
