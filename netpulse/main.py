"""
NetPulse Analytics API entry point.

    uvicorn netpulse.main:app
"""

import uvicorn

from netpulse.config import get_settings
from netpulse.config.logging import configure_logging
from netpulse.serving.api import create_app

settings = get_settings()
configure_logging(settings=settings)

app = create_app(settings)


def run() -> None:
    """Serve the API with uvicorn."""
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
