"""Dashboard read API."""

from netpulse.serving.api.main import create_app

__all__ = ["create_app"]
