"""JSON API for reading and acknowledging owner alerts."""

from .app import create_app

__all__ = ["create_app"]
