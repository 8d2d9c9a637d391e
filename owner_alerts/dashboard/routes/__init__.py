"""Dashboard routes."""

from .api import api_bp

__all__ = ["api_bp"]
