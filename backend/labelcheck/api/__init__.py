"""API routes."""

from .routes import router, get_pipeline

__all__ = ["router", "get_pipeline"]
