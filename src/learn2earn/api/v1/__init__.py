"""Version 1 API endpoints."""

from .endpoints import submissions_router, system_router

__all__ = ["submissions_router", "system_router"]
