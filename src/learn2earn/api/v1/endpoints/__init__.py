"""API endpoint modules for version 1."""

from .submissions import router as submissions_router
from .system import router as system_router

__all__ = ["submissions_router", "system_router"]
