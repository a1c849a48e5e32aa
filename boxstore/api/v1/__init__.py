"""API v1: tenant-scoped file routes, signed-URL route, health."""

from boxstore.api.v1.router import api_router

__all__ = ["api_router"]
