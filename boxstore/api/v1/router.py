"""API v1 router aggregation.

The signed router is included before the file routes: both match five path
segments and /signed/... must win.
"""

from fastapi import APIRouter

from boxstore.api.v1.endpoints import files, health, signed

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(signed.router, prefix="/signed", tags=["signed"])
api_router.include_router(files.router, tags=["files"])
