"""Health check endpoints. Used for liveness and readiness checks."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from boxstore.core.config import get_settings
from boxstore.schemas.health import HealthResponse, ReadinessResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Return simple ok status for liveness."""
    return HealthResponse()


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Storage backend not initialized"}},
)
def readiness_check(request: Request) -> ReadinessResponse | JSONResponse:
    """Return 200 once the storage backend is connected; 503 before startup completes."""
    backend = get_settings().storage_backend
    if getattr(request.app.state, "storage", None) is None:
        return JSONResponse(status_code=503, content={"status": "not_ready", "storage_backend": backend})
    return ReadinessResponse(storage_backend=backend)
