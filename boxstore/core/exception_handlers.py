"""Centralized exception handlers for the FastAPI app.

Register with register_exception_handlers(app). Maps domain, storage and
framework exceptions to JSON error responses.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from boxstore.core.config import get_settings
from boxstore.domain.exceptions import BoxstoreException
from boxstore.infrastructure.exceptions import StorageUpstreamError
from boxstore.shared.context import get_request_id

logger = logging.getLogger(__name__)

# Map error_code to HTTP status when applicable
_ERROR_CODE_STATUS: dict[str, int] = {
    "VALIDATION_ERROR": 400,
    "STORAGE_NOT_FOUND": 404,
    "PAYLOAD_TOO_LARGE": 413,
    "STORAGE_UPSTREAM_ERROR": 502,
    "STORAGE_TIMEOUT": 504,
    "STORAGE_CONFIGURATION_ERROR": 500,
}


def status_for(exc: BoxstoreException) -> int:
    """HTTP status for an exception; upstream client errors (412, 416) pass through."""
    if isinstance(exc, StorageUpstreamError) and exc.status_code is not None:
        if 400 <= exc.status_code < 500:
            return exc.status_code
    return _ERROR_CODE_STATUS.get(exc.error_code, 400)


def _boxstore_exception_handler(
    request: Request, exc: BoxstoreException
) -> JSONResponse:
    """Return JSON from BoxstoreException.to_dict() with appropriate status code."""
    status = status_for(exc)
    if status >= 500:
        logger.warning("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.details)
    return JSONResponse(status_code=status, content=exc.to_dict())


def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with validation error details."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": exc.errors(),
        },
    )


def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Return JSON for Starlette HTTP exceptions (status + detail)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTP_ERROR", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500; include detail only when debug is True."""
    logger.exception("Unhandled exception (request %s): %s", get_request_id(), exc)
    detail: Any = str(exc) if get_settings().debug else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Call once after creating the app. Handlers: BoxstoreException (and
    subclasses), RequestValidationError, StarletteHTTPException, generic Exception.
    """
    app.add_exception_handler(BoxstoreException, _boxstore_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
