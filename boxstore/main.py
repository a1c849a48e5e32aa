"""FastAPI application entry point.

Wiring only: lifespan, exception handlers, middleware, routers.
No storage logic here. See boxstore.core.lifespan and boxstore.core.exception_handlers.

Settings are loaded inside create_app() so that tests can set env (and
clear the get_settings cache) before calling create_app().
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from boxstore.api.v1 import api_router
from boxstore.core.config import get_settings
from boxstore.core.exception_handlers import register_exception_handlers
from boxstore.core.lifespan import create_lifespan
from boxstore.core.limiter import limiter
from boxstore.middleware import (
    RequestIDMiddleware,
    RequestSizeLimitMiddleware,
    TimeoutMiddleware,
)
from boxstore.shared.telemetry.telemetry import configure_app_telemetry

# Room for multipart boundaries and part headers around the file itself.
MULTIPART_OVERHEAD_BYTES = 16 * 1024


def create_app() -> FastAPI:
    """Build and return the FastAPI application. Settings are resolved here (deferred from import)."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=create_lifespan,
    )

    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_exception_handlers(app)

    # Middleware: last added = outermost. Order: timeout -> size limit -> request ID -> CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.allowed_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", "Last-Modified", "Content-Range", settings.request_id_header],
    )
    app.add_middleware(RequestIDMiddleware, header_name=settings.request_id_header)
    app.add_middleware(
        RequestSizeLimitMiddleware,
        max_bytes=settings.max_upload_size + MULTIPART_OVERHEAD_BYTES,
    )
    app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)

    configure_app_telemetry(app, settings)

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
