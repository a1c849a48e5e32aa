"""Application lifespan: startup and shutdown.

Single place for startup/shutdown wiring: logging, storage backend
(built once, owned by app.state, closed on shutdown) and telemetry flush.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from boxstore.core.config import get_settings
from boxstore.infrastructure.external.storage import StorageFactory
from boxstore.shared.telemetry.logging import setup_logging
from boxstore.shared.telemetry.telemetry import get_telemetry, set_telemetry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup: storage backend (configuration errors abort startup).
    A backend already placed on app.state (tests) is used as-is and not closed.
    Shutdown: storage client close, telemetry shutdown.
    """
    settings = get_settings()
    setup_logging()

    # ---- Startup ----
    owns_storage = getattr(app.state, "storage", None) is None
    if owns_storage:
        storage = StorageFactory.create_storage_service(settings)
        await storage.connect()
        app.state.storage = storage
        logger.info("Storage backend '%s' connected", settings.storage_backend)

    try:
        yield
    finally:
        # ---- Shutdown ----
        if owns_storage:
            await app.state.storage.aclose()
            app.state.storage = None
            logger.info("Storage backend closed")

        telemetry_instance = get_telemetry()
        if telemetry_instance is not None:
            telemetry_instance.shutdown()
            set_telemetry(None)
