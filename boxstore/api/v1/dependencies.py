"""Presentation-layer dependency injection (composition root).

Routes depend on these instead of reaching into app.state or building
storage objects themselves. The storage backend is created once by the
lifespan and shared by every request.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from boxstore.core.config import get_settings
from boxstore.domain.value_objects import TenantPath, validate_filename
from boxstore.infrastructure.exceptions import StorageConfigurationError
from boxstore.infrastructure.external.storage import (
    ConditionalHeaders,
    StorageProtocol,
    UploadIngestor,
)


def get_storage(request: Request) -> StorageProtocol:
    """Return the backend owned by the application.

    Raises:
        StorageConfigurationError: Startup did not install a backend.
    """
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise StorageConfigurationError("Storage backend is not initialized", "storage_backend")
    return storage


def get_ingestor(
    storage: Annotated[StorageProtocol, Depends(get_storage)],
) -> UploadIngestor:
    return UploadIngestor(storage, max_size=get_settings().max_upload_size)


def get_tenant_path(site_id: str, box_id: str, resource_id: str) -> TenantPath:
    """Build the tenant path from the route; invalid segments raise ValidationException (400)."""
    return TenantPath(site_id=site_id, box_id=box_id, resource_id=resource_id)


def get_filename(filename: str) -> str:
    return validate_filename(filename)


def get_conditional_headers(request: Request) -> ConditionalHeaders:
    return ConditionalHeaders.from_headers(request.headers)


StorageDep = Annotated[StorageProtocol, Depends(get_storage)]
IngestorDep = Annotated[UploadIngestor, Depends(get_ingestor)]
TenantDep = Annotated[TenantPath, Depends(get_tenant_path)]
FilenameDep = Annotated[str, Depends(get_filename)]
ConditionalDep = Annotated[ConditionalHeaders, Depends(get_conditional_headers)]
