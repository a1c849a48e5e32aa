"""File API: thin routes over the tenant-scoped storage backend.

Every route is addressed by /{site_id}/{box_id}/{resource_id}/file/; the
three segments form the tenant key prefix.
"""

import logging

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import Response

from boxstore.api.v1.dependencies import (
    ConditionalDep,
    FilenameDep,
    IngestorDep,
    StorageDep,
    TenantDep,
)
from boxstore.api.v1.responses import to_response
from boxstore.core.limiter import limit_upload, limit_writes
from boxstore.infrastructure.external.storage.models import UploadDescriptor
from boxstore.schemas.file import FileUploadResponse

logger = logging.getLogger(__name__)

router = APIRouter()

FILES_PATH = "/{site_id}/{box_id}/{resource_id}/file/"


@router.get(FILES_PATH, response_model=list[str])
async def list_files(tenant: TenantDep, storage: StorageDep) -> list[str]:
    """Filenames stored directly under the tenant path."""
    return await storage.list(tenant)


@router.post(FILES_PATH, response_model=FileUploadResponse, status_code=201)
@limit_upload
async def upload_file(
    request: Request,
    tenant: TenantDep,
    ingestor: IngestorDep,
    file: UploadFile = File(...),
) -> FileUploadResponse:
    """Store one upload under a generated name. 413 over the size ceiling."""
    try:
        upload = UploadDescriptor(
            stream=file,
            mime_type=file.content_type or "application/octet-stream",
            size=file.size,
        )
        stored = await ingestor.ingest(tenant, upload)
    finally:
        await file.close()
    return FileUploadResponse(filename=stored.filename)


@router.get(FILES_PATH + "{filename}")
async def get_file(
    tenant: TenantDep,
    filename: FilenameDep,
    conditional: ConditionalDep,
    storage: StorageDep,
) -> Response:
    """Stream the object (200/206/304) or redirect (302) per the retrieval mode."""
    result = await storage.get(tenant, filename, conditional)
    return await to_response(result)


@router.head(FILES_PATH + "{filename}")
async def head_file(tenant: TenantDep, filename: FilenameDep, storage: StorageDep) -> Response:
    """200 if the object exists, 404 otherwise."""
    exists = await storage.exists(tenant, filename)
    return Response(status_code=200 if exists else 404)


@router.delete(FILES_PATH + "{filename}", status_code=204)
@limit_writes
async def delete_file(
    request: Request,
    tenant: TenantDep,
    filename: FilenameDep,
    storage: StorageDep,
) -> Response:
    """Remove the object. Deleting a missing object also returns 204."""
    await storage.delete(tenant, filename)
    logger.info("Deleted %s/%s", "/".join(tenant.segments()), filename)
    return Response(status_code=204)
