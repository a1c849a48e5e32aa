"""Signed-URL download route for the local filesystem backend.

S3 serves its own presigned URLs; this route only verifies URLs minted by
LocalStorageService with its HMAC signer.
"""

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

from boxstore.api.v1.dependencies import (
    ConditionalDep,
    FilenameDep,
    StorageDep,
    TenantDep,
)
from boxstore.api.v1.responses import to_response
from boxstore.infrastructure.external.storage import key_for
from boxstore.infrastructure.external.storage.local_storage import LocalStorageService

router = APIRouter()


@router.get("/{site_id}/{box_id}/{resource_id}/{filename}")
async def get_signed_file(
    tenant: TenantDep,
    filename: FilenameDep,
    conditional: ConditionalDep,
    storage: StorageDep,
    expires: int = Query(...),
    nonce: str = Query(...),
    signature: str = Query(...),
) -> Response:
    """Stream the object when the signature verifies and has not expired; 403 otherwise."""
    if not isinstance(storage, LocalStorageService):
        raise HTTPException(status_code=404, detail="Signed URLs are served by the storage provider")
    content = await storage.open_signed(
        key_for(tenant, filename), expires, nonce, signature, conditional
    )
    if content is None:
        raise HTTPException(status_code=403, detail="Invalid or expired signature")
    return await to_response(content)
