"""Storage backend protocol (DIP). Implementations: S3StorageService, LocalStorageService."""

from typing import Protocol

from boxstore.domain.value_objects import TenantPath
from boxstore.infrastructure.external.storage.models import (
    ConditionalHeaders,
    RetrievalResult,
    StoredObject,
)


class StorageProtocol(Protocol):
    """Protocol for tenant-scoped object storage backends (S3-compatible, local).

    Every method is scoped to a tenant path; keys are derived, never chosen
    by callers.
    """

    async def connect(self) -> None:
        """Open the backend's client handle (once, at startup)."""
        ...

    async def aclose(self) -> None:
        """Release the client handle and its network resources."""
        ...

    async def list(self, tenant: TenantPath) -> list[str]:
        """Return immediate child filenames under the tenant prefix ([] if none)."""
        ...

    async def put(
        self,
        tenant: TenantPath,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> StoredObject:
        """Write one complete object atomically."""
        ...

    async def exists(self, tenant: TenantPath, filename: str) -> bool:
        """Metadata-only lookup. Not found is False; other failures raise."""
        ...

    async def get(
        self,
        tenant: TenantPath,
        filename: str,
        conditional: ConditionalHeaders | None = None,
    ) -> RetrievalResult:
        """Stream the object or return a redirect, per the retrieval strategy."""
        ...

    async def delete(self, tenant: TenantPath, filename: str) -> None:
        """Delete unconditionally; deleting a missing object is not an error."""
        ...
