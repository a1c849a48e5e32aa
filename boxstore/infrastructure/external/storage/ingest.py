"""Upload ingestion: size ceiling, generated filename, one atomic write."""

from __future__ import annotations

import logging
import mimetypes

from boxstore.core.config import DEFAULT_MAX_UPLOAD_SIZE
from boxstore.domain.value_objects import TenantPath
from boxstore.infrastructure.exceptions import StoragePayloadTooLargeError
from boxstore.infrastructure.external.storage.models import (
    AsyncReadable,
    StoredObject,
    UploadDescriptor,
)
from boxstore.infrastructure.external.storage.protocol import StorageProtocol
from boxstore.shared.telemetry.tracing import add_span_attributes, traced
from boxstore.shared.utils.generators import generate_cuid

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "bin"
CHUNK_SIZE = 64 * 1024  # 64KB


def extension_for(mime_type: str) -> str:
    """Filesystem-safe extension for a MIME type (without dot); 'bin' if unknown."""
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    ext = mimetypes.guess_extension(base) if base else None
    if not ext:
        return DEFAULT_EXTENSION
    ext = ext.lstrip(".").lower()
    return ext if ext.isalnum() else DEFAULT_EXTENSION


def resolve_upload(declared_mime_type: str) -> tuple[str, str]:
    """Return (extension, generated filename) for an upload. Pure, no I/O."""
    ext = extension_for(declared_mime_type)
    return ext, f"{generate_cuid()}.{ext}"


async def read_limited(stream: AsyncReadable, max_bytes: int) -> bytes:
    """Read stream in chunks, failing as soon as more than max_bytes are seen."""
    buf = bytearray()
    while chunk := await stream.read(CHUNK_SIZE):
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise StoragePayloadTooLargeError(max_bytes, len(buf))
    return bytes(buf)


class UploadIngestor:
    """Single responsibility: turn an incoming upload into one stored object."""

    def __init__(
        self,
        storage: StorageProtocol,
        max_size: int = DEFAULT_MAX_UPLOAD_SIZE,
    ) -> None:
        self.storage = storage
        self.max_size = max_size

    @traced("storage.ingest_upload")
    async def ingest_upload(
        self,
        tenant: TenantPath,
        stream: AsyncReadable,
        declared_mime_type: str,
        declared_size: int | None = None,
    ) -> StoredObject:
        """Validate size, generate filename, write under the tenant key.

        Raises:
            StoragePayloadTooLargeError: Declared or observed size over the ceiling.
                Nothing is written.
            StorageUpstreamError: Backend write failed.
            StorageConfigurationError: Backend rejected the credentials.
        """
        if declared_size is not None and declared_size > self.max_size:
            raise StoragePayloadTooLargeError(self.max_size, declared_size)
        data = await read_limited(stream, self.max_size)
        ext, filename = resolve_upload(declared_mime_type)
        add_span_attributes(**{"storage.extension": ext, "storage.size": len(data)})
        stored = await self.storage.put(tenant, filename, data, declared_mime_type)
        logger.info("Stored %s (%d bytes, %s)", stored.key, stored.size, stored.mime_type)
        return stored

    async def ingest(self, tenant: TenantPath, upload: UploadDescriptor) -> StoredObject:
        """ingest_upload from an UploadDescriptor."""
        return await self.ingest_upload(tenant, upload.stream, upload.mime_type, upload.size)
