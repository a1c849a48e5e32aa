"""Storage: S3-compatible and local filesystem backends.

Factory creates the backend from boxstore.core.config. Both implement
StorageProtocol (list, put, exists, get, delete, plus connect/aclose).
Uploads go through UploadIngestor, which enforces the size ceiling and
generates the stored filename.
"""

from boxstore.infrastructure.external.storage.factory import StorageFactory
from boxstore.infrastructure.external.storage.ingest import UploadIngestor, resolve_upload
from boxstore.infrastructure.external.storage.keys import key_for, prefix_for
from boxstore.infrastructure.external.storage.models import (
    ConditionalHeaders,
    RedirectTo,
    RetrievalResult,
    StoredObject,
    StreamedContent,
    UploadDescriptor,
)
from boxstore.infrastructure.external.storage.protocol import StorageProtocol
from boxstore.infrastructure.external.storage.retrieval import (
    RetrievalConfig,
    RetrievalStrategy,
    select_strategy,
)

__all__ = [
    "ConditionalHeaders",
    "RedirectTo",
    "RetrievalConfig",
    "RetrievalResult",
    "RetrievalStrategy",
    "StorageFactory",
    "StorageProtocol",
    "StoredObject",
    "StreamedContent",
    "UploadDescriptor",
    "UploadIngestor",
    "key_for",
    "prefix_for",
    "resolve_upload",
    "select_strategy",
]
