"""Storage service factory: creates S3 or local backend from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from boxstore.infrastructure.exceptions import StorageConfigurationError
from boxstore.infrastructure.external.storage.protocol import StorageProtocol
from boxstore.infrastructure.external.storage.retrieval import RetrievalConfig

if TYPE_CHECKING:
    from boxstore.core.config import Settings


class StorageFactory:
    """Factory for storage service instances based on configuration."""

    @staticmethod
    def retrieval_config(settings: "Settings") -> RetrievalConfig:
        return RetrievalConfig(
            proxy=settings.storage_proxy,
            cdn_base_url=settings.storage_cdn_url,
            signed_url=settings.storage_signed_url,
            signed_url_ttl=settings.storage_signed_url_ttl,
        )

    @staticmethod
    def create_storage_service(settings: "Settings | None" = None) -> StorageProtocol:
        """Create storage service from settings.

        Args:
            settings: Application settings; if None, uses get_settings().

        Returns:
            S3StorageService or LocalStorageService (not yet connected).

        Raises:
            StorageConfigurationError: Unknown backend or missing required config.
        """
        from boxstore.core.config import get_settings

        s = settings or get_settings()
        backend = s.storage_backend.lower()
        retrieval = StorageFactory.retrieval_config(s)

        if backend == "s3":
            from boxstore.infrastructure.external.storage.s3_storage import (
                S3BackendConfig,
                S3StorageService,
            )

            config = S3BackendConfig(
                bucket=s.s3_bucket or "",
                endpoint=s.s3_endpoint_url or "",
                region=s.s3_region,
                access_key=s.s3_access_key,
                secret_key=s.s3_secret_key.get_secret_value() if s.s3_secret_key else None,
                addressing_style=s.s3_addressing_style,
                public_read=s.s3_public_read,
                timeout_seconds=s.storage_timeout_seconds,
                retrieval=retrieval,
            )
            return S3StorageService(config)
        if backend == "local":
            from boxstore.infrastructure.external.storage.local_storage import (
                LocalStorageService,
            )
            from boxstore.infrastructure.external.storage.signing import UrlSigner

            secret = (
                s.storage_signing_secret.get_secret_value()
                if s.storage_signing_secret
                else ""
            )
            return LocalStorageService(
                storage_root=s.storage_root,
                base_url=s.storage_base_url,
                retrieval=retrieval,
                signer=UrlSigner(secret) if secret else None,
            )
        raise StorageConfigurationError(
            f"Unknown storage backend: {backend}. Supported: 'local', 's3'",
            "storage_backend",
        )
