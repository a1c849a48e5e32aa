"""S3-compatible object storage (AWS S3, MinIO, etc.) with proxy streaming and presigned URLs."""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import AsyncIterator, Awaitable
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, TypeVar

import aioboto3
import aiohttp
import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    NoCredentialsError,
    ReadTimeoutError,
)

from boxstore.domain.value_objects import TenantPath
from boxstore.infrastructure.exceptions import (
    StorageConfigurationError,
    StorageException,
    StorageNotFoundError,
    StorageTimeoutError,
    StorageUpstreamError,
)
from boxstore.infrastructure.external.storage.keys import key_for, prefix_for
from boxstore.infrastructure.external.storage.models import (
    ConditionalHeaders,
    RedirectTo,
    RetrievalResult,
    StoredObject,
    StreamedContent,
)
from boxstore.infrastructure.external.storage.retrieval import (
    RetrievalConfig,
    RetrievalStrategy,
    cdn_url,
    public_url,
    select_strategy,
)
from boxstore.shared.telemetry.tracing import traced
from boxstore.shared.utils.datetime import to_http_date, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ADDRESSING_STYLES = frozenset({"auto", "path", "virtual"})

# Conditional request header -> get_object parameter (forwarded verbatim).
_CONDITIONAL_PARAMS = {
    "if_none_match": "IfNoneMatch",
    "if_match": "IfMatch",
    "if_modified_since": "IfModifiedSince",
    "if_unmodified_since": "IfUnmodifiedSince",
    "range": "Range",
}

# Per-URL random query parameter; covered by the signature.
PRESIGN_NONCE_PARAM = "x-boxstore-nonce"
PRESIGN_NONCE_BYTES = 12


def _add_presign_nonce(request: Any, **kwargs: Any) -> None:
    """before-sign hook: makes every presigned URL unique, even within one second."""
    separator = "&" if "?" in request.url else "?"
    nonce = secrets.token_urlsafe(PRESIGN_NONCE_BYTES)
    request.url = f"{request.url}{separator}{PRESIGN_NONCE_PARAM}={nonce}"


@dataclass(frozen=True)
class S3BackendConfig:
    """Read-only backend configuration, built once at startup.

    Raises StorageConfigurationError on construction when bucket or endpoint
    is missing, or when only one half of the access key pair is given
    (leave both unset to use ambient credentials).
    """

    bucket: str
    endpoint: str
    region: str = "us-east-1"
    access_key: str | None = None
    secret_key: str | None = None
    addressing_style: str = "auto"
    public_read: bool = True
    timeout_seconds: float = 30.0
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)

    def __post_init__(self) -> None:
        if not self.bucket:
            raise StorageConfigurationError("S3 bucket is required", "bucket")
        if not self.endpoint:
            raise StorageConfigurationError("S3 endpoint is required", "endpoint")
        if bool(self.access_key) != bool(self.secret_key):
            raise StorageConfigurationError(
                "S3 access key and secret key must be set together", "access_key"
            )
        if self.addressing_style not in _ADDRESSING_STYLES:
            raise StorageConfigurationError(
                f"Invalid addressing style '{self.addressing_style}'", "addressing_style"
            )
        if self.timeout_seconds <= 0:
            raise StorageConfigurationError("Timeout must be positive", "timeout_seconds")

    def botocore_config(self) -> Config:
        """Client config: bounded connect/read, no SDK retries, SigV4."""
        return Config(
            connect_timeout=self.timeout_seconds,
            read_timeout=self.timeout_seconds,
            retries={"total_max_attempts": 1, "mode": "standard"},
            s3={"addressing_style": self.addressing_style},
            signature_version="s3v4",
        )

    def client_kwargs(self) -> dict[str, Any]:
        return {
            "endpoint_url": self.endpoint,
            "region_name": self.region,
            "config": self.botocore_config(),
        }


def _http_status(error: ClientError) -> int | None:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def _conditional_params(conditional: ConditionalHeaders | None) -> dict[str, str]:
    if conditional is None:
        return {}
    return {
        param: getattr(conditional, attr)
        for attr, param in _CONDITIONAL_PARAMS.items()
        if getattr(conditional, attr)
    }


class S3StorageService:
    """S3-compatible storage scoped by tenant path.

    Network calls go through one aioboto3 client handle owned by this
    instance (entered in connect(), exited in aclose()). Presigned URLs are
    produced by a synchronous boto3 client: signing is local and never
    touches the network. Compatible with AWS S3, MinIO, DigitalOcean Spaces.
    """

    CHUNK_SIZE = 64 * 1024  # 64KB

    _NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
    _CREDENTIAL_ERROR_CODES = frozenset(
        {
            "InvalidAccessKeyId",
            "SignatureDoesNotMatch",
            "InvalidToken",
            "ExpiredToken",
            "InvalidClientTokenId",
        }
    )

    def __init__(
        self,
        config: S3BackendConfig,
        *,
        client: Any | None = None,
        session: aioboto3.Session | None = None,
    ) -> None:
        """Initialize backend (no I/O; call connect() before use).

        Args:
            config: Backend configuration.
            client: Pre-built async S3 client (tests); skips session client creation.
            session: Optional aioboto3 session; built from config when omitted.
        """
        self.config = config
        self._timeout = config.timeout_seconds
        self._session = session or aioboto3.Session(
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region,
        )
        self._client = client
        self._presigner: Any | None = None
        self._stack: AsyncExitStack | None = None

    def _build_presigner(self) -> Any:
        """Sync boto3 client used only for generate_presigned_url (resolves credentials once)."""
        presigner = boto3.client(
            "s3",
            aws_access_key_id=self.config.access_key,
            aws_secret_access_key=self.config.secret_key,
            **self.config.client_kwargs(),
        )
        presigner.meta.events.register("before-sign.s3.GetObject", _add_presign_nonce)
        return presigner

    async def connect(self) -> None:
        """Open the async client handle and build the presigner."""
        if self._client is None:
            self._stack = AsyncExitStack()
            self._client = await self._stack.enter_async_context(
                self._session.client("s3", **self.config.client_kwargs())
            )
        if self._presigner is None:
            self._presigner = await asyncio.to_thread(self._build_presigner)
        logger.info(
            "S3 storage connected: bucket=%s endpoint=%s",
            self.config.bucket,
            self.config.endpoint,
        )

    async def aclose(self) -> None:
        """Close the async client handle and release its connection pool."""
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None
            self._client = None
            logger.info("S3 storage client closed")

    def _require_client(self) -> Any:
        if self._client is None:
            raise RuntimeError("S3StorageService.connect() must be awaited before use")
        return self._client

    def _translate_client_error(
        self, error: ClientError, key: str, operation: str
    ) -> StorageException:
        code = error.response.get("Error", {}).get("Code", "")
        status = _http_status(error)
        if code == "NoSuchBucket":
            return StorageConfigurationError(
                f"Bucket does not exist: {self.config.bucket}", "bucket"
            )
        if code in self._CREDENTIAL_ERROR_CODES:
            if operation == "put":
                return StorageConfigurationError(
                    f"S3 rejected the configured credentials ({code})", "access_key"
                )
            return StorageUpstreamError(key, operation, code, status_code=status)
        if code in self._NOT_FOUND_CODES or status == 404:
            return StorageNotFoundError(key)
        return StorageUpstreamError(key, operation, code or str(error), status_code=status)

    def _translate_transport_error(
        self, error: BaseException, key: str, operation: str
    ) -> StorageException:
        if isinstance(error, (asyncio.TimeoutError, ConnectTimeoutError, ReadTimeoutError)):
            return StorageTimeoutError(key, operation, self._timeout)
        if isinstance(error, NoCredentialsError):
            return StorageConfigurationError("No S3 credentials available", "access_key")
        return StorageUpstreamError(key, operation, str(error))

    async def _call(self, operation: str, key: str, awaitable: Awaitable[T]) -> T:
        """Await one upstream call under the timeout; map failures to storage errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except ClientError as e:
            raise self._translate_client_error(e, key, operation) from e
        except (asyncio.TimeoutError, BotoCoreError) as e:
            raise self._translate_transport_error(e, key, operation) from e

    @traced("storage.s3.list")
    async def list(self, tenant: TenantPath) -> list[str]:
        """Return filenames directly under the tenant prefix (no recursion)."""
        client = self._require_client()
        prefix = prefix_for(tenant)
        paginator = client.get_paginator("list_objects_v2")

        async def _collect() -> list[str]:
            names: list[str] = []
            async for page in paginator.paginate(
                Bucket=self.config.bucket,
                Prefix=prefix,
                Delimiter="/",
            ):
                for obj in page.get("Contents") or []:
                    name = obj["Key"][len(prefix):]
                    if name and "/" not in name:
                        names.append(name)
            return names

        return await self._call("list", prefix, _collect())

    @traced("storage.s3.put")
    async def put(
        self,
        tenant: TenantPath,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> StoredObject:
        """Write the object in a single PutObject (all or nothing)."""
        client = self._require_client()
        key = key_for(tenant, filename)
        params: dict[str, Any] = {
            "Bucket": self.config.bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
            "ContentLength": len(data),
        }
        if self.config.public_read:
            params["ACL"] = "public-read"
        response = await self._call("put", key, client.put_object(**params))
        return StoredObject(
            key=key,
            filename=filename,
            size=len(data),
            mime_type=content_type,
            etag=response.get("ETag"),
            last_modified=to_http_date(utc_now()),
        )

    @traced("storage.s3.exists")
    async def exists(self, tenant: TenantPath, filename: str) -> bool:
        """HeadObject request. Not found is False; everything else propagates."""
        client = self._require_client()
        key = key_for(tenant, filename)
        try:
            await self._call(
                "exists",
                key,
                client.head_object(Bucket=self.config.bucket, Key=key),
            )
        except StorageNotFoundError:
            return False
        return True

    @traced("storage.s3.get")
    async def get(
        self,
        tenant: TenantPath,
        filename: str,
        conditional: ConditionalHeaders | None = None,
    ) -> RetrievalResult:
        """Stream or redirect, per the configured retrieval strategy."""
        key = key_for(tenant, filename)
        retrieval = self.config.retrieval
        strategy = select_strategy(retrieval)
        if strategy is RetrievalStrategy.PROXY:
            return await self._stream(key, conditional)
        if strategy is RetrievalStrategy.CDN:
            return RedirectTo(cdn_url(retrieval.cdn_base_url, key))
        if strategy is RetrievalStrategy.SIGNED_URL:
            return RedirectTo(self.presign(key))
        return RedirectTo(public_url(self.config.endpoint, key))

    def presign(self, key: str, ttl_seconds: int | None = None) -> str:
        """Return a presigned GET URL. Local SigV4 computation, no network I/O."""
        if self._presigner is None:
            raise RuntimeError("S3StorageService.connect() must be awaited before use")
        return self._presigner.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.config.bucket, "Key": key},
            ExpiresIn=ttl_seconds or self.config.retrieval.signed_url_ttl,
        )

    async def _stream(
        self, key: str, conditional: ConditionalHeaders | None
    ) -> StreamedContent:
        client = self._require_client()
        params = {"Bucket": self.config.bucket, "Key": key}
        params.update(_conditional_params(conditional))
        try:
            response = await asyncio.wait_for(
                client.get_object(**params), timeout=self._timeout
            )
        except ClientError as e:
            if _http_status(e) == 304:
                return self._not_modified(e)
            raise self._translate_client_error(e, key, "get") from e
        except (asyncio.TimeoutError, BotoCoreError) as e:
            raise self._translate_transport_error(e, key, "get") from e

        raw_body = response["Body"]
        body_stack = AsyncExitStack()
        await body_stack.enter_async_context(raw_body)
        last_modified = response.get("LastModified")
        return StreamedContent(
            status_code=response.get("ResponseMetadata", {}).get("HTTPStatusCode", 200),
            length=response.get("ContentLength"),
            mime_type=response.get("ContentType"),
            etag=response.get("ETag"),
            last_modified=to_http_date(last_modified) if last_modified else None,
            body=self._iter_body(raw_body, key),
            content_range=response.get("ContentRange"),
            accept_ranges=response.get("AcceptRanges", "bytes"),
            release=body_stack.aclose,
        )

    @staticmethod
    def _not_modified(error: ClientError) -> StreamedContent:
        headers = error.response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
        return StreamedContent(
            status_code=304,
            length=None,
            mime_type=None,
            etag=headers.get("etag"),
            last_modified=headers.get("last-modified"),
            body=None,
        )

    async def _iter_body(self, body: Any, key: str) -> AsyncIterator[bytes]:
        """Yield the upstream body in chunks; StreamedContent.release closes it."""
        while True:
            try:
                chunk = await asyncio.wait_for(
                    body.read(self.CHUNK_SIZE), timeout=self._timeout
                )
            except asyncio.TimeoutError as e:
                raise StorageTimeoutError(key, "get", self._timeout) from e
            except (BotoCoreError, aiohttp.ClientError) as e:
                raise StorageUpstreamError(key, "get", str(e)) from e
            if not chunk:
                break
            yield chunk

    @traced("storage.s3.delete")
    async def delete(self, tenant: TenantPath, filename: str) -> None:
        """DeleteObject without a pre-check; S3 does not fail on missing keys."""
        client = self._require_client()
        key = key_for(tenant, filename)
        await self._call(
            "delete",
            key,
            client.delete_object(Bucket=self.config.bucket, Key=key),
        )
        logger.debug("Deleted %s", key)
