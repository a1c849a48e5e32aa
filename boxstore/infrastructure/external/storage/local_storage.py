"""Local filesystem storage with path validation, atomic writes and HTTP preconditions."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from boxstore.domain.exceptions import ValidationException
from boxstore.domain.value_objects import TenantPath
from boxstore.infrastructure.exceptions import (
    StorageConfigurationError,
    StorageNotFoundError,
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
from boxstore.infrastructure.external.storage.signing import UrlSigner
from boxstore.shared.telemetry.tracing import traced
from boxstore.shared.utils.datetime import (
    from_timestamp_utc,
    parse_http_date,
    to_http_date,
    utc_now,
)

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"
TEMP_PREFIX = ".tmp_"
SIGNED_PATH = "/api/v1/signed"


def check_object_name(name: str) -> None:
    """Reject names that collide with sidecar or temp files.

    Raises:
        ValidationException: name is a reserved internal file name.
    """
    if name.endswith(META_SUFFIX) or name.startswith(TEMP_PREFIX):
        raise ValidationException(f"Reserved file name: {name}", "filename")


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range resolved against an object size."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


def _etag_matches(header: str, etag: str, weak: bool) -> bool:
    """Match an If-Match / If-None-Match list against etag."""
    if header.strip() == "*":
        return True

    def normalize(tag: str) -> str:
        tag = tag.strip()
        return tag[2:] if weak and tag.startswith("W/") else tag

    return any(normalize(t) == normalize(etag) for t in header.split(","))


def parse_range(header: str, size: int) -> ByteRange | None:
    """Resolve a single 'bytes=' range; None when the header is not usable.

    Raises:
        ValueError: Range is syntactically valid but unsatisfiable.
    """
    unit, _, spec = header.partition("=")
    if unit.strip().lower() != "bytes" or "," in spec:
        return None
    first, sep, last = (part.strip() for part in spec.partition("-"))
    if not sep or (first and not first.isdigit()) or (last and not last.isdigit()):
        return None
    if not first:
        if not last:
            return None
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise ValueError("unsatisfiable suffix range")
        return ByteRange(max(size - suffix, 0), size - 1)
    start = int(first)
    end = int(last) if last else size - 1
    if last and end < start:
        return None
    if start >= size:
        raise ValueError("unsatisfiable range")
    return ByteRange(start, min(end, size - 1))


def evaluate_preconditions(
    conditional: ConditionalHeaders,
    etag: str,
    last_modified_ts: float,
) -> int | None:
    """Evaluate preconditions in RFC 9110 order for a GET.

    Returns 412 or 304 when the request short-circuits, None to proceed.
    """
    last_modified = int(last_modified_ts)
    if conditional.if_match:
        if not _etag_matches(conditional.if_match, etag, weak=False):
            return 412
    elif conditional.if_unmodified_since:
        since = parse_http_date(conditional.if_unmodified_since)
        if since is not None and last_modified > since.timestamp():
            return 412
    if conditional.if_none_match:
        if _etag_matches(conditional.if_none_match, etag, weak=True):
            return 304
    elif conditional.if_modified_since:
        since = parse_http_date(conditional.if_modified_since)
        if since is not None and last_modified <= since.timestamp():
            return 304
    return None


class LocalStorageService:
    """Local filesystem storage with the same contract as the S3 backend.

    Paths are validated against storage_root. Writes use temp file + rename.
    Metadata (content type, ETag) is stored in a .meta.json sidecar. Signed
    URLs are stateless HMAC URLs served by the /signed route.
    """

    CHUNK_SIZE = 64 * 1024  # 64KB

    def __init__(
        self,
        storage_root: str,
        base_url: str | None = None,
        retrieval: RetrievalConfig | None = None,
        signer: UrlSigner | None = None,
    ) -> None:
        """Initialize local storage.

        Args:
            storage_root: Base directory for all objects.
            base_url: Public base URL of the service (e.g. https://files.example.com).
            retrieval: Retrieval strategy settings.
            signer: URL signer; required when signed-URL mode applies.
        """
        self.storage_root = Path(storage_root).resolve()
        self.base_url = base_url.rstrip("/") if base_url else ""
        self.retrieval = retrieval or RetrievalConfig()
        self.signer = signer
        if select_strategy(self.retrieval) is RetrievalStrategy.SIGNED_URL and signer is None:
            raise StorageConfigurationError(
                "A signing secret is required for signed URLs", "storage_signing_secret"
            )

    async def connect(self) -> None:
        await aiofiles.os.makedirs(self.storage_root, mode=0o750, exist_ok=True)
        logger.info("Local storage ready at %s", self.storage_root)

    async def aclose(self) -> None:
        return None

    def _get_full_path(self, key: str) -> Path:
        """Resolve and validate path under storage_root."""
        full_path = (self.storage_root / key).resolve()
        try:
            full_path.relative_to(self.storage_root)
        except ValueError as e:
            raise StorageConfigurationError(f"Key escapes storage root: {key}", "key") from e
        return full_path

    def _object_key(self, tenant: TenantPath, filename: str) -> str:
        check_object_name(filename)
        return key_for(tenant, filename)

    @staticmethod
    def _meta_path(file_path: Path) -> Path:
        return file_path.with_name(file_path.name + META_SUFFIX)

    async def _read_metadata(self, file_path: Path) -> dict[str, Any]:
        """Read JSON sidecar or empty dict."""
        meta_path = self._meta_path(file_path)
        if not await aiofiles.os.path.exists(meta_path):
            return {}
        async with aiofiles.open(meta_path, "r") as f:
            result = json.loads(await f.read())
        return result if isinstance(result, dict) else {}

    @traced("storage.local.list")
    async def list(self, tenant: TenantPath) -> list[str]:
        directory = self._get_full_path(prefix_for(tenant))
        if not await aiofiles.os.path.isdir(directory):
            return []
        names = []
        for entry in await aiofiles.os.scandir(directory):
            if (
                entry.is_file()
                and not entry.name.endswith(META_SUFFIX)
                and not entry.name.startswith(TEMP_PREFIX)
            ):
                names.append(entry.name)
        return names

    @traced("storage.local.put")
    async def put(
        self,
        tenant: TenantPath,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> StoredObject:
        """Write via temp file + rename so a partial object is never visible."""
        key = self._object_key(tenant, filename)
        target = self._get_full_path(key)
        try:
            await aiofiles.os.makedirs(target.parent, mode=0o750, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=target.parent, prefix=TEMP_PREFIX, suffix=target.suffix
            )
            os.close(fd)
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    await f.write(data)
                etag = f'"{hashlib.md5(data).hexdigest()}"'
                async with aiofiles.open(self._meta_path(target), "w") as f:
                    await f.write(
                        json.dumps(
                            {
                                "content_type": content_type,
                                "etag": etag,
                                "size": len(data),
                                "uploaded_at": utc_now().isoformat(),
                            }
                        )
                    )
                await aiofiles.os.replace(temp_path, target)
            finally:
                if await aiofiles.os.path.exists(temp_path):
                    await aiofiles.os.remove(temp_path)
            stat = await aiofiles.os.stat(target)
        except OSError as e:
            raise StorageUpstreamError(key, "put", str(e)) from e
        return StoredObject(
            key=key,
            filename=filename,
            size=len(data),
            mime_type=content_type,
            etag=etag,
            last_modified=to_http_date(from_timestamp_utc(stat.st_mtime)),
        )

    @traced("storage.local.exists")
    async def exists(self, tenant: TenantPath, filename: str) -> bool:
        key = self._object_key(tenant, filename)
        return await aiofiles.os.path.isfile(self._get_full_path(key))

    @traced("storage.local.get")
    async def get(
        self,
        tenant: TenantPath,
        filename: str,
        conditional: ConditionalHeaders | None = None,
    ) -> RetrievalResult:
        key = self._object_key(tenant, filename)
        strategy = select_strategy(self.retrieval)
        if strategy is RetrievalStrategy.PROXY:
            return await self.open(key, conditional)
        if strategy is RetrievalStrategy.CDN:
            return RedirectTo(cdn_url(self.retrieval.cdn_base_url, key))
        if strategy is RetrievalStrategy.SIGNED_URL:
            signer = self.signer
            if signer is None:
                raise StorageConfigurationError("No URL signer configured", "storage_signing_secret")
            return RedirectTo(
                signer.sign(
                    f"{self.base_url}{SIGNED_PATH}", key, self.retrieval.signed_url_ttl
                )
            )
        return RedirectTo(public_url(self.base_url, key))

    async def open(
        self, key: str, conditional: ConditionalHeaders | None = None
    ) -> StreamedContent:
        """Stream an object from disk, honouring conditional and range headers."""
        check_object_name(key.rsplit("/", 1)[-1])
        file_path = self._get_full_path(key)
        try:
            stat = await aiofiles.os.stat(file_path)
        except FileNotFoundError as e:
            raise StorageNotFoundError(key) from e
        meta = await self._read_metadata(file_path)
        etag = meta.get("etag") or f'"{int(stat.st_mtime)}-{stat.st_size}"'
        content_type = meta.get("content_type", "application/octet-stream")
        last_modified = to_http_date(from_timestamp_utc(stat.st_mtime))
        conditional = conditional or ConditionalHeaders()

        status = evaluate_preconditions(conditional, etag, stat.st_mtime)
        if status == 412:
            raise StorageUpstreamError(key, "get", "PreconditionFailed", status_code=412)
        if status == 304:
            return StreamedContent(
                status_code=304,
                length=None,
                mime_type=None,
                etag=etag,
                last_modified=last_modified,
            )

        byte_range = None
        if conditional.range:
            try:
                byte_range = parse_range(conditional.range, stat.st_size)
            except ValueError as e:
                raise StorageUpstreamError(
                    key, "get", "InvalidRange", status_code=416
                ) from e
        if byte_range is None:
            return StreamedContent(
                status_code=200,
                length=stat.st_size,
                mime_type=content_type,
                etag=etag,
                last_modified=last_modified,
                body=self._iter_file(file_path, 0, stat.st_size),
            )
        return StreamedContent(
            status_code=206,
            length=byte_range.length,
            mime_type=content_type,
            etag=etag,
            last_modified=last_modified,
            body=self._iter_file(file_path, byte_range.start, byte_range.length),
            content_range=f"bytes {byte_range.start}-{byte_range.end}/{stat.st_size}",
        )

    async def _iter_file(self, file_path: Path, offset: int, length: int) -> AsyncIterator[bytes]:
        """Yield length bytes from offset; the file is closed on exit or abort."""
        async with aiofiles.open(file_path, "rb") as f:
            await f.seek(offset)
            remaining = length
            while remaining > 0:
                chunk = await f.read(min(self.CHUNK_SIZE, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk

    async def open_signed(
        self,
        key: str,
        expires: int,
        nonce: str,
        signature: str,
        conditional: ConditionalHeaders | None = None,
    ) -> StreamedContent | None:
        """Stream key if the signed URL parameters verify; None otherwise."""
        if self.signer is None or not self.signer.verify(key, expires, nonce, signature):
            return None
        return await self.open(key, conditional)

    @traced("storage.local.delete")
    async def delete(self, tenant: TenantPath, filename: str) -> None:
        """Remove object and sidecar; missing files are ignored."""
        key = self._object_key(tenant, filename)
        file_path = self._get_full_path(key)
        for path in (file_path, self._meta_path(file_path)):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageUpstreamError(key, "delete", str(e)) from e
        logger.debug("Deleted %s", key)

