"""Storage data types: stored objects, conditional headers, retrieval results."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol


class AsyncReadable(Protocol):
    """Byte source with an async read(size) (e.g. starlette UploadFile)."""

    async def read(self, size: int = -1) -> bytes: ...


@dataclass(frozen=True)
class UploadDescriptor:
    """Incoming upload: byte stream, declared MIME type and optional declared size."""

    stream: AsyncReadable
    mime_type: str
    size: int | None = None


@dataclass(frozen=True)
class StoredObject:
    """Metadata of an object written by ingestion. Never mutated in place."""

    key: str
    filename: str
    size: int
    mime_type: str
    etag: str | None = None
    last_modified: str | None = None


@dataclass(frozen=True)
class ConditionalHeaders:
    """Client cache-validation headers forwarded to the upstream read."""

    if_none_match: str | None = None
    if_match: str | None = None
    if_modified_since: str | None = None
    if_unmodified_since: str | None = None
    range: str | None = None

    HEADER_NAMES: ClassVar[dict[str, str]] = {
        "if-none-match": "if_none_match",
        "if-match": "if_match",
        "if-modified-since": "if_modified_since",
        "if-unmodified-since": "if_unmodified_since",
        "range": "range",
    }

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "ConditionalHeaders":
        """Pick the conditional headers out of a request header mapping (any case)."""
        lowered = {k.lower(): v for k, v in headers.items()}
        return cls(
            **{
                attr: lowered[name]
                for name, attr in cls.HEADER_NAMES.items()
                if lowered.get(name)
            }
        )


@dataclass
class StreamedContent:
    """Proxy-mode result: upstream status, representation headers and body.

    body is None for 304 Not Modified. release, when set, frees the raw
    upstream handle behind body. aclose() must be called once the consumer is
    done or gives up; it runs release even if body was never iterated.
    """

    status_code: int
    length: int | None
    mime_type: str | None
    etag: str | None = None
    last_modified: str | None = None
    body: AsyncIterator[bytes] | None = None
    content_range: str | None = None
    accept_ranges: str | None = "bytes"
    release: Callable[[], Awaitable[None]] | None = field(default=None, repr=False)
    _closed: bool = field(default=False, repr=False)

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield body chunks; the body is released when iteration stops."""
        if self.body is None:
            return
        try:
            async for chunk in self.body:
                yield chunk
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        """Read the whole body (tests and small objects)."""
        return b"".join([chunk async for chunk in self.iter_bytes()])

    async def aclose(self) -> None:
        """Release the upstream read handle. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self.body, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self.release is not None:
                await self.release()

    def headers(self) -> dict[str, str]:
        """HTTP response headers for this representation."""
        out: dict[str, Any] = {
            "content-length": self.length,
            "content-type": self.mime_type,
            "etag": self.etag,
            "last-modified": self.last_modified,
            "content-range": self.content_range,
            "accept-ranges": self.accept_ranges,
        }
        if self.status_code == 304:
            out.pop("content-length")
            out.pop("content-type")
        return {k: str(v) for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class RedirectTo:
    """Redirect-mode result: the client should fetch the object from url."""

    url: str


RetrievalResult = StreamedContent | RedirectTo
