"""S3StorageService with a mocked aioboto3 client (no network)."""

import asyncio
import io
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlsplit

import aiohttp
import pytest
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    ReadTimeoutError,
    ResponseStreamingError,
)

from boxstore.domain.value_objects import TenantPath
from boxstore.infrastructure.exceptions import (
    StorageConfigurationError,
    StorageErrorKind,
    StorageNotFoundError,
    StorageTimeoutError,
    StorageUpstreamError,
)
from boxstore.infrastructure.external.storage import (
    ConditionalHeaders,
    RedirectTo,
    RetrievalConfig,
    StreamedContent,
)
from boxstore.infrastructure.external.storage.s3_storage import (
    PRESIGN_NONCE_PARAM,
    S3BackendConfig,
    S3StorageService,
)

ENDPOINT = "https://s3.example.com"
BUCKET = "uploads"


def _client_error(code: str, status: int, op: str = "GetObject", headers: dict | None = None) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status, "HTTPHeaders": headers or {}},
        },
        op,
    )


class FakeBody:
    """Stands in for the aiobotocore streaming body."""

    def __init__(self, data: bytes) -> None:
        self._buf = io.BytesIO(data)
        self.closed = False

    async def __aenter__(self) -> "FakeBody":
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.closed = True

    async def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)


class BrokenBody(FakeBody):
    """Body whose connection drops on the first read."""

    def __init__(self, error: Exception) -> None:
        super().__init__(b"")
        self.error = error

    async def read(self, size: int = -1) -> bytes:
        raise self.error


class FakePaginator:
    def __init__(self, pages: list[dict]) -> None:
        self.pages = pages
        self.kwargs: dict = {}

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return self._iterate()

    async def _iterate(self):
        for page in self.pages:
            yield page


def _config(**overrides) -> S3BackendConfig:
    values = {
        "bucket": BUCKET,
        "endpoint": ENDPOINT,
        "access_key": "AKIDEXAMPLE",
        "secret_key": "secret",
        "timeout_seconds": 1.0,
    }
    values.update(overrides)
    return S3BackendConfig(**values)


async def _service(client: MagicMock, **overrides) -> S3StorageService:
    service = S3StorageService(_config(**overrides), client=client)
    await service.connect()
    return service


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


class TestConfig:
    def test_bucket_required(self) -> None:
        with pytest.raises(StorageConfigurationError) as exc_info:
            _config(bucket="")
        assert exc_info.value.kind is StorageErrorKind.CONFIGURATION_ERROR

    def test_endpoint_required(self) -> None:
        with pytest.raises(StorageConfigurationError):
            _config(endpoint="")

    def test_key_pair_must_be_complete(self) -> None:
        with pytest.raises(StorageConfigurationError):
            _config(secret_key=None)
        _config(access_key=None, secret_key=None)

    def test_addressing_style(self) -> None:
        with pytest.raises(StorageConfigurationError):
            _config(addressing_style="sideways")
        assert _config(addressing_style="path").botocore_config().s3 == {"addressing_style": "path"}

    def test_no_sdk_retries(self) -> None:
        config = _config().botocore_config()
        assert config.retries["total_max_attempts"] == 1
        assert config.connect_timeout == 1.0
        assert config.read_timeout == 1.0


class TestList:
    async def test_strips_prefix_and_skips_nested(self, client: MagicMock, tenant: TenantPath) -> None:
        paginator = FakePaginator(
            [
                {"Contents": [{"Key": "site1/box1/res1/a.png"}, {"Key": "site1/box1/res1/b.jpg"}]},
                {"Contents": [{"Key": "site1/box1/res1/nested/c.png"}]},
                {},
            ]
        )
        client.get_paginator = MagicMock(return_value=paginator)
        service = await _service(client)
        assert await service.list(tenant) == ["a.png", "b.jpg"]
        client.get_paginator.assert_called_once_with("list_objects_v2")
        assert paginator.kwargs == {"Bucket": BUCKET, "Prefix": "site1/box1/res1/", "Delimiter": "/"}


class TestPut:
    async def test_put_object_params(self, client: MagicMock, tenant: TenantPath) -> None:
        client.put_object = AsyncMock(return_value={"ETag": '"abc"'})
        service = await _service(client)
        stored = await service.put(tenant, "x.png", b"data", "image/png")
        client.put_object.assert_awaited_once_with(
            Bucket=BUCKET,
            Key="site1/box1/res1/x.png",
            Body=b"data",
            ContentType="image/png",
            ContentLength=4,
            ACL="public-read",
        )
        assert stored.etag == '"abc"'
        assert stored.size == 4
        assert stored.last_modified

    async def test_private_objects(self, client: MagicMock, tenant: TenantPath) -> None:
        client.put_object = AsyncMock(return_value={})
        service = await _service(client, public_read=False)
        await service.put(tenant, "x.png", b"data", "image/png")
        assert "ACL" not in client.put_object.await_args.kwargs

    async def test_credentials_rejected(self, client: MagicMock, tenant: TenantPath) -> None:
        client.put_object = AsyncMock(side_effect=_client_error("InvalidAccessKeyId", 403, "PutObject"))
        service = await _service(client)
        with pytest.raises(StorageConfigurationError):
            await service.put(tenant, "x.png", b"data", "image/png")

    async def test_missing_bucket(self, client: MagicMock, tenant: TenantPath) -> None:
        client.put_object = AsyncMock(side_effect=_client_error("NoSuchBucket", 404, "PutObject"))
        service = await _service(client)
        with pytest.raises(StorageConfigurationError):
            await service.put(tenant, "x.png", b"data", "image/png")

    async def test_transport_failure(self, client: MagicMock, tenant: TenantPath) -> None:
        client.put_object = AsyncMock(side_effect=EndpointConnectionError(endpoint_url=ENDPOINT))
        service = await _service(client)
        with pytest.raises(StorageUpstreamError) as exc_info:
            await service.put(tenant, "x.png", b"data", "image/png")
        assert exc_info.value.kind is StorageErrorKind.UPSTREAM_ERROR


class TestExists:
    async def test_found(self, client: MagicMock, tenant: TenantPath) -> None:
        client.head_object = AsyncMock(return_value={"ContentLength": 4})
        service = await _service(client)
        assert await service.exists(tenant, "x.png") is True
        client.head_object.assert_awaited_once_with(Bucket=BUCKET, Key="site1/box1/res1/x.png")

    async def test_not_found_is_false(self, client: MagicMock, tenant: TenantPath) -> None:
        client.head_object = AsyncMock(side_effect=_client_error("404", 404, "HeadObject"))
        service = await _service(client)
        assert await service.exists(tenant, "x.png") is False

    async def test_forbidden_raises(self, client: MagicMock, tenant: TenantPath) -> None:
        client.head_object = AsyncMock(side_effect=_client_error("403", 403, "HeadObject"))
        service = await _service(client)
        with pytest.raises(StorageUpstreamError) as exc_info:
            await service.exists(tenant, "x.png")
        assert exc_info.value.status_code == 403

    async def test_timeout(self, client: MagicMock, tenant: TenantPath) -> None:
        async def slow(**kwargs):
            await asyncio.sleep(5)

        client.head_object = slow
        service = await _service(client, timeout_seconds=0.01)
        with pytest.raises(StorageTimeoutError):
            await service.exists(tenant, "x.png")

    async def test_sdk_read_timeout(self, client: MagicMock, tenant: TenantPath) -> None:
        client.head_object = AsyncMock(side_effect=ReadTimeoutError(endpoint_url=ENDPOINT))
        service = await _service(client)
        with pytest.raises(StorageTimeoutError):
            await service.exists(tenant, "x.png")

    async def test_rejected_credentials_are_upstream_errors(
        self, client: MagicMock, tenant: TenantPath
    ) -> None:
        client.head_object = AsyncMock(side_effect=_client_error("InvalidAccessKeyId", 403, "HeadObject"))
        service = await _service(client)
        with pytest.raises(StorageUpstreamError) as exc_info:
            await service.exists(tenant, "x.png")
        assert not isinstance(exc_info.value, StorageConfigurationError)
        assert exc_info.value.status_code == 403



class TestProxyGet:
    PROXY = RetrievalConfig(proxy=True)

    async def test_streams_body(self, client: MagicMock, tenant: TenantPath) -> None:
        body = FakeBody(b"hello world")
        client.get_object = AsyncMock(
            return_value={
                "ResponseMetadata": {"HTTPStatusCode": 200},
                "Body": body,
                "ContentLength": 11,
                "ContentType": "text/plain",
                "ETag": '"e1"',
                "LastModified": datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
            }
        )
        service = await _service(client, retrieval=self.PROXY)
        content = await service.get(tenant, "x.txt")
        assert isinstance(content, StreamedContent)
        assert content.status_code == 200
        assert content.headers() == {
            "content-length": "11",
            "content-type": "text/plain",
            "etag": '"e1"',
            "last-modified": "Wed, 15 Jan 2025 12:00:00 GMT",
            "accept-ranges": "bytes",
        }
        assert await content.read() == b"hello world"
        assert body.closed

    async def test_forwards_conditional_headers(self, client: MagicMock, tenant: TenantPath) -> None:
        client.get_object = AsyncMock(
            return_value={
                "ResponseMetadata": {"HTTPStatusCode": 206},
                "Body": FakeBody(b"ell"),
                "ContentLength": 3,
                "ContentType": "text/plain",
                "ContentRange": "bytes 1-3/11",
            }
        )
        service = await _service(client, retrieval=self.PROXY)
        content = await service.get(
            tenant, "x.txt", ConditionalHeaders(range="bytes=1-3", if_match='"e1"')
        )
        client.get_object.assert_awaited_once_with(
            Bucket=BUCKET, Key="site1/box1/res1/x.txt", IfMatch='"e1"', Range="bytes=1-3"
        )
        assert content.status_code == 206
        assert content.content_range == "bytes 1-3/11"
        assert await content.read() == b"ell"

    async def test_not_modified(self, client: MagicMock, tenant: TenantPath) -> None:
        client.get_object = AsyncMock(
            side_effect=_client_error("304", 304, headers={"etag": '"e1"', "last-modified": "Wed, 15 Jan 2025 12:00:00 GMT"})
        )
        service = await _service(client, retrieval=self.PROXY)
        content = await service.get(tenant, "x.txt", ConditionalHeaders(if_none_match='"e1"'))
        assert content.status_code == 304
        assert content.body is None
        assert content.etag == '"e1"'

    async def test_precondition_failed(self, client: MagicMock, tenant: TenantPath) -> None:
        client.get_object = AsyncMock(side_effect=_client_error("PreconditionFailed", 412))
        service = await _service(client, retrieval=self.PROXY)
        with pytest.raises(StorageUpstreamError) as exc_info:
            await service.get(tenant, "x.txt", ConditionalHeaders(if_match='"zz"'))
        assert exc_info.value.status_code == 412

    async def test_missing(self, client: MagicMock, tenant: TenantPath) -> None:
        client.get_object = AsyncMock(side_effect=_client_error("NoSuchKey", 404))
        service = await _service(client, retrieval=self.PROXY)
        with pytest.raises(StorageNotFoundError):
            await service.get(tenant, "x.txt")

    async def test_abandoned_stream_is_released(self, client: MagicMock, tenant: TenantPath) -> None:
        body = FakeBody(b"x" * (256 * 1024))
        client.get_object = AsyncMock(
            return_value={"ResponseMetadata": {"HTTPStatusCode": 200}, "Body": body, "ContentLength": 256 * 1024}
        )
        service = await _service(client, retrieval=self.PROXY)
        content = await service.get(tenant, "x.bin")
        chunks = content.iter_bytes()
        await chunks.__anext__()
        await chunks.aclose()
        assert body.closed

    async def test_closed_before_first_chunk(self, client: MagicMock, tenant: TenantPath) -> None:
        body = FakeBody(b"hello")
        client.get_object = AsyncMock(
            return_value={"ResponseMetadata": {"HTTPStatusCode": 200}, "Body": body, "ContentLength": 5}
        )
        service = await _service(client, retrieval=self.PROXY)
        content = await service.get(tenant, "x.txt")
        await content.aclose()
        assert body.closed

    @pytest.mark.parametrize(
        "error",
        [
            ResponseStreamingError(error="connection reset"),
            aiohttp.ClientPayloadError("response payload is not completed"),
        ],
    )
    async def test_connection_lost_mid_stream(
        self, client: MagicMock, tenant: TenantPath, error: Exception
    ) -> None:
        body = BrokenBody(error)
        client.get_object = AsyncMock(
            return_value={"ResponseMetadata": {"HTTPStatusCode": 200}, "Body": body, "ContentLength": 5}
        )
        service = await _service(client, retrieval=self.PROXY)
        content = await service.get(tenant, "x.txt")
        with pytest.raises(StorageUpstreamError) as exc_info:
            await content.read()
        assert exc_info.value.kind is StorageErrorKind.UPSTREAM_ERROR
        assert body.closed

    async def test_rejected_credentials_are_upstream_errors(
        self, client: MagicMock, tenant: TenantPath
    ) -> None:
        client.get_object = AsyncMock(side_effect=_client_error("SignatureDoesNotMatch", 403))
        service = await _service(client, retrieval=self.PROXY)
        with pytest.raises(StorageUpstreamError) as exc_info:
            await service.get(tenant, "x.txt")
        assert not isinstance(exc_info.value, StorageConfigurationError)



class TestRedirects:
    async def test_cdn(self, client: MagicMock, tenant: TenantPath) -> None:
        service = await _service(client, retrieval=RetrievalConfig(cdn_base_url="https://cdn.example"))
        result = await service.get(tenant, "abc123.png")
        assert result == RedirectTo("https://cdn.example/site1/box1/res1/abc123.png")
        client.head_object.assert_not_called()

    async def test_public(self, client: MagicMock, tenant: TenantPath) -> None:
        service = await _service(client, retrieval=RetrievalConfig(signed_url=False))
        result = await service.get(tenant, "abc123.png")
        assert result == RedirectTo(f"{ENDPOINT}/site1/box1/res1/abc123.png")

    async def test_signed_url(self, client: MagicMock, tenant: TenantPath) -> None:
        """Presigned with the real (offline) boto3 signer."""
        service = await _service(client)
        result = await service.get(tenant, "abc123.png")
        assert isinstance(result, RedirectTo)
        parts = urlsplit(result.url)
        params = parse_qs(parts.query)
        assert parts.path.endswith("/site1/box1/res1/abc123.png")
        assert params["X-Amz-Expires"] == ["300"]
        assert "X-Amz-Signature" in params
        client.get_object.assert_not_called()

    async def test_custom_ttl(self, client: MagicMock) -> None:
        service = await _service(client, retrieval=RetrievalConfig(signed_url_ttl=60))
        params = parse_qs(urlsplit(service.presign("a/b/c/d.png")).query)
        assert params["X-Amz-Expires"] == ["60"]

    async def test_presigned_urls_are_unique(self, client: MagicMock, tenant: TenantPath) -> None:
        service = await _service(client)
        first = await service.get(tenant, "abc123.png")
        second = await service.get(tenant, "abc123.png")
        assert first.url != second.url
        first_params = parse_qs(urlsplit(first.url).query)
        second_params = parse_qs(urlsplit(second.url).query)
        assert first_params[PRESIGN_NONCE_PARAM] != second_params[PRESIGN_NONCE_PARAM]

    async def test_expiry_follows_signing_clock(
        self, client: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "botocore.auth.get_current_datetime",
            lambda *args, **kwargs: datetime(2025, 1, 15, 12, 0, 0),
        )
        service = await _service(client, retrieval=RetrievalConfig(signed_url_ttl=120))
        first = parse_qs(urlsplit(service.presign("a/b/c/d.png")).query)
        second = parse_qs(urlsplit(service.presign("a/b/c/d.png")).query)
        assert first["X-Amz-Date"] == ["20250115T120000Z"]
        assert first["X-Amz-Expires"] == ["120"]
        # Same second, same key: only the nonce tells the signatures apart.
        assert first["X-Amz-Date"] == second["X-Amz-Date"]
        assert first["X-Amz-Signature"] != second["X-Amz-Signature"]



class TestDelete:
    async def test_delete(self, client: MagicMock, tenant: TenantPath) -> None:
        client.delete_object = AsyncMock(return_value={})
        service = await _service(client)
        await service.delete(tenant, "x.png")
        client.delete_object.assert_awaited_once_with(Bucket=BUCKET, Key="site1/box1/res1/x.png")

    async def test_rejected_credentials_are_upstream_errors(
        self, client: MagicMock, tenant: TenantPath
    ) -> None:
        client.delete_object = AsyncMock(side_effect=_client_error("ExpiredToken", 400, "DeleteObject"))
        service = await _service(client)
        with pytest.raises(StorageUpstreamError) as exc_info:
            await service.delete(tenant, "x.png")
        assert not isinstance(exc_info.value, StorageConfigurationError)



async def test_requires_connect(client: MagicMock, tenant: TenantPath) -> None:
    service = S3StorageService(_config())
    with pytest.raises(RuntimeError, match="connect"):
        await service.list(tenant)
