"""Pytest configuration and fixtures for boxstore.

The environment is pointed at the local filesystem backend before
boxstore.main is imported, so no S3 endpoint is needed. HTTP tests build a
fresh app per test and install a connected backend on app.state (the httpx
ASGI transport does not run the lifespan).
"""

import os
import tempfile

import pytest
from httpx import ASGITransport, AsyncClient

os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="boxstore-test-")
os.environ["STORAGE_BASE_URL"] = "http://test"
os.environ["STORAGE_SIGNING_SECRET"] = "test-signing-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from boxstore.core.config import get_settings  # noqa: E402
from boxstore.domain.value_objects import TenantPath  # noqa: E402
from boxstore.infrastructure.external.storage import RetrievalConfig  # noqa: E402
from boxstore.infrastructure.external.storage.local_storage import (  # noqa: E402
    LocalStorageService,
)
from boxstore.infrastructure.external.storage.signing import UrlSigner  # noqa: E402
from boxstore.main import create_app  # noqa: E402

get_settings.cache_clear()

SIGNING_SECRET = "test-signing-secret"


@pytest.fixture
def tenant() -> TenantPath:
    return TenantPath("site1", "box1", "res1")


@pytest.fixture
async def storage(tmp_path) -> LocalStorageService:
    """Local backend in signed-URL mode (the default retrieval mode)."""
    service = LocalStorageService(
        storage_root=str(tmp_path / "objects"),
        base_url="http://test",
        retrieval=RetrievalConfig(),
        signer=UrlSigner(SIGNING_SECRET),
    )
    await service.connect()
    return service


@pytest.fixture
async def proxy_storage(tmp_path) -> LocalStorageService:
    """Local backend that streams bytes itself."""
    service = LocalStorageService(
        storage_root=str(tmp_path / "proxied"),
        retrieval=RetrievalConfig(proxy=True),
    )
    await service.connect()
    return service


async def _client_for(storage) -> AsyncClient:
    app = create_app()
    app.state.storage = storage
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
async def client(storage) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI), signed-URL mode."""
    async with await _client_for(storage) as ac:
        yield ac


@pytest.fixture
async def proxy_client(proxy_storage) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI), proxy mode."""
    async with await _client_for(proxy_storage) as ac:
        yield ac
