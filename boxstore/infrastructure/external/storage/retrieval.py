"""Retrieval strategy selection for get().

The strategy is a static, priority-ordered decision over backend
configuration (never over per-request state):

1. proxy: stream bytes through this service, forwarding conditional headers.
2. cdn: redirect to {cdn_base_url}/{key}; existence is not checked.
3. signed url: redirect to a time-limited signed URL (local computation).
4. public url: redirect to {endpoint}/{key}; requires public-read objects.
"""

from dataclasses import dataclass
from enum import Enum

DEFAULT_SIGNED_URL_TTL = 300


class RetrievalStrategy(str, Enum):
    """How get() delivers an object."""

    PROXY = "proxy"
    CDN = "cdn"
    SIGNED_URL = "signed_url"
    PUBLIC_URL = "public_url"


@dataclass(frozen=True)
class RetrievalConfig:
    """Read-only retrieval settings shared by every backend."""

    proxy: bool = False
    cdn_base_url: str = ""
    signed_url: bool = True
    signed_url_ttl: int = DEFAULT_SIGNED_URL_TTL

    def __post_init__(self) -> None:
        if self.signed_url_ttl <= 0:
            raise ValueError("signed_url_ttl must be positive")


def select_strategy(config: RetrievalConfig) -> RetrievalStrategy:
    """Return the single strategy that applies to config (highest priority first)."""
    if config.proxy:
        return RetrievalStrategy.PROXY
    if config.cdn_base_url:
        return RetrievalStrategy.CDN
    if config.signed_url:
        return RetrievalStrategy.SIGNED_URL
    return RetrievalStrategy.PUBLIC_URL


def join_url(base_url: str, key: str) -> str:
    """Join a base URL and an object key with exactly one separator."""
    return f"{base_url.rstrip('/')}/{key}"


def cdn_url(cdn_base_url: str, key: str) -> str:
    return join_url(cdn_base_url, key)


def public_url(endpoint: str, key: str) -> str:
    return join_url(endpoint, key)
