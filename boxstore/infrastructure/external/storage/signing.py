"""Time-limited signed URLs for the local backend.

Stateless HMAC-SHA256 over key, expiry and a random nonce. Signing is a
pure local computation: no I/O, no token table. The clock is injectable so
expiry can be tested without waiting.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from urllib.parse import quote, urlencode

from boxstore.shared.utils.datetime import utc_now


class UrlSigner:
    """Sign and verify object URLs with a shared secret."""

    NONCE_BYTES = 12

    def __init__(
        self,
        secret: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not secret:
            raise ValueError("Signing secret must not be empty")
        self._secret = secret.encode()
        self._clock = clock

    def _signature(self, key: str, expires: int, nonce: str) -> str:
        message = f"{key}|{expires}|{nonce}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def sign(self, base_url: str, key: str, ttl_seconds: int) -> str:
        """Return base_url/key with expires, nonce and signature query parameters."""
        expires = int((self._clock() + timedelta(seconds=ttl_seconds)).timestamp())
        nonce = secrets.token_urlsafe(self.NONCE_BYTES)
        query = urlencode(
            {
                "expires": expires,
                "nonce": nonce,
                "signature": self._signature(key, expires, nonce),
            }
        )
        return f"{base_url.rstrip('/')}/{quote(key)}?{query}"

    def verify(self, key: str, expires: int, nonce: str, signature: str) -> bool:
        """Return True if signature matches key/expires/nonce and has not expired."""
        expected = self._signature(key, expires, nonce)
        if not hmac.compare_digest(expected, signature):
            return False
        return self._clock().timestamp() <= expires
