"""Infrastructure exceptions for storage operations.

Storage errors extend BoxstoreException so presentation can map them
to HTTP responses consistently. Each error carries a StorageErrorKind so
callers can match on the kind instead of on class names or messages.
"""

from enum import Enum
from typing import Any

from boxstore.domain.exceptions import BoxstoreException


class StorageErrorKind(str, Enum):
    """Closed set of storage failure kinds."""

    NOT_FOUND = "not_found"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UPSTREAM_ERROR = "upstream_error"
    CONFIGURATION_ERROR = "configuration_error"


class StorageException(BoxstoreException):
    """Base exception for storage operations."""

    kind: StorageErrorKind = StorageErrorKind.UPSTREAM_ERROR


class StorageNotFoundError(StorageException):
    """Object not found in storage."""

    kind = StorageErrorKind.NOT_FOUND

    def __init__(self, key: str) -> None:
        super().__init__(
            f"Object not found: {key}",
            "STORAGE_NOT_FOUND",
            {"key": key},
        )


class StoragePayloadTooLargeError(StorageException):
    """Upload exceeds the size ceiling."""

    kind = StorageErrorKind.PAYLOAD_TOO_LARGE

    def __init__(self, max_bytes: int, actual: int | None = None) -> None:
        details: dict[str, Any] = {"max_bytes": max_bytes}
        if actual is not None:
            details["size"] = actual
        super().__init__(
            f"Upload must be at most {max_bytes} bytes",
            "PAYLOAD_TOO_LARGE",
            details,
        )


class StorageUpstreamError(StorageException):
    """Transport or backend failure (network, auth, malformed response).

    status_code is the upstream HTTP status when one was received
    (e.g. 412 precondition failed, 416 range not satisfiable).
    """

    kind = StorageErrorKind.UPSTREAM_ERROR

    def __init__(
        self,
        key: str,
        operation: str,
        reason: str,
        status_code: int | None = None,
        error_code: str = "STORAGE_UPSTREAM_ERROR",
    ) -> None:
        details: dict[str, Any] = {"key": key, "operation": operation, "reason": reason}
        if status_code is not None:
            details["status_code"] = status_code
        self.status_code = status_code
        super().__init__(
            f"Storage {operation} failed for {key}",
            error_code,
            details,
        )


class StorageTimeoutError(StorageUpstreamError):
    """Upstream call did not complete within the configured timeout."""

    def __init__(self, key: str, operation: str, timeout_seconds: float) -> None:
        super().__init__(
            key,
            operation,
            f"timed out after {timeout_seconds} seconds",
            error_code="STORAGE_TIMEOUT",
        )
        self.details["timeout_seconds"] = timeout_seconds


class StorageConfigurationError(StorageException):
    """Backend misconfigured (missing bucket/endpoint, bad credentials)."""

    kind = StorageErrorKind.CONFIGURATION_ERROR

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message,
            "STORAGE_CONFIGURATION_ERROR",
            {"field": field} if field else {},
        )
