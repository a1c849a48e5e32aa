"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Storage backend settings are validated at load time.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 5 MiB upload ceiling
DEFAULT_MAX_UPLOAD_SIZE = 5 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    All settings are optional with defaults except those validated in
    validate_storage (bucket and endpoint when storage_backend is 's3').
    """

    # App
    app_name: str = "boxstore"
    app_version: str = "1.0.0"
    debug: bool = False

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:8080"

    # Storage: "s3" (S3-compatible) or "local" (filesystem, development)
    storage_backend: str = "s3"
    storage_root: str = "/var/boxstore/storage"
    storage_base_url: str | None = None
    storage_signing_secret: SecretStr | None = None
    s3_bucket: str | None = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_addressing_style: str = "auto"
    s3_public_read: bool = True
    max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE

    # Retrieval strategy (priority: proxy > cdn > signed url > public url)
    storage_proxy: bool = False
    storage_cdn_url: str = ""
    storage_signed_url: bool = True
    storage_signed_url_ttl: int = 300

    # Bound on every upstream call (head, read, write, delete)
    storage_timeout_seconds: float = 30.0

    # Request / middleware
    request_timeout_seconds: int = 60
    request_id_header: str = "X-Request-ID"

    # Rate limiting (slowapi)
    rate_limit_enabled: bool = True

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_storage(self) -> "Settings":
        """Validate storage backend settings.

        - s3: S3_BUCKET and S3_ENDPOINT_URL required; access/secret key both or neither.
        - local: STORAGE_ROOT required.
        """
        if self.storage_backend == "s3":
            if not self.s3_bucket:
                raise ValueError(
                    "s3_bucket is required when storage_backend is 's3'. "
                    "Set S3_BUCKET environment variable or update .env file."
                )
            if not self.s3_endpoint_url:
                raise ValueError(
                    "s3_endpoint_url is required when storage_backend is 's3'. "
                    "Set S3_ENDPOINT_URL environment variable or update .env file."
                )
            if bool(self.s3_access_key) != bool(self.s3_secret_key):
                raise ValueError(
                    "S3_ACCESS_KEY and S3_SECRET_KEY must be set together "
                    "(leave both unset to use ambient credentials)."
                )
        elif self.storage_backend == "local":
            if not self.storage_root:
                raise ValueError("STORAGE_ROOT is required when storage_backend is 'local'.")
        else:
            raise ValueError(
                f"Invalid storage_backend '{self.storage_backend}'. "
                "Must be one of: 'local', 's3'"
            )
        if self.storage_signed_url_ttl <= 0:
            raise ValueError("STORAGE_SIGNED_URL_TTL must be a positive number of seconds.")
        if self.max_upload_size <= 0:
            raise ValueError("MAX_UPLOAD_SIZE must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
