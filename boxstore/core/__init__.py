"""Core: config, lifespan, exception handlers, and rate limiting.

Single place for settings and application bootstrap.
"""

from boxstore.core.config import get_settings

__all__ = ["get_settings"]
