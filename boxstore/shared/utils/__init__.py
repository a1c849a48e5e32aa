"""Shared utilities: datetime and generators."""

from boxstore.shared.utils.datetime import (
    ensure_utc,
    from_timestamp_utc,
    parse_http_date,
    to_http_date,
    utc_now,
)
from boxstore.shared.utils.generators import generate_cuid

__all__ = [
    "generate_cuid",
    "utc_now",
    "ensure_utc",
    "from_timestamp_utc",
    "to_http_date",
    "parse_http_date",
]
