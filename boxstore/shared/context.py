"""Request context management using contextvars.

Provides async-safe storage for request-scoped data (request ID) that log
records pick up through RequestIdLogFilter.
"""

import logging
from contextvars import ContextVar

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Return the current request ID if set."""
    return request_id_var.get()


class RequestIdLogFilter(logging.Filter):
    """Add request_id to every log record ('-' outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True
