"""Logging configuration for the application."""

import logging
import sys

from boxstore.core.config import get_settings
from boxstore.shared.context import RequestIdLogFilter


def setup_logging() -> None:
    """Configure application-wide logging.

    Level is DEBUG when settings.debug is True, otherwise INFO.
    Output goes to stdout; each line carries the request ID.
    botocore and friends are capped at WARNING.
    """
    settings = get_settings()
    log_level = logging.DEBUG if settings.debug else logging.INFO
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdLogFilter())
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
        handlers=[handler],
    )
    for noisy in ("botocore", "aiobotocore", "boto3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
