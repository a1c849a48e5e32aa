"""HTTP middleware: timeout, request size limit, request ID.

Applied in main app; order matters (first added = outermost).
"""

from boxstore.middleware.request_id import RequestIDMiddleware
from boxstore.middleware.request_size_limit import RequestSizeLimitMiddleware
from boxstore.middleware.timeout import TimeoutMiddleware

__all__ = [
    "RequestIDMiddleware",
    "RequestSizeLimitMiddleware",
    "TimeoutMiddleware",
]
