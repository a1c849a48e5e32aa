"""Utility functions and decorators for distributed tracing."""

from collections.abc import Callable
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from boxstore.domain.value_objects import TenantPath
from boxstore.infrastructure.exceptions import StorageException


def _record_outcome(span: trace.Span, error: BaseException | None) -> None:
    """Set span status; storage errors also record their kind."""
    if error is None:
        span.set_status(Status(StatusCode.OK))
        return
    if isinstance(error, StorageException):
        span.set_attribute("storage.error_kind", error.kind.value)
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)


def _set_tenant_attrs(span: trace.Span, args: tuple, kwargs: dict) -> None:
    """Record tenant path and filename arguments when present."""
    tenant = kwargs.get("tenant")
    if tenant is None:
        tenant = next((a for a in args if isinstance(a, TenantPath)), None)
    if tenant is not None:
        site_id, box_id, resource_id = tenant.segments()
        span.set_attribute("tenant.site_id", site_id)
        span.set_attribute("tenant.box_id", box_id)
        span.set_attribute("tenant.resource_id", resource_id)
    filename = kwargs.get("filename")
    if isinstance(filename, str):
        span.set_attribute("storage.filename", filename)


def traced(
    operation_name: str | None = None,
    attributes: dict | None = None,
) -> Callable:
    """Decorator to create a span for a coroutine function.

    Args:
        operation_name: Span name (defaults to module.funcname).
        attributes: Optional dict of attributes to set on the span.

    Returns:
        Decorated function.
    """

    def decorator(func: Callable) -> Callable:
        tracer = trace.get_tracer(__name__)
        span_name = operation_name or f"{func.__module__}.{func.__name__}"

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(
                span_name, record_exception=False, set_status_on_exception=False
            ) as span:
                for key, value in (attributes or {}).items():
                    span.set_attribute(key, value)
                _set_tenant_attrs(span, args, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _record_outcome(span, e)
                    raise
                _record_outcome(span, None)
                return result

        return async_wrapper

    return decorator


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)
