"""
Tracing helpers on top of the OpenTelemetry API.

Without a configured SDK the API hands out non-recording spans, so these
helpers are safe to call from tests and management commands.
"""
import time
from contextlib import contextmanager
from typing import Optional, Dict, Any

from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from .logging import get_sanitized_logger

logger = get_sanitized_logger(__name__)

tracer = trace.get_tracer('pharmacy_returns')

SPAN_KINDS = {
    'server': SpanKind.SERVER,
    'client': SpanKind.CLIENT,
    'internal': SpanKind.INTERNAL,
}


@contextmanager
def trace_span(
    name: str,
    kind: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None
):
    """
    Context manager for creating trace spans.

    Args:
        name: Span name
        kind: Span kind (server, client, internal)
        attributes: Span attributes

    Usage:
        with trace_span('create_return', attributes={'sale_id': str(sale.id)}):
            # ... operation ...
    """
    start_time = time.time()
    span_kind = SPAN_KINDS.get(kind, SpanKind.INTERNAL)

    with tracer.start_as_current_span(
        name,
        kind=span_kind,
        attributes=attributes or {},
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as e:
            span.set_attribute('error', True)
            span.set_attribute('error.type', e.__class__.__name__)
            span.set_status(Status(StatusCode.ERROR, e.__class__.__name__))
            logger.debug(
                f'Span failed: {name}',
                extra={
                    'event': 'span_error',
                    'span_name': name,
                    'duration_ms': round((time.time() - start_time) * 1000, 2),
                    'error_type': e.__class__.__name__,
                }
            )
            raise


def add_span_attribute(key: str, value: Any):
    """Add attribute to the current span if it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(key, value)
