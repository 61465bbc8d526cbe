"""
Request correlation middleware.

Generates/propagates X-Request-ID, keeps the acting user and store in
thread-local storage for log records, and records HTTP metrics.
"""
import uuid
import time
import logging
from threading import local

from django.utils.deprecation import MiddlewareMixin

_request_context = local()

logger = logging.getLogger(__name__)

_CONTEXT_ATTRIBUTES = ('request_id', 'trace_id', 'span_id', 'user_id', 'user_roles', 'store_id')


def get_request_id():
    """Get current request ID from thread-local storage."""
    return getattr(_request_context, 'request_id', None)


def get_trace_id():
    """Get current trace ID from thread-local storage."""
    return getattr(_request_context, 'trace_id', None)


def get_user_id():
    """Get current user ID from thread-local storage."""
    return getattr(_request_context, 'user_id', None)


def get_user_roles():
    """Get current user group names from thread-local storage."""
    return getattr(_request_context, 'user_roles', [])


def get_store_id():
    """Get the acting user's store ID from thread-local storage."""
    return getattr(_request_context, 'store_id', None)


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Middleware to handle request correlation.

    - Generates/propagates X-Request-ID
    - Extracts X-Trace-ID / X-Span-ID headers
    - Stores context in thread-local for logging
    - Adds correlation headers to response
    - Tracks request count and duration
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'
    TRACE_ID_HEADER = 'HTTP_X_TRACE_ID'
    SPAN_ID_HEADER = 'HTTP_X_SPAN_ID'

    def process_request(self, request):
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())
        trace_id = request.META.get(self.TRACE_ID_HEADER)
        span_id = request.META.get(self.SPAN_ID_HEADER)

        request.request_id = request_id
        request.trace_id = trace_id
        request.span_id = span_id
        request.start_time = time.time()

        _request_context.request_id = request_id
        _request_context.trace_id = trace_id
        _request_context.span_id = span_id

        # Session-authenticated users only; JWT users are resolved by DRF later
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            _request_context.user_id = str(user.id)
            _request_context.user_roles = list(user.groups.values_list('name', flat=True))
            store_id = getattr(user, 'store_id', None)
            _request_context.store_id = str(store_id) if store_id else None
        else:
            _request_context.user_id = None
            _request_context.user_roles = []
            _request_context.store_id = None

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if getattr(request, 'trace_id', None):
            response['X-Trace-ID'] = request.trace_id

        if hasattr(request, 'start_time'):
            duration = time.time() - request.start_time
            self._record_metrics(request, response, duration)

            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration * 1000, 2),
                    'request_id': getattr(request, 'request_id', None),
                    'trace_id': getattr(request, 'trace_id', None),
                    'user_id': get_user_id(),
                    'user_roles': get_user_roles(),
                }
            )

        clear_request_context()
        return response

    def process_exception(self, request, exception):
        duration_ms = 0
        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000

        from .metrics import metrics
        metrics.exceptions_total.labels(
            exception_type=exception.__class__.__name__,
            location='http'
        ).inc()

        logger.error(
            f'Request failed: {exception.__class__.__name__}',
            exc_info=True,
            extra={
                'event': 'http_request_exception',
                'path': request.path,
                'method': request.method,
                'exception_type': exception.__class__.__name__,
                'duration_ms': round(duration_ms, 2),
                'request_id': getattr(request, 'request_id', None),
                'trace_id': getattr(request, 'trace_id', None),
                'user_id': get_user_id(),
            }
        )

    def _record_metrics(self, request, response, duration):
        from .metrics import metrics

        # Resolved route keeps label cardinality bounded
        match = getattr(request, 'resolver_match', None)
        path = match.route if match and match.route else 'unmatched'

        metrics.http_requests_total.labels(
            path=path,
            method=request.method,
            status=str(getattr(response, 'status_code', 0))
        ).inc()
        metrics.http_request_duration_seconds.labels(
            path=path,
            method=request.method
        ).observe(duration)


def clear_request_context():
    """Clear thread-local request context (useful for testing)."""
    for attr in _CONTEXT_ATTRIBUTES:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)
