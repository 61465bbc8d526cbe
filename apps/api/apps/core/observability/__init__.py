"""
Observability package for the returns back office.

Provides structured logging, metrics, tracing, and health checks
with customer data protection.
"""
from .metrics import metrics
from .events import log_domain_event
from .logging import get_sanitized_logger

__all__ = ['metrics', 'log_domain_event', 'get_sanitized_logger']
