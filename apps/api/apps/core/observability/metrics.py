"""
Prometheus metrics for the returns back office.

All counters live on a single registry object so call sites read
``metrics.returns_created_total.labels(...).inc()``.
"""
from prometheus_client import Counter, Histogram, Gauge


class MetricsRegistry:
    """
    Central metrics registry.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        self._setup_metrics()

    def _create_counter(self, name, description, labels=None):
        return Counter(name, description, labels or [])

    def _create_histogram(self, name, description, labels=None, buckets=None):
        if buckets:
            return Histogram(name, description, labels or [], buckets=buckets)
        return Histogram(name, description, labels or [])

    def _create_gauge(self, name, description, labels=None):
        return Gauge(name, description, labels or [])

    def _setup_metrics(self):
        """Setup all application metrics."""

        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = self._create_counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.http_request_duration_seconds = self._create_histogram(
            'http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['path', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
        )

        self.exceptions_total = self._create_counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Return Metrics
        # ===================================================================
        self.returns_created_total = self._create_counter(
            'returns_created_total',
            'Returns created',
            ['result']  # success|<error_type>
        )

        self.returns_create_duration_seconds = self._create_histogram(
            'returns_create_duration_seconds',
            'Duration of return creation (validation, build, restoration)',
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
        )

        self.returns_eligibility_checks_total = self._create_counter(
            'returns_eligibility_checks_total',
            'Return eligibility validations',
            ['result']  # eligible|<error_type>
        )

        self.returns_over_return_blocked_total = self._create_counter(
            'returns_over_return_blocked_total',
            'Blocked attempts to return more than remains on a sale line',
            ['unit_type']
        )

        self.returns_status_transition_total = self._create_counter(
            'returns_status_transition_total',
            'Return status transitions',
            ['from_status', 'to_status', 'result']
        )

        self.returns_number_fallback_total = self._create_counter(
            'returns_number_fallback_total',
            'Return numbers generated from the timestamp fallback'
        )

        # ===================================================================
        # Inventory Metrics
        # ===================================================================
        self.returns_inventory_restoration_total = self._create_counter(
            'returns_inventory_restoration_total',
            'Return lines processed for inventory restoration',
            ['unit_type', 'result']  # result: restored|skipped|failed
        )

        self.returns_inventory_reversal_total = self._create_counter(
            'returns_inventory_reversal_total',
            'Return lines processed for inventory reversal',
            ['unit_type', 'result']  # result: reversed|clamped|skipped|failed
        )

        self.returns_pending_restoration = self._create_gauge(
            'returns_pending_restoration',
            'Returns whose inventory restoration is partial or failed'
        )

        # ===================================================================
        # Sale Metrics
        # ===================================================================
        self.sales_marked_returned_total = self._create_counter(
            'sales_marked_returned_total',
            'Sales reconciled to fully returned'
        )


# Global metrics instance
metrics = MetricsRegistry()
