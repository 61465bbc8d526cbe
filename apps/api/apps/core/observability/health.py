"""
Health check endpoints.

/healthz answers as long as the process is up; /readyz also checks that the
database answers and the store table is reachable.
"""
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.views import View

from .logging import get_sanitized_logger

logger = get_sanitized_logger(__name__)


class HealthzView(View):
    """Liveness probe. Does not check dependencies."""

    def get(self, request):
        health_data = {
            'status': 'ok',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }

        commit_hash = getattr(settings, 'COMMIT_HASH', None)
        if commit_hash:
            health_data['commit'] = commit_hash

        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """Readiness probe: 200 when dependencies answer, 503 otherwise."""

    def get(self, request):
        checks = {
            'database': self._check_database(),
            'stores_table': self._check_stores_table(),
        }
        all_healthy = all(checks.values())

        return JsonResponse(
            {
                'status': 'ready' if all_healthy else 'not_ready',
                'checks': checks,
            },
            status=200 if all_healthy else 503
        )

    def _check_database(self):
        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
            return True
        except DatabaseError as e:
            self._log_failure('database', e)
            return False

    def _check_stores_table(self):
        from apps.core.models import Store

        try:
            Store.objects.exists()
            return True
        except DatabaseError as e:
            self._log_failure('stores_table', e)
            return False

    def _log_failure(self, check, error):
        logger.error(
            'Readiness check failed',
            extra={
                'event': 'health_check_failed',
                'check': check,
                'error_type': error.__class__.__name__,
            }
        )
