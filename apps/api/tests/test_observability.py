"""
Tests for observability: sanitized logging, correlation, domain events, health checks.

Tests cover:
1. Sensitive fields redacted from dicts and JSON log lines
2. X-Request-ID generated or propagated, context cleared after the response
3. Domain events logged at the level matching their result
4. Spans re-raise the wrapped exception
5. /healthz and /readyz
"""
import json
import logging
import pytest
from unittest.mock import patch

from django.db import DatabaseError
from django.http import HttpResponse
from django.test import RequestFactory
from django.contrib.auth.models import AnonymousUser

from apps.core.observability.correlation import (
    RequestCorrelationMiddleware,
    clear_request_context,
    get_request_id,
    get_store_id,
    get_user_id,
)
from apps.core.observability.events import log_consistency_checkpoint, log_domain_event
from apps.core.observability.logging import SanitizedJSONFormatter, sanitize_dict
from apps.core.observability.tracing import trace_span


class TestSanitizeDict:

    def test_redacts_customer_data(self):
        data = {
            'return_id': 'abc',
            'notes': 'customer allergic to penicillin',
            'customer_name': 'Jane Roe',
            'Phone': '555-0100',
        }

        sanitized = sanitize_dict(data)

        assert sanitized['return_id'] == 'abc'
        assert sanitized['notes'] == '[REDACTED]'
        assert sanitized['customer_name'] == '[REDACTED]'
        assert sanitized['Phone'] == '[REDACTED]'

    def test_nested_and_lists(self):
        data = {
            'refund': {'refund_reference': 'TXN-1', 'amount': '10.00'},
            'lines': [{'rejection_reason': 'opened'}, 'plain'],
        }

        sanitized = sanitize_dict(data)

        assert sanitized['refund'] == {'refund_reference': '[REDACTED]', 'amount': '10.00'}
        assert sanitized['lines'] == [{'rejection_reason': '[REDACTED]'}, 'plain']

    def test_non_dict_passthrough(self):
        assert sanitize_dict('text') == 'text'


class TestSanitizedJSONFormatter:

    def test_extra_fields_redacted(self):
        record = logging.LogRecord('apps.returns', logging.INFO, __file__, 1, 'Return created', None, None)
        record.return_id = 'r-1'
        record.notes = 'secret note'
        record.details = {'email': 'a@b.c', 'unit_type': 'strip'}

        output = json.loads(SanitizedJSONFormatter().format(record))

        assert output['message'] == 'Return created'
        assert output['level'] == 'INFO'
        assert output['return_id'] == 'r-1'
        assert output['notes'] == '[REDACTED]'
        assert output['details'] == {'email': '[REDACTED]', 'unit_type': 'strip'}


@pytest.mark.django_db
class TestRequestCorrelationMiddleware:

    @pytest.fixture
    def middleware(self):
        return RequestCorrelationMiddleware(lambda request: HttpResponse())

    def test_generates_request_id(self, middleware):
        request = RequestFactory().get('/api/returns/')
        request.user = AnonymousUser()

        middleware.process_request(request)

        assert request.request_id
        assert get_request_id() == request.request_id
        clear_request_context()

    def test_propagates_request_id(self, middleware):
        request = RequestFactory().get('/api/returns/', HTTP_X_REQUEST_ID='req-123')
        request.user = AnonymousUser()

        middleware.process_request(request)
        response = middleware.process_response(request, HttpResponse())

        assert response['X-Request-ID'] == 'req-123'
        # Context cleared once the response leaves
        assert get_request_id() is None

    def test_session_user_context(self, middleware, pharmacist):
        request = RequestFactory().get('/api/returns/')
        request.user = pharmacist

        middleware.process_request(request)

        assert get_user_id() == str(pharmacist.id)
        assert get_store_id() == str(pharmacist.store_id)
        clear_request_context()

    def test_response_through_client(self, pharmacist_client):
        response = pharmacist_client.get('/api/returns/', HTTP_X_REQUEST_ID='req-456')

        assert response['X-Request-ID'] == 'req-456'


class TestDomainEvents:

    @pytest.mark.parametrize('result,level', [
        ('success', 'info'),
        ('blocked', 'warning'),
        ('warning', 'warning'),
        ('failure', 'error'),
    ])
    def test_level_follows_result(self, result, level):
        with patch('apps.core.observability.events.logger') as logger:
            log_domain_event('return_created', entity_type='Return', entity_id='r-1', result=result)

        log_call = getattr(logger, level)
        assert log_call.call_count == 1
        assert log_call.call_args.kwargs['extra']['event'] == 'return_created'
        assert log_call.call_args.kwargs['extra']['entity_id'] == 'r-1'

    def test_extra_fields_sanitized(self):
        with patch('apps.core.observability.events.logger') as logger:
            log_domain_event('return_created', notes='private', line_count=2)

        extra = logger.info.call_args.kwargs['extra']
        assert extra['notes'] == '[REDACTED]'
        assert extra['line_count'] == 2

    def test_failed_checkpoint_logs_error(self):
        with patch('apps.core.observability.events.logger') as logger:
            log_consistency_checkpoint(
                'return_restoration_consistency',
                entity_ids={'return_id': 'r-1'},
                checks_passed={'restored_lines_stamped': True, 'no_failures': False},
            )

        assert logger.error.call_count == 1
        assert logger.error.call_args.kwargs['extra']['status'] == 'failed'


class TestTraceSpan:

    def test_exception_propagates(self):
        with pytest.raises(ValueError):
            with trace_span('create_return', attributes={'sale_id': 's-1'}):
                raise ValueError('boom')

    def test_yields_span(self):
        with trace_span('create_return') as span:
            assert span is not None


@pytest.mark.django_db
class TestHealthChecks:

    def test_healthz(self, client):
        response = client.get('/healthz')

        assert response.status_code == 200
        assert response.json()['status'] == 'ok'

    def test_readyz(self, client):
        response = client.get('/readyz')

        assert response.status_code == 200
        assert response.json()['checks'] == {'database': True, 'stores_table': True}

    def test_readyz_database_down(self, client):
        with patch('apps.core.models.Store.objects.exists', side_effect=DatabaseError('gone')):
            response = client.get('/readyz')

        assert response.status_code == 503
        assert response.json()['status'] == 'not_ready'
