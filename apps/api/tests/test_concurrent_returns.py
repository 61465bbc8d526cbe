"""
Tests for concurrent returns against one sale.

Business Rule: the sale row is locked (SELECT ... FOR UPDATE) before
availability is computed, so two returns racing for the same quantity
are serialized: exactly one succeeds and the other is refused.

Tests cover:
1. Sequential requests for 6 + 6 of a 10 strip sale
2. Threaded requests (PostgreSQL only; SQLite has no row locks)
"""
import threading
import pytest
from decimal import Decimal

from django.db import connection, connections

from apps.medicines.models import UnitTypeChoices
from apps.returns import services
from apps.returns.exceptions import OverReturnRequested
from apps.returns.models import RefundMethodChoices, Return, ReturnReasonChoices


def _request(sale, actor):
    return services.create_return(
        sale_id=sale.id,
        lines=[{
            'sale_line_id': str(sale.lines.get().id),
            'return_quantity': 6,
            'unit_type': UnitTypeChoices.STRIP,
        }],
        return_reason=ReturnReasonChoices.DUPLICATE_PURCHASE,
        refund_method=RefundMethodChoices.CASH,
        created_by=actor,
    )


@pytest.mark.django_db
class TestSequentialCompetingReturns:

    def test_second_request_refused(self, strip_sale, pharmacist, manager):
        _request(strip_sale, pharmacist)

        with pytest.raises(OverReturnRequested) as exc_info:
            _request(strip_sale, manager)

        assert exc_info.value.details['available_quantity'] == 4
        assert Return.objects.filter(original_sale=strip_sale).count() == 1


@pytest.mark.skipif(
    connection.vendor != 'postgresql',
    reason='Row locking needs PostgreSQL (set DATABASE_ENGINE)'
)
@pytest.mark.django_db(transaction=True)
class TestThreadedCompetingReturns:

    def test_exactly_one_succeeds(self, strip_sale, pharmacist, manager, paracetamol):
        barrier = threading.Barrier(2)
        outcomes = []

        def worker(actor):
            try:
                barrier.wait(timeout=5)
                _request(strip_sale, actor)
                outcomes.append('created')
            except OverReturnRequested:
                outcomes.append('refused')
            finally:
                connections.close_all()

        threads = [threading.Thread(target=worker, args=(actor,)) for actor in (pharmacist, manager)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == ['created', 'refused']
        assert Return.objects.filter(original_sale=strip_sale).count() == 1
        paracetamol.refresh_from_db()
        assert paracetamol.strip_stock == 56
        returned = Return.objects.get(original_sale=strip_sale)
        assert returned.total_return_amount == Decimal('120.00')
