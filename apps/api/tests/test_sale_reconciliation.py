"""
Tests for sale completion reconciliation.

Business Rule: a sale is marked returned (is_returned=True, status=returned)
once every line's returned quantity, counted in the line's own unit, reaches
the quantity sold. Each return line of individual units against a strip line
counts as ceil(units / units_per_strip) strips on its own.

Tests cover:
1. Full return in the sale's unit marks the sale
2. Partial return leaves the sale open
3. Multi-line sale: marked only when every line is covered
4. Cross-unit ceil counting, applied to each return line
5. Rejected returns do not count; the flag never reverts
"""
import pytest
from decimal import Decimal
from types import SimpleNamespace

from apps.medicines.models import UnitTypeChoices
from apps.returns import services
from apps.returns.models import RefundMethodChoices, ReturnReasonChoices, ReturnStatusChoices
from apps.returns.reconciliation import (
    is_sale_fully_returned,
    reconcile_sale_status,
    returned_in_original_unit,
)
from apps.sales.models import Sale, SaleStatusChoices


def _returned(quantity, unit_type):
    return SimpleNamespace(return_quantity=quantity, unit_type=unit_type)


def _file(sale, lines, actor):
    return services.create_return(
        sale_id=sale.id,
        lines=lines,
        return_reason=ReturnReasonChoices.DUPLICATE_PURCHASE,
        refund_method=RefundMethodChoices.STORE_CREDIT,
        created_by=actor,
    )


@pytest.mark.django_db
class TestReturnedInOriginalUnit:

    def test_individual_units_against_strip_line_round_up(self, strip_sale):
        sale_line = strip_sale.lines.get()

        assert returned_in_original_unit(sale_line, [_returned(5, 'individual')]) == 1
        assert returned_in_original_unit(sale_line, [_returned(10, 'individual')]) == 1
        assert returned_in_original_unit(sale_line, [_returned(11, 'individual')]) == 2
        assert returned_in_original_unit(
            sale_line, [_returned(3, 'strip'), _returned(5, 'individual')]
        ) == 4

    def test_ceil_applies_to_each_return_line(self, strip_sale):
        sale_line = strip_sale.lines.get()

        # ceil(5 / 10) + ceil(5 / 10), not ceil(10 / 10)
        assert returned_in_original_unit(
            sale_line, [_returned(5, 'individual'), _returned(5, 'individual')]
        ) == 2

    def test_strips_against_individual_line(self, mixed_sale, amoxicillin):
        sale_line = mixed_sale.lines.get(medicine=amoxicillin)

        assert returned_in_original_unit(sale_line, [_returned(7, 'individual')]) == 7

    def test_no_returns(self, strip_sale):
        assert returned_in_original_unit(strip_sale.lines.get(), []) == 0


@pytest.mark.django_db
class TestSaleMarkedReturned:

    def test_full_return_marks_sale(self, strip_sale, pharmacist, return_line):
        _file(strip_sale, [return_line(strip_sale.lines.get(), 10, UnitTypeChoices.STRIP)], pharmacist)

        strip_sale.refresh_from_db()
        assert strip_sale.is_returned is True
        assert strip_sale.status == SaleStatusChoices.RETURNED

    def test_partial_return_keeps_sale_open(self, strip_sale, pharmacist, return_line):
        _file(strip_sale, [return_line(strip_sale.lines.get(), 9, UnitTypeChoices.STRIP)], pharmacist)

        strip_sale.refresh_from_db()
        assert strip_sale.is_returned is False
        assert strip_sale.status == SaleStatusChoices.COMPLETED

    def test_returns_across_units_complete_the_sale(self, strip_sale, pharmacist, return_line):
        sale_line = strip_sale.lines.get()
        _file(strip_sale, [return_line(sale_line, 95, UnitTypeChoices.INDIVIDUAL)], pharmacist)
        strip_sale.refresh_from_db()
        # ceil(95 / 10) = 10 strips
        assert strip_sale.is_returned is True

    def test_separate_individual_returns_each_round_up(self, strip_sale, pharmacist, return_line):
        sale_line = strip_sale.lines.get()
        _file(strip_sale, [return_line(sale_line, 8, UnitTypeChoices.STRIP)], pharmacist)
        _file(strip_sale, [return_line(sale_line, 5, UnitTypeChoices.INDIVIDUAL)], pharmacist)
        strip_sale.refresh_from_db()
        # 8 + ceil(5 / 10) = 9 strips
        assert strip_sale.is_returned is False

        _file(strip_sale, [return_line(sale_line, 5, UnitTypeChoices.INDIVIDUAL)], pharmacist)

        strip_sale.refresh_from_db()
        # 8 + ceil(5 / 10) + ceil(5 / 10) = 10 strips
        assert strip_sale.is_returned is True
        assert strip_sale.status == SaleStatusChoices.RETURNED

    def test_every_line_must_be_covered(self, mixed_sale, paracetamol, amoxicillin, pharmacist, return_line):
        _file(mixed_sale, [
            return_line(mixed_sale.lines.get(medicine=paracetamol), 2, UnitTypeChoices.STRIP),
        ], pharmacist)
        mixed_sale.refresh_from_db()
        assert mixed_sale.is_returned is False

        _file(mixed_sale, [
            return_line(mixed_sale.lines.get(medicine=amoxicillin), 12, UnitTypeChoices.INDIVIDUAL),
        ], pharmacist)
        mixed_sale.refresh_from_db()
        assert mixed_sale.is_returned is True

    def test_sale_total_untouched(self, strip_sale, pharmacist, return_line):
        total_before = strip_sale.total_amount

        _file(strip_sale, [return_line(strip_sale.lines.get(), 10, UnitTypeChoices.STRIP)], pharmacist)

        strip_sale.refresh_from_db()
        assert strip_sale.total_amount == total_before == Decimal('200.00')


@pytest.mark.django_db
class TestReconcileRules:

    def test_rejected_returns_do_not_count(self, strip_sale, pharmacist, manager, return_line):
        return_obj = _file(
            strip_sale, [return_line(strip_sale.lines.get(), 10, UnitTypeChoices.STRIP)], pharmacist
        )
        services.update_return_status(return_obj.id, ReturnStatusChoices.REJECTED, user=manager)

        assert is_sale_fully_returned(strip_sale) is False

    def test_flag_never_reverts(self, strip_sale, pharmacist, manager, return_line):
        return_obj = _file(
            strip_sale, [return_line(strip_sale.lines.get(), 10, UnitTypeChoices.STRIP)], pharmacist
        )
        services.update_return_status(return_obj.id, ReturnStatusChoices.CANCELLED, user=manager)

        strip_sale.refresh_from_db()
        assert strip_sale.is_returned is True
        assert reconcile_sale_status(strip_sale) is True

    def test_sale_without_lines_is_not_returned(self, store):
        sale = Sale.objects.create(store=store, sale_number='INV-EMPTY')

        assert reconcile_sale_status(sale) is False
        sale.refresh_from_db()
        assert sale.is_returned is False
