"""
Tests for return assembly, totals and the Return audit record.

Business Rule: total_return_amount = subtotal + tax_adjustment - discount_adjustment,
computed in one place (calculate_return_totals).

Tests cover:
1. Totals with adjustments, negative adjustments, discount above value
2. Line snapshot of the sale line (quantities, unit, price, batch)
3. Per-line restore flag defaulting to the return-level flag
4. Return number immutability and no deletion
5. Period metadata stamped on first save
6. Invalid reason / refund method
"""
import pytest
from decimal import Decimal
from types import SimpleNamespace

from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.medicines.models import UnitTypeChoices
from apps.returns import services
from apps.returns.builder import calculate_return_totals
from apps.returns.exceptions import ValidationFailed
from apps.returns.models import (
    ItemReturnReasonChoices,
    RefundMethodChoices,
    RestorationStatusChoices,
    Return,
    ReturnReasonChoices,
)


def _lines(*amounts):
    return [SimpleNamespace(return_amount=Decimal(amount)) for amount in amounts]


class TestCalculateReturnTotals:

    def test_subtotal_is_sum_of_lines(self):
        totals = calculate_return_totals(_lines('10.00', '52.50'))

        assert totals.subtotal == Decimal('62.50')
        assert totals.total == Decimal('62.50')

    def test_adjustments(self):
        totals = calculate_return_totals(_lines('100.00'), Decimal('5.25'), Decimal('10.00'))

        assert totals.tax_adjustment == Decimal('5.25')
        assert totals.discount_adjustment == Decimal('10.00')
        assert totals.total == Decimal('95.25')

    def test_negative_adjustment_rejected(self):
        with pytest.raises(ValidationFailed, match='cannot be negative'):
            calculate_return_totals(_lines('10.00'), Decimal('-1.00'))

    def test_discount_cannot_exceed_value(self):
        with pytest.raises(ValidationFailed, match='exceeds'):
            calculate_return_totals(_lines('10.00'), Decimal('0.00'), Decimal('10.01'))

    def test_no_lines(self):
        assert calculate_return_totals([]).total == Decimal('0.00')


@pytest.mark.django_db
class TestReturnAssembly:

    @pytest.fixture
    def return_obj(self, mixed_sale, paracetamol, amoxicillin, pharmacist, return_line):
        return services.create_return(
            sale_id=mixed_sale.id,
            lines=[
                return_line(
                    mixed_sale.lines.get(medicine=paracetamol), 1, UnitTypeChoices.STRIP,
                    item_return_reason=ItemReturnReasonChoices.DEFECTIVE_PRODUCT,
                ),
                return_line(
                    mixed_sale.lines.get(medicine=amoxicillin), 6, UnitTypeChoices.INDIVIDUAL,
                    restore_to_inventory=False,
                ),
            ],
            return_reason=ReturnReasonChoices.DEFECTIVE_PRODUCT,
            refund_method=RefundMethodChoices.CARD,
            created_by=pharmacist,
            tax_adjustment=Decimal('2.00'),
            discount_adjustment=Decimal('1.00'),
            notes='Box was opened',
        )

    def test_totals(self, return_obj):
        # 1 strip @ 20.00 + 6 capsules @ 3.50
        assert return_obj.subtotal == Decimal('41.00')
        assert return_obj.total_return_amount == Decimal('42.00')

    def test_header_copied_from_sale(self, return_obj, mixed_sale, pharmacist):
        assert return_obj.store_id == mixed_sale.store_id
        assert return_obj.customer_id == mixed_sale.customer_id
        assert return_obj.created_by == pharmacist
        assert return_obj.refund_method == RefundMethodChoices.CARD

    def test_line_snapshot(self, return_obj, paracetamol):
        line = return_obj.lines.get(medicine=paracetamol)

        assert line.original_quantity == 2
        assert line.original_unit_type == UnitTypeChoices.STRIP
        assert line.unit_price == Decimal('20.00')
        assert line.return_amount == Decimal('20.00')
        assert line.batch_number == 'B-PARA-01'
        assert line.batch_expiry_date == paracetamol.expiry_date
        assert line.item_return_reason == ItemReturnReasonChoices.DEFECTIVE_PRODUCT

    def test_item_reason_defaults_to_customer_request(self, return_obj, amoxicillin):
        line = return_obj.lines.get(medicine=amoxicillin)
        assert line.item_return_reason == ItemReturnReasonChoices.CUSTOMER_REQUEST

    def test_per_line_restore_flag(self, return_obj, paracetamol, amoxicillin):
        restored = return_obj.lines.get(medicine=paracetamol)
        kept = return_obj.lines.get(medicine=amoxicillin)

        assert restored.restore_to_inventory is True
        assert restored.inventory_restored is True
        assert kept.restore_to_inventory is False
        assert kept.inventory_restored is False
        assert return_obj.inventory_restoration_status == RestorationStatusChoices.COMPLETED

    def test_recalculate_totals_matches(self, return_obj):
        totals = return_obj.recalculate_totals(save=False)
        assert totals.total == return_obj.total_return_amount

    def test_derived_values(self, return_obj):
        assert return_obj.total_items == 7
        assert return_obj.return_age == 0
        assert return_obj.pending_restoration_count == 0


@pytest.mark.django_db
class TestReturnAuditRecord:

    @pytest.fixture
    def return_obj(self, strip_sale, pharmacist, return_line):
        return services.create_return(
            sale_id=strip_sale.id,
            lines=[return_line(strip_sale.lines.get(), 2, UnitTypeChoices.STRIP)],
            return_reason=ReturnReasonChoices.BILLING_ERROR,
            refund_method=RefundMethodChoices.CASH,
            created_by=pharmacist,
        )

    def test_return_number_cannot_change(self, return_obj):
        reloaded = Return.objects.get(pk=return_obj.pk)
        reloaded.return_number = 'RET-XXX-0000-9999'

        with pytest.raises(ValidationFailed, match='immutable'):
            reloaded.save()

    def test_returns_cannot_be_deleted(self, return_obj):
        with pytest.raises(ValidationError):
            return_obj.delete()
        assert Return.objects.filter(pk=return_obj.pk).exists()

    def test_period_metadata(self, return_obj):
        assert return_obj.fiscal_year == str(timezone.localtime(return_obj.return_date).year)
        assert return_obj.quarter.startswith('Q')
        assert return_obj.month

    def test_total_mismatch_rejected(self, return_obj):
        return_obj.total_return_amount = Decimal('1.00')

        with pytest.raises(ValidationError):
            return_obj.save()


@pytest.mark.django_db
class TestInvalidChoices:

    def test_unknown_return_reason(self, strip_sale, pharmacist, return_line):
        with pytest.raises(ValidationFailed, match='return reason'):
            services.create_return(
                sale_id=strip_sale.id,
                lines=[return_line(strip_sale.lines.get(), 1, UnitTypeChoices.STRIP)],
                return_reason='changed_mind',
                refund_method=RefundMethodChoices.CASH,
                created_by=pharmacist,
            )

    def test_unknown_refund_method(self, strip_sale, pharmacist, return_line):
        with pytest.raises(ValidationFailed, match='refund method'):
            services.create_return(
                sale_id=strip_sale.id,
                lines=[return_line(strip_sale.lines.get(), 1, UnitTypeChoices.STRIP)],
                return_reason=ReturnReasonChoices.OTHER,
                refund_method='cheque',
                created_by=pharmacist,
            )
        assert strip_sale.returns.count() == 0
