"""
Tests for return eligibility and availability.

Business Rule: the returnable quantity of a sale line is tracked in
individual units across both unit types. Strip availability is
floor(remaining / units_per_strip).

Tests cover:
1. Partial return in individual units of a strip line (remaining 95 units / 9 strips)
2. Over-return blocked after a cross-unit return
3. Return window expiry and the manager approval threshold
4. Missing sale / sale line, fully returned sale
5. Several lines against one sale line add up within one request
6. Rejected returns no longer count against the sale
7. Expired medicines accepted with a warning
8. Malformed request lines
"""
import pytest
import uuid
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone
from prometheus_client import REGISTRY

from apps.medicines.models import Medicine, UnitTypeChoices
from apps.returns import services
from apps.returns.eligibility import validate_return_eligibility
from apps.returns.exceptions import (
    OverReturnRequested,
    ReturnNotFound,
    ReturnWindowExpired,
    SaleAlreadyFullyReturned,
    ValidationFailed,
)
from apps.returns.models import ReturnReasonChoices, RefundMethodChoices, ReturnStatusChoices


def _create(sale, lines, actor, **kwargs):
    return services.create_return(
        sale_id=sale.id,
        lines=lines,
        return_reason=ReturnReasonChoices.CUSTOMER_DISSATISFACTION,
        refund_method=RefundMethodChoices.CASH,
        created_by=actor,
        **kwargs
    )


def _sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0


@pytest.mark.django_db
class TestCrossUnitPartialReturn:
    """10 strips sold (10 tablets each), 5 tablets returned."""

    def test_individual_return_priced_from_strip_price(self, strip_sale, pharmacist, return_line):
        sale_line = strip_sale.lines.get()

        return_obj = _create(strip_sale, [return_line(sale_line, 5, UnitTypeChoices.INDIVIDUAL)], pharmacist)

        line = return_obj.lines.get()
        assert line.return_amount == Decimal('10.00')
        assert return_obj.subtotal == Decimal('10.00')
        assert return_obj.total_return_amount == Decimal('10.00')

    def test_remaining_availability_after_partial_return(self, strip_sale, pharmacist, return_line):
        sale_line = strip_sale.lines.get()
        _create(strip_sale, [return_line(sale_line, 5, UnitTypeChoices.INDIVIDUAL)], pharmacist)

        availability = services.list_available_for_return(strip_sale.id)

        assert len(availability.items) == 1
        item = availability.items[0]
        assert item.remaining_individual == 95
        assert item.available_by_unit == {'strip': 9, 'individual': 95}
        assert item.returned_by_unit == {'strip': 0, 'individual': 5}

    def test_full_strip_return_blocked_after_partial_return(self, strip_sale, pharmacist, return_line):
        """Only 9 strips remain once 5 tablets are back."""
        sale_line = strip_sale.lines.get()
        _create(strip_sale, [return_line(sale_line, 5, UnitTypeChoices.INDIVIDUAL)], pharmacist)
        blocked_before = _sample('returns_over_return_blocked_total', {'unit_type': 'strip'})

        with pytest.raises(OverReturnRequested) as exc_info:
            _create(strip_sale, [return_line(sale_line, 10, UnitTypeChoices.STRIP)], pharmacist)

        error = exc_info.value
        assert error.details['medicine_name'] == 'Paracetamol 500mg'
        assert error.details['requested_quantity'] == 10
        assert error.details['unit_type'] == 'strip'
        assert error.details['available_quantity'] == 9
        assert _sample('returns_over_return_blocked_total', {'unit_type': 'strip'}) == blocked_before + 1

    def test_nine_strips_still_accepted(self, strip_sale, pharmacist, return_line):
        sale_line = strip_sale.lines.get()
        _create(strip_sale, [return_line(sale_line, 5, UnitTypeChoices.INDIVIDUAL)], pharmacist)

        return_obj = _create(strip_sale, [return_line(sale_line, 9, UnitTypeChoices.STRIP)], pharmacist)

        assert return_obj.subtotal == Decimal('180.00')
        remaining = services.list_available_for_return(strip_sale.id).items[0]
        assert remaining.available_by_unit == {'strip': 0, 'individual': 5}


@pytest.mark.django_db
class TestReturnWindow:

    def test_sale_older_than_window_is_rejected(self, make_sale, paracetamol, policy, return_line):
        sale = make_sale([(paracetamol, 2, UnitTypeChoices.STRIP, Decimal('20.00'))], days_ago=31)

        with pytest.raises(ReturnWindowExpired) as exc_info:
            validate_return_eligibility(
                sale.id, [return_line(sale.lines.get(), 1, UnitTypeChoices.STRIP)], policy=policy
            )

        assert exc_info.value.details['sale_age_days'] == 31
        assert exc_info.value.details['return_window_days'] == 30

    def test_last_day_of_window_is_accepted(self, make_sale, paracetamol, policy, return_line):
        sale = make_sale([(paracetamol, 2, UnitTypeChoices.STRIP, Decimal('20.00'))], days_ago=30)

        result = validate_return_eligibility(
            sale.id, [return_line(sale.lines.get(), 1, UnitTypeChoices.STRIP)], policy=policy
        )

        assert result.sale_age_days == 30
        assert result.requires_manager_approval is True

    def test_approval_threshold(self, make_sale, paracetamol, policy, return_line):
        recent = make_sale([(paracetamol, 2, UnitTypeChoices.STRIP, Decimal('20.00'))], days_ago=7)
        older = make_sale([(paracetamol, 2, UnitTypeChoices.STRIP, Decimal('20.00'))], days_ago=8)

        recent_result = validate_return_eligibility(
            recent.id, [return_line(recent.lines.get(), 1, UnitTypeChoices.STRIP)], policy=policy
        )
        older_result = validate_return_eligibility(
            older.id, [return_line(older.lines.get(), 1, UnitTypeChoices.STRIP)], policy=policy
        )

        assert recent_result.requires_manager_approval is False
        assert older_result.requires_manager_approval is True
        assert any('manager approval' in w for w in older_result.warnings)

    def test_approval_flag_copied_to_return(self, make_sale, paracetamol, pharmacist, return_line):
        sale = make_sale([(paracetamol, 2, UnitTypeChoices.STRIP, Decimal('20.00'))], days_ago=10)

        return_obj = _create(sale, [return_line(sale.lines.get(), 1, UnitTypeChoices.STRIP)], pharmacist)

        assert return_obj.approval_required is True
        assert return_obj.status == ReturnStatusChoices.PENDING

    def test_custom_window(self, make_sale, paracetamol, policy, return_line):
        sale = make_sale([(paracetamol, 2, UnitTypeChoices.STRIP, Decimal('20.00'))], days_ago=10)
        strict = policy.with_overrides(return_window_days=5)

        with pytest.raises(ReturnWindowExpired):
            validate_return_eligibility(
                sale.id, [return_line(sale.lines.get(), 1, UnitTypeChoices.STRIP)], policy=strict
            )


@pytest.mark.django_db
class TestEligibilityErrors:

    def test_unknown_sale(self, policy):
        with pytest.raises(ReturnNotFound):
            validate_return_eligibility(
                uuid.uuid4(),
                [{'sale_line_id': str(uuid.uuid4()), 'return_quantity': 1, 'unit_type': 'strip'}],
                policy=policy,
            )

    def test_sale_line_from_another_sale(self, strip_sale, mixed_sale, policy, return_line):
        foreign_line = mixed_sale.lines.first()

        with pytest.raises(ReturnNotFound) as exc_info:
            validate_return_eligibility(
                strip_sale.id, [return_line(foreign_line, 1, UnitTypeChoices.STRIP)], policy=policy
            )

        assert exc_info.value.details['sale_line_id'] == str(foreign_line.id)

    def test_fully_returned_sale(self, strip_sale, pharmacist, return_line):
        sale_line = strip_sale.lines.get()
        _create(strip_sale, [return_line(sale_line, 10, UnitTypeChoices.STRIP)], pharmacist)

        with pytest.raises(SaleAlreadyFullyReturned):
            _create(strip_sale, [return_line(sale_line, 1, UnitTypeChoices.INDIVIDUAL)], pharmacist)

    def test_fully_returned_sale_has_no_available_items(self, strip_sale, pharmacist, return_line):
        _create(strip_sale, [return_line(strip_sale.lines.get(), 10, UnitTypeChoices.STRIP)], pharmacist)

        availability = services.list_available_for_return(strip_sale.id)

        assert availability.sale.is_returned is True
        assert availability.items == []

    @pytest.mark.parametrize('quantity', [0, -1, 1.5, 'abc', True, None])
    def test_invalid_quantity(self, strip_sale, policy, return_line, quantity):
        line = return_line(strip_sale.lines.get(), quantity, UnitTypeChoices.STRIP)

        with pytest.raises(ValidationFailed):
            validate_return_eligibility(strip_sale.id, [line], policy=policy)

    def test_invalid_unit_type(self, strip_sale, policy, return_line):
        line = return_line(strip_sale.lines.get(), 1, 'box')

        with pytest.raises(ValidationFailed, match='unit type'):
            validate_return_eligibility(strip_sale.id, [line], policy=policy)

    def test_empty_request(self, strip_sale, policy):
        with pytest.raises(ValidationFailed):
            validate_return_eligibility(strip_sale.id, [], policy=policy)


@pytest.mark.django_db
class TestRequestAccumulation:
    """Lines of one request against the same sale line add up."""

    def test_second_line_sees_first_line(self, strip_sale, policy, return_line):
        sale_line = strip_sale.lines.get()
        lines = [
            return_line(sale_line, 6, UnitTypeChoices.STRIP),
            return_line(sale_line, 5, UnitTypeChoices.STRIP),
        ]

        with pytest.raises(OverReturnRequested) as exc_info:
            validate_return_eligibility(strip_sale.id, lines, policy=policy)

        assert exc_info.value.details['available_quantity'] == 4

    def test_mixed_units_within_limit(self, strip_sale, policy, return_line):
        sale_line = strip_sale.lines.get()
        lines = [
            return_line(sale_line, 9, UnitTypeChoices.STRIP),
            return_line(sale_line, 10, UnitTypeChoices.INDIVIDUAL),
        ]

        result = validate_return_eligibility(strip_sale.id, lines, policy=policy)

        assert result.availability[sale_line.id].remaining_individual == 0


@pytest.mark.django_db
class TestInactiveReturnsIgnored:

    def test_rejected_return_frees_quantity(self, strip_sale, pharmacist, manager, return_line):
        sale_line = strip_sale.lines.get()
        first = _create(strip_sale, [return_line(sale_line, 8, UnitTypeChoices.STRIP)], pharmacist)

        services.update_return_status(first.id, ReturnStatusChoices.REJECTED, user=manager)

        item = services.list_available_for_return(strip_sale.id).items[0]
        assert item.available_by_unit['strip'] == 10

    def test_cancelled_return_frees_quantity(self, strip_sale, pharmacist, return_line):
        sale_line = strip_sale.lines.get()
        first = _create(strip_sale, [return_line(sale_line, 4, UnitTypeChoices.STRIP)], pharmacist)

        services.update_return_status(first.id, ReturnStatusChoices.CANCELLED, user=pharmacist)

        again = _create(strip_sale, [return_line(sale_line, 10, UnitTypeChoices.STRIP)], pharmacist)
        assert again.subtotal == Decimal('200.00')


@pytest.mark.django_db
class TestExpiredMedicine:

    @pytest.fixture
    def expired_medicine(self, store):
        return Medicine.objects.create(
            store=store,
            name='Cough Syrup',
            units_per_strip=1,
            strip_price=Decimal('8.00'),
            individual_price=Decimal('8.00'),
            expiry_date=timezone.now().date() - timedelta(days=3),
        )

    def test_expired_medicine_accepted_with_warning(self, make_sale, expired_medicine, policy, return_line):
        sale = make_sale([(expired_medicine, 2, UnitTypeChoices.STRIP, Decimal('8.00'))])

        result = validate_return_eligibility(
            sale.id, [return_line(sale.lines.get(), 1, UnitTypeChoices.STRIP)], policy=policy
        )

        assert len(result.warnings) == 1
        assert 'Cough Syrup expired on' in result.warnings[0]

    def test_expired_batch_of_fresh_medicine(self, strip_sale, policy, return_line):
        expired_on = timezone.now().date() - timedelta(days=1)
        strip_sale.lines.update(batch_expiry_date=expired_on)
        sale_line = strip_sale.lines.get()

        result = validate_return_eligibility(
            strip_sale.id, [return_line(sale_line, 1, UnitTypeChoices.STRIP)], policy=policy
        )

        assert result.warnings == [f'Paracetamol 500mg expired on {expired_on.isoformat()}.']

    def test_batch_date_takes_precedence(self, expired_medicine):
        today = timezone.now().date()

        assert expired_medicine.is_expired(today) is True
        assert expired_medicine.is_expired(today, batch_expiry_date=today + timedelta(days=30)) is False


@pytest.mark.django_db
class TestValidateEligibilityDryRun:

    def test_dry_run_writes_nothing(self, mixed_sale, paracetamol, amoxicillin, policy, return_line):
        strip_line = mixed_sale.lines.get(medicine=paracetamol)
        individual_line = mixed_sale.lines.get(medicine=amoxicillin)

        report = services.validate_eligibility(
            mixed_sale.id,
            [
                return_line(strip_line, 3, UnitTypeChoices.INDIVIDUAL),
                return_line(individual_line, 4, UnitTypeChoices.INDIVIDUAL),
            ],
            policy=policy,
        )

        # 3 * 2.00 + 4 * 3.50
        assert report.estimated_subtotal == Decimal('20.00')
        assert mixed_sale.returns.count() == 0
