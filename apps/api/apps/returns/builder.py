"""
Return record assembly and the single totals computation.

calculate_return_totals() is the only place return totals are derived;
builder code and Return.recalculate_totals() both call it.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from django.utils import timezone

from .eligibility import EligibilityResult
from .exceptions import ValidationFailed
from .models import (
    ItemReturnReasonChoices,
    RefundMethodChoices,
    RestorationStatusChoices,
    Return,
    ReturnLine,
    ReturnReasonChoices,
    ReturnStatusChoices,
)
from .units import convert_amount, quantize_amount

ZERO = Decimal('0.00')


@dataclass(frozen=True)
class ReturnTotals:
    subtotal: Decimal
    tax_adjustment: Decimal
    discount_adjustment: Decimal
    total: Decimal


def calculate_return_totals(lines: Iterable, tax_adjustment=ZERO, discount_adjustment=ZERO) -> ReturnTotals:
    """
    subtotal = sum of line return amounts; total = subtotal + tax - discount.

    Line amounts are already rounded to cents; adjustments are rounded here.
    """
    subtotal = sum((quantize_amount(line.return_amount) for line in lines), ZERO)
    tax = quantize_amount(tax_adjustment or ZERO)
    discount = quantize_amount(discount_adjustment or ZERO)

    if tax < 0 or discount < 0:
        raise ValidationFailed('Tax and discount adjustments cannot be negative.')

    total = subtotal + tax - discount
    if total < 0:
        raise ValidationFailed(
            f'Discount adjustment {discount} exceeds the return value {subtotal + tax}.'
        )
    return ReturnTotals(subtotal=subtotal, tax_adjustment=tax, discount_adjustment=discount, total=total)


def _check_choice(value, choices, label):
    if value not in choices.values:
        raise ValidationFailed(f'Invalid {label} {value!r}. Expected one of: {", ".join(choices.values)}.')


def prepare_return_lines(eligibility: EligibilityResult, restore_inventory: bool = True) -> List[ReturnLine]:
    """
    Unsaved ReturnLine objects for a validated request.

    return_amount is priced from the original sale line, converted into the
    returned unit. Quantities, unit and batch details are copied for audit.
    """
    lines = []
    for requested in eligibility.lines:
        sale_line = requested.sale_line
        medicine = sale_line.medicine

        item_reason = requested.item_return_reason or ItemReturnReasonChoices.CUSTOMER_REQUEST
        _check_choice(item_reason, ItemReturnReasonChoices, 'item return reason')

        restore = requested.restore_to_inventory
        if restore is None:
            restore = restore_inventory

        lines.append(ReturnLine(
            original_sale_line=sale_line,
            medicine=medicine,
            return_quantity=requested.quantity,
            unit_type=requested.unit_type,
            original_quantity=sale_line.quantity,
            original_unit_type=sale_line.unit_type,
            unit_price=sale_line.unit_price,
            return_amount=convert_amount(
                requested.quantity,
                sale_line.unit_type,
                requested.unit_type,
                sale_line.unit_price,
                medicine.units_per_strip,
            ),
            batch_number=sale_line.batch_number,
            batch_expiry_date=sale_line.batch_expiry_date,
            batch_manufacturing_date=sale_line.batch_manufacturing_date,
            item_return_reason=item_reason,
            restore_to_inventory=bool(restore),
        ))
    return lines


def build_return(
    eligibility: EligibilityResult,
    return_number: str,
    return_reason: str,
    refund_method: str,
    restore_inventory: bool = True,
    lines: Optional[List[ReturnLine]] = None,
    return_reason_details: str = '',
    notes: str = '',
    tax_adjustment=ZERO,
    discount_adjustment=ZERO,
    created_by=None,
    now=None,
) -> Return:
    """
    Persist a pending Return with its lines.

    Callers run this inside the same transaction as the eligibility check.
    """
    _check_choice(return_reason, ReturnReasonChoices, 'return reason')
    _check_choice(refund_method, RefundMethodChoices, 'refund method')

    if lines is None:
        lines = prepare_return_lines(eligibility, restore_inventory)
    totals = calculate_return_totals(lines, tax_adjustment, discount_adjustment)

    sale = eligibility.sale
    return_obj = Return(
        store_id=sale.store_id,
        original_sale=sale,
        customer_id=sale.customer_id,
        return_number=return_number,
        subtotal=totals.subtotal,
        tax_adjustment=totals.tax_adjustment,
        discount_adjustment=totals.discount_adjustment,
        total_return_amount=totals.total,
        return_reason=return_reason,
        return_reason_details=return_reason_details or '',
        status=ReturnStatusChoices.PENDING,
        approval_required=eligibility.requires_manager_approval,
        refund_method=refund_method,
        restore_inventory=restore_inventory,
        inventory_restoration_status=RestorationStatusChoices.PENDING,
        notes=notes or '',
        return_date=now or timezone.now(),
        created_by=created_by,
        updated_by=created_by,
    )
    return_obj.save()

    for line in lines:
        line.return_record = return_obj
        line.save()

    return return_obj
