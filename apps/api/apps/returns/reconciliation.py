"""
Sale completion reconciliation.

A sale becomes fully returned once every line's returned quantity, expressed
in the line's original unit, reaches the quantity sold. Each return line is
converted on its own: individual units returned against a strip line count
as ceil(units / units_per_strip) strips for that return line.

The flag only moves one way: a sale is never marked un-returned.
"""
from collections import defaultdict

from apps.core.observability import metrics
from apps.core.observability.events import log_domain_event
from apps.sales.models import SaleStatusChoices

from .models import INACTIVE_RETURN_STATUSES, ReturnLine
from .units import consumed_quantity_in


def returned_in_original_unit(sale_line, return_lines) -> int:
    """Returned quantity of ``sale_line`` in its own unit (ceil per return line)."""
    original = sale_line.unit_type
    k = sale_line.medicine.units_per_strip
    return sum(
        consumed_quantity_in(line.return_quantity, line.unit_type, original, k)
        for line in return_lines
    )


def _active_return_lines_by_sale_line(sale):
    lines = ReturnLine.objects.filter(
        original_sale_line__sale=sale
    ).exclude(
        return_record__status__in=INACTIVE_RETURN_STATUSES
    ).only('original_sale_line_id', 'return_quantity', 'unit_type')

    grouped = defaultdict(list)
    for line in lines:
        grouped[line.original_sale_line_id].append(line)
    return grouped


def is_sale_fully_returned(sale) -> bool:
    returned = _active_return_lines_by_sale_line(sale)
    sale_lines = list(sale.lines.select_related('medicine'))
    if not sale_lines:
        return False
    return all(
        returned_in_original_unit(line, returned.get(line.id, [])) >= line.quantity
        for line in sale_lines
    )


def reconcile_sale_status(sale) -> bool:
    """
    Mark ``sale`` returned when every line is fully returned.

    Returns True when the sale is (now or already) fully returned.
    """
    if sale.is_returned:
        return True

    if not is_sale_fully_returned(sale):
        return False

    sale.is_returned = True
    sale.status = SaleStatusChoices.RETURNED
    sale.save(update_fields=['is_returned', 'status', 'updated_at'], skip_validation=True)

    metrics.sales_marked_returned_total.inc()
    log_domain_event(
        'sale_marked_returned',
        entity_type='Sale',
        entity_id=str(sale.id),
        entity_ids={'sale_id': str(sale.id), 'store_id': str(sale.store_id)},
    )
    return True
