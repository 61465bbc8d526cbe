"""
What can still be returned from a sale.

Every sale line is measured in individual units (exact for both unit types):
sold = quantity expressed in individual units, returned = sum of every active
return line against it. The remainder is then offered in both units, rounding
down toward strips via available_quantity_in().
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.db.models import Sum

from apps.medicines.models import UnitTypeChoices

from .models import INACTIVE_RETURN_STATUSES, ReturnLine
from .units import available_quantity_in, to_individual_units


def _empty_by_unit():
    return {UnitTypeChoices.STRIP.value: 0, UnitTypeChoices.INDIVIDUAL.value: 0}


@dataclass
class LineAvailability:
    """Returnable quantity of one sale line."""
    sale_line: object
    returned_by_unit: Dict[str, int] = field(default_factory=_empty_by_unit)

    @property
    def units_per_strip(self) -> int:
        return self.sale_line.medicine.units_per_strip

    @property
    def original_unit_type(self) -> str:
        return self.sale_line.unit_type

    @property
    def alternate_unit_type(self) -> str:
        if self.original_unit_type == UnitTypeChoices.STRIP:
            return UnitTypeChoices.INDIVIDUAL.value
        return UnitTypeChoices.STRIP.value

    @property
    def sold_individual(self) -> int:
        return to_individual_units(self.sale_line.quantity, self.original_unit_type, self.units_per_strip)

    @property
    def returned_individual(self) -> int:
        k = self.units_per_strip
        return sum(
            to_individual_units(qty, unit, k) for unit, qty in self.returned_by_unit.items()
        )

    @property
    def remaining_individual(self) -> int:
        return max(0, self.sold_individual - self.returned_individual)

    def available_in(self, unit_type: str) -> int:
        """Quantity still returnable, expressed in ``unit_type`` (never negative)."""
        return available_quantity_in(
            self.remaining_individual,
            UnitTypeChoices.INDIVIDUAL,
            unit_type,
            self.units_per_strip,
        )

    @property
    def available_by_unit(self) -> Dict[str, int]:
        return {
            UnitTypeChoices.STRIP.value: self.available_in(UnitTypeChoices.STRIP),
            UnitTypeChoices.INDIVIDUAL.value: self.available_in(UnitTypeChoices.INDIVIDUAL),
        }

    @property
    def is_available(self) -> bool:
        return any(qty > 0 for qty in self.available_by_unit.values())

    def add_returned(self, quantity: int, unit_type: str):
        """Count ``quantity`` as returned (used to accumulate within one request)."""
        self.returned_by_unit[unit_type] = self.returned_by_unit.get(unit_type, 0) + quantity


def returned_quantities_by_line(sale, exclude_return_id=None) -> Dict[object, Dict[str, int]]:
    """
    Sum of returned quantities per sale line and unit type.

    Rejected and cancelled returns are ignored; ``exclude_return_id`` drops
    one more return (e.g. the one being re-validated).
    """
    lines = ReturnLine.objects.filter(
        original_sale_line__sale=sale
    ).exclude(
        return_record__status__in=INACTIVE_RETURN_STATUSES
    )
    if exclude_return_id is not None:
        lines = lines.exclude(return_record_id=exclude_return_id)

    totals = {}
    rows = lines.values('original_sale_line_id', 'unit_type').annotate(total=Sum('return_quantity'))
    for row in rows:
        by_unit = totals.setdefault(row['original_sale_line_id'], _empty_by_unit())
        by_unit[row['unit_type']] += row['total'] or 0
    return totals


def resolve_available_items(sale, exclude_return_id: Optional[object] = None) -> List[LineAvailability]:
    """Availability of every line of ``sale``, in sale line order."""
    returned = returned_quantities_by_line(sale, exclude_return_id=exclude_return_id)
    sale_lines = sale.lines.select_related('medicine').order_by('created_at', 'id')

    return [
        LineAvailability(
            sale_line=line,
            returned_by_unit=dict(returned.get(line.id, _empty_by_unit())),
        )
        for line in sale_lines
    ]
