"""
Strip/individual unit conversions for quantities and money.

Two rounding directions exist when individual units are expressed in strips,
and each has its own function so call sites show which one they mean:

- available_quantity_in(): floor. "How many strips can still be handed back"
  must never over-claim what remains.
- consumed_quantity_in(): ceil. "How many strips of the original line does
  this individual-unit return account for" in the sale-completion aggregate.

Strips always convert to individual units exactly (qty * units_per_strip).
"""
from decimal import Decimal, ROUND_HALF_UP

from apps.medicines.models import UnitTypeChoices

CENT = Decimal('0.01')

UNIT_TYPES = (UnitTypeChoices.STRIP, UnitTypeChoices.INDIVIDUAL)


def _check(unit_type, units_per_strip):
    if unit_type not in UNIT_TYPES:
        raise ValueError(f'Unknown unit type: {unit_type}')
    if units_per_strip < 1:
        raise ValueError(f'units_per_strip must be >= 1, got {units_per_strip}')


def quantize_amount(amount) -> Decimal:
    """Round a money amount to 2 decimal places (half up)."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_individual_units(quantity: int, unit_type: str, units_per_strip: int) -> int:
    """Express ``quantity`` of ``unit_type`` in individual units (exact)."""
    _check(unit_type, units_per_strip)
    if unit_type == UnitTypeChoices.STRIP:
        return quantity * units_per_strip
    return quantity


def available_quantity_in(quantity: int, from_unit: str, to_unit: str, units_per_strip: int) -> int:
    """
    Convert an available quantity, rounding down.

    Individual -> strip uses floor: 95 individual units at 10 per strip
    are 9 returnable strips.
    """
    _check(from_unit, units_per_strip)
    _check(to_unit, units_per_strip)
    if from_unit == to_unit:
        return quantity
    if from_unit == UnitTypeChoices.STRIP:
        return quantity * units_per_strip
    return quantity // units_per_strip


def consumed_quantity_in(quantity: int, from_unit: str, to_unit: str, units_per_strip: int) -> int:
    """
    Convert an already-returned quantity, rounding up.

    Individual -> strip uses ceil: 5 individual units returned against a
    strip line account for 1 strip.
    """
    _check(from_unit, units_per_strip)
    _check(to_unit, units_per_strip)
    if from_unit == to_unit:
        return quantity
    if from_unit == UnitTypeChoices.STRIP:
        return quantity * units_per_strip
    return -(-quantity // units_per_strip)


def convert_amount(quantity, from_unit: str, to_unit: str, unit_price, units_per_strip: int) -> Decimal:
    """
    Money for ``quantity`` units of ``to_unit`` when the price is quoted per ``from_unit``.

    ``from_unit`` is the unit of the original sale line (the unit
    ``unit_price`` refers to); ``to_unit`` is the unit being returned.
    The result is rounded to cents here and never carried unrounded.

        >>> convert_amount(5, 'strip', 'individual', Decimal('20.00'), 10)
        Decimal('10.00')
    """
    _check(from_unit, units_per_strip)
    _check(to_unit, units_per_strip)
    price = Decimal(str(unit_price))
    qty = Decimal(quantity)

    if from_unit == to_unit:
        amount = qty * price
    elif from_unit == UnitTypeChoices.STRIP:
        # Price per strip, returning individual units
        amount = qty * (price / Decimal(units_per_strip))
    else:
        # Price per individual unit, returning whole strips
        amount = qty * (price * Decimal(units_per_strip))

    return quantize_amount(amount)
