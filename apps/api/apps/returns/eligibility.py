"""
Return eligibility validation.

Checks, in order, each with its own error:
1. sale exists                              -> ReturnNotFound
2. sale not already fully returned          -> SaleAlreadyFullyReturned
3. sale age within the return window        -> ReturnWindowExpired
4. (soft) sale age over the approval limit  -> requires_manager_approval
5. every requested sale line exists         -> ReturnNotFound
6. every requested quantity fits            -> OverReturnRequested

Expired medicines are accepted with a warning.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional
import uuid

from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.core.observability import metrics, get_sanitized_logger
from apps.core.observability.events import log_expired_medicine_return, log_over_return_blocked
from apps.medicines.models import UnitTypeChoices
from apps.sales.models import Sale, SaleStatusChoices

from .availability import LineAvailability, resolve_available_items
from .exceptions import (
    OverReturnRequested,
    ReturnError,
    ReturnNotFound,
    ReturnWindowExpired,
    SaleAlreadyFullyReturned,
    ValidationFailed,
)
from .policy import ReturnPolicy

logger = get_sanitized_logger(__name__)


@dataclass
class RequestedLine:
    """One normalized line of a return request."""
    sale_line_id: uuid.UUID
    quantity: int
    unit_type: str
    item_return_reason: Optional[str] = None
    restore_to_inventory: Optional[bool] = None
    sale_line: object = None


@dataclass
class EligibilityResult:
    sale: Sale
    requires_manager_approval: bool
    sale_age_days: int
    lines: List[RequestedLine]
    availability: Dict[uuid.UUID, LineAvailability]
    warnings: List[str] = field(default_factory=list)


def normalize_requested_lines(requested_lines) -> List[RequestedLine]:
    """
    Turn request dicts into RequestedLine objects.

    Accepts ``return_quantity`` or ``quantity`` for the amount.
    """
    if not requested_lines:
        raise ValidationFailed('A return must contain at least one line.')

    normalized = []
    for index, data in enumerate(requested_lines):
        if isinstance(data, RequestedLine):
            normalized.append(data)
            continue

        raw_id = data.get('sale_line_id')
        try:
            sale_line_id = uuid.UUID(str(raw_id))
        except (TypeError, ValueError):
            raise ValidationFailed(f'Line {index + 1}: invalid sale line id {raw_id!r}.')

        raw_quantity = data.get('return_quantity', data.get('quantity'))
        try:
            quantity = int(raw_quantity)
        except (TypeError, ValueError):
            raise ValidationFailed(f'Line {index + 1}: return quantity must be a whole number.')
        if isinstance(raw_quantity, bool) or Decimal(str(raw_quantity)) != quantity or quantity < 1:
            raise ValidationFailed(f'Line {index + 1}: return quantity must be a positive whole number.')

        unit_type = data.get('unit_type')
        if unit_type not in UnitTypeChoices.values:
            raise ValidationFailed(
                f'Line {index + 1}: unit type must be one of {", ".join(UnitTypeChoices.values)}.'
            )

        normalized.append(RequestedLine(
            sale_line_id=sale_line_id,
            quantity=quantity,
            unit_type=unit_type,
            item_return_reason=data.get('item_return_reason'),
            restore_to_inventory=data.get('restore_to_inventory'),
        ))
    return normalized


def load_sale(sale_id, lock=False) -> Sale:
    """
    Fetch a sale or raise ReturnNotFound.

    lock=True takes a row lock (SELECT ... FOR UPDATE) and must run inside
    transaction.atomic().
    """
    queryset = Sale.objects.all()
    if lock:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=sale_id)
    except (Sale.DoesNotExist, ValueError, ValidationError):
        raise ReturnNotFound(f'Sale {sale_id} not found.', sale_id=str(sale_id))


def validate_return_eligibility(
    sale_id,
    requested_lines,
    policy: Optional[ReturnPolicy] = None,
    now=None,
    lock: bool = False,
    exclude_return_id=None,
) -> EligibilityResult:
    """
    Decide whether ``requested_lines`` can be returned from sale ``sale_id``.

    Already-returned quantities come from every pending/approved/processed/
    completed return on the sale. Several requested lines against the same
    sale line add up within this one request.

    Args:
        sale_id: Sale primary key
        requested_lines: list of dicts (sale_line_id, return_quantity, unit_type, ...)
        policy: ReturnPolicy (defaults to settings)
        now: evaluation time (defaults to timezone.now())
        lock: lock the sale row for the rest of the transaction
        exclude_return_id: ignore this return when summing prior returns

    Returns:
        EligibilityResult with the loaded sale and per-line availability

    Raises:
        ReturnNotFound, SaleAlreadyFullyReturned, ReturnWindowExpired,
        OverReturnRequested, ValidationFailed
    """
    policy = policy or ReturnPolicy.from_settings()
    now = now or timezone.now()

    try:
        result = _validate(sale_id, requested_lines, policy, now, lock, exclude_return_id)
    except ReturnError as e:
        metrics.returns_eligibility_checks_total.labels(result=e.error_type).inc()
        raise

    metrics.returns_eligibility_checks_total.labels(result='eligible').inc()
    return result


def _validate(sale_id, requested_lines, policy, now, lock, exclude_return_id):
    lines = normalize_requested_lines(requested_lines)

    # 1. Sale exists
    sale = load_sale(sale_id, lock=lock)

    # 2. Not already fully returned
    if sale.status == SaleStatusChoices.RETURNED or sale.is_returned:
        raise SaleAlreadyFullyReturned(
            f'Sale {sale.sale_number or sale.id} has already been fully returned.',
            sale_id=str(sale.id),
        )

    # 3. Return window (hard limit)
    sale_age_days = (now - sale.sale_date).days
    if sale_age_days > policy.return_window_days:
        raise ReturnWindowExpired(
            f'Return window expired: sale is {sale_age_days} days old, '
            f'returns are accepted for {policy.return_window_days} days.',
            sale_age_days=sale_age_days,
            return_window_days=policy.return_window_days,
        )

    # 4. Manager approval (soft)
    requires_manager_approval = sale_age_days > policy.manager_approval_after_days

    availability = {
        item.sale_line.id: item
        for item in resolve_available_items(sale, exclude_return_id=exclude_return_id)
    }

    warnings = []
    for line in lines:
        # 5. Sale line exists on this sale
        item = availability.get(line.sale_line_id)
        if item is None:
            raise ReturnNotFound(
                f'Sale line {line.sale_line_id} not found in sale {sale.sale_number or sale.id}.',
                sale_line_id=str(line.sale_line_id),
            )
        sale_line = item.sale_line
        line.sale_line = sale_line

        # 6. Quantity fits what remains (including earlier lines of this request)
        available = item.available_in(line.unit_type)
        if line.quantity > available:
            metrics.returns_over_return_blocked_total.labels(unit_type=line.unit_type).inc()
            log_over_return_blocked(sale_line, line.quantity, line.unit_type, available)
            raise OverReturnRequested(
                medicine_name=sale_line.medicine.name,
                requested_quantity=line.quantity,
                unit_type=line.unit_type,
                available_quantity=available,
                sale_line_id=sale_line.id,
            )
        item.add_returned(line.quantity, line.unit_type)

        if sale_line.medicine.is_expired(now.date(), sale_line.batch_expiry_date):
            expiry_date = sale_line.batch_expiry_date or sale_line.medicine.expiry_date
            log_expired_medicine_return(sale_line, expiry_date)
            warnings.append(f'{sale_line.medicine.name} expired on {expiry_date.isoformat()}.')

    if requires_manager_approval:
        warnings.append(
            f'Sale is {sale_age_days} days old; manager approval is required after '
            f'{policy.manager_approval_after_days} days.'
        )

    return EligibilityResult(
        sale=sale,
        requires_manager_approval=requires_manager_approval,
        sale_age_days=sale_age_days,
        lines=lines,
        availability=availability,
        warnings=warnings,
    )
