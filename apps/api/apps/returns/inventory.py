"""
Inventory restoration and reversal for return lines.

Per line: not restored -> restored -> reversed.

Stock counters are changed with single UPDATE statements built from F()
expressions, never read-modify-write in Python. Each line runs in its own
savepoint, so one failed stock write is recorded on that line and the
remaining lines still go through.
"""
from dataclasses import dataclass, field
from typing import List

from django.db import DatabaseError, transaction
from django.db.models import F, IntegerField, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from apps.core.observability import metrics, get_sanitized_logger
from apps.core.observability.events import (
    log_consistency_checkpoint,
    log_inventory_restoration,
    log_inventory_reversal,
)
from apps.core.observability.tracing import trace_span
from apps.medicines.models import Medicine, UnitTypeChoices

from .exceptions import InventoryWriteFailed
from .models import RestorationStatusChoices

logger = get_sanitized_logger(__name__)

DEFAULT_REVERSAL_REASON = 'Return rejected'


@dataclass
class InventoryResult:
    """Outcome of one restoration or reversal pass."""
    status: str
    processed_line_ids: List[str] = field(default_factory=list)
    skipped_line_ids: List[str] = field(default_factory=list)
    clamped_line_ids: List[str] = field(default_factory=list)
    failures: List[dict] = field(default_factory=list)


def _split_by_unit(unit_type, quantity):
    """(strip quantity, individual quantity) for audit stamps."""
    if unit_type == UnitTypeChoices.STRIP:
        return quantity, 0
    return 0, quantity


def _increment_stock(line):
    stock_field = Medicine.stock_field_for(line.unit_type)
    updated = Medicine.objects.filter(pk=line.medicine_id).update(
        **{stock_field: F(stock_field) + line.return_quantity}
    )
    if updated == 0:
        raise InventoryWriteFailed(
            f'Medicine {line.medicine_id} not found; cannot restore stock.',
            medicine_id=str(line.medicine_id),
        )


def _decrement_stock_clamped(line) -> int:
    """
    Take back up to ``return_quantity`` from the line's stock counter.

    Returns the quantity actually removed. Stock never drops below zero.
    """
    stock_field = Medicine.stock_field_for(line.unit_type)
    medicine = Medicine.objects.select_for_update().filter(pk=line.medicine_id).first()
    if medicine is None:
        raise InventoryWriteFailed(
            f'Medicine {line.medicine_id} not found; cannot reverse stock.',
            medicine_id=str(line.medicine_id),
        )

    removed = min(line.return_quantity, getattr(medicine, stock_field))
    Medicine.objects.filter(pk=line.medicine_id).update(
        **{
            stock_field: Greatest(
                F(stock_field) - line.return_quantity,
                Value(0),
                output_field=IntegerField(),
            )
        }
    )
    return removed


def _record_failure(result, line, error, operation):
    result.failures.append({
        'line_id': str(line.id),
        'medicine_id': str(line.medicine_id),
        'error_type': getattr(error, 'error_type', type(error).__name__),
        'error': str(error)[:200],
    })
    logger.error(
        f'return_inventory_{operation}_line_failed',
        extra={
            'return_line_id': str(line.id),
            'medicine_id': str(line.medicine_id),
            'unit_type': line.unit_type,
            'error_type': type(error).__name__,
            'error_message': str(error)[:200],
        }
    )


def apply_restoration(return_obj, actor=None) -> InventoryResult:
    """
    Put returned quantities back into stock.

    IDEMPOTENT: lines already restored (or already reversed) are skipped, so
    calling this twice adds stock once.

    Final inventory_restoration_status:
    - skipped: restore_inventory is off, or no line is flagged for restoration
    - completed: every flagged line is restored
    - partial: some flagged lines are restored
    - failed: none could be restored
    """
    now = timezone.now()
    lines = list(return_obj.lines.all().order_by('created_at', 'id'))
    restorable = [line for line in lines if line.restore_to_inventory]

    if not return_obj.restore_inventory or not restorable:
        result = InventoryResult(status=RestorationStatusChoices.SKIPPED)
        _save_status(return_obj, result.status, actor)
        return result

    result = InventoryResult(status=RestorationStatusChoices.PENDING)

    with trace_span('return_apply_restoration', attributes={'return_id': str(return_obj.id)}):
        for line in restorable:
            if line.inventory_restored or line.inventory_reversed:
                result.skipped_line_ids.append(str(line.id))
                metrics.returns_inventory_restoration_total.labels(
                    unit_type=line.unit_type, result='skipped'
                ).inc()
                continue

            try:
                with transaction.atomic():
                    _increment_stock(line)
                    strip_qty, individual_qty = _split_by_unit(line.unit_type, line.return_quantity)
                    line.inventory_restored = True
                    line.restored_at = now
                    line.restored_by = actor
                    line.strip_quantity_restored = strip_qty
                    line.individual_quantity_restored = individual_qty
                    line.save(update_fields=[
                        'inventory_restored', 'restored_at', 'restored_by',
                        'strip_quantity_restored', 'individual_quantity_restored',
                    ])
            except (InventoryWriteFailed, DatabaseError) as e:
                _record_failure(result, line, e, 'restoration')
                metrics.returns_inventory_restoration_total.labels(
                    unit_type=line.unit_type, result='failed'
                ).inc()
                continue

            result.processed_line_ids.append(str(line.id))
            metrics.returns_inventory_restoration_total.labels(
                unit_type=line.unit_type, result='restored'
            ).inc()

    restored_count = sum(1 for line in restorable if line.inventory_restored)
    if restored_count == len(restorable):
        result.status = RestorationStatusChoices.COMPLETED
    elif restored_count:
        result.status = RestorationStatusChoices.PARTIAL
    else:
        result.status = RestorationStatusChoices.FAILED

    _save_status(return_obj, result.status, actor)

    log_inventory_restoration(
        return_obj,
        restored_lines=len(result.processed_line_ids),
        failed_lines=len(result.failures),
        status=result.status,
    )
    log_consistency_checkpoint(
        'return_restoration_consistency',
        entity_ids={'return_id': str(return_obj.id)},
        checks_passed={
            'restored_lines_stamped': all(
                line.restored_at is not None for line in restorable if line.inventory_restored
            ),
            'no_failures': not result.failures,
        },
        restorable_lines=len(restorable),
        restored_lines=restored_count,
    )
    return result


def reverse_restoration(return_obj, actor=None, reason: str = DEFAULT_REVERSAL_REASON) -> InventoryResult:
    """
    Take restored quantities back out of stock (return rejected).

    Every line flagged restore_to_inventory is reversed, whether or not it
    is currently marked restored, because a line can be claimed restored
    after a partial stock write. Lines already marked inventory_reversed are
    skipped so a retried rejection never decrements twice. Each decrement is
    clamped at zero.

    inventory_restoration_status becomes 'reversed' when the pass finishes,
    even if some lines failed; failed lines keep inventory_reversed=False and
    are picked up by the next call.
    """
    now = timezone.now()
    lines = list(return_obj.lines.all().order_by('created_at', 'id'))
    result = InventoryResult(status=RestorationStatusChoices.REVERSED)

    with trace_span('return_reverse_restoration', attributes={'return_id': str(return_obj.id)}):
        for line in lines:
            if not line.restore_to_inventory:
                continue
            if line.inventory_reversed:
                result.skipped_line_ids.append(str(line.id))
                metrics.returns_inventory_reversal_total.labels(
                    unit_type=line.unit_type, result='skipped'
                ).inc()
                continue

            try:
                with transaction.atomic():
                    removed = _decrement_stock_clamped(line)
                    strip_qty, individual_qty = _split_by_unit(line.unit_type, removed)
                    line.inventory_restored = False
                    line.inventory_reversed = True
                    line.reversed_at = now
                    line.reversed_by = actor
                    line.strip_quantity_reversed = strip_qty
                    line.individual_quantity_reversed = individual_qty
                    line.reversal_reason = reason
                    line.save(update_fields=[
                        'inventory_restored', 'inventory_reversed', 'reversed_at', 'reversed_by',
                        'strip_quantity_reversed', 'individual_quantity_reversed', 'reversal_reason',
                    ])
            except (InventoryWriteFailed, DatabaseError) as e:
                _record_failure(result, line, e, 'reversal')
                metrics.returns_inventory_reversal_total.labels(
                    unit_type=line.unit_type, result='failed'
                ).inc()
                continue

            result.processed_line_ids.append(str(line.id))
            outcome = 'reversed'
            if removed < line.return_quantity:
                outcome = 'clamped'
                result.clamped_line_ids.append(str(line.id))
            metrics.returns_inventory_reversal_total.labels(
                unit_type=line.unit_type, result=outcome
            ).inc()

    _save_status(return_obj, result.status, actor)

    log_inventory_reversal(
        return_obj,
        reversed_lines=len(result.processed_line_ids),
        skipped_lines=len(result.skipped_line_ids),
        clamped_lines=len(result.clamped_line_ids),
        reason=reason,
    )
    return result


def _save_status(return_obj, status, actor):
    return_obj.inventory_restoration_status = status
    update_fields = ['inventory_restoration_status', 'updated_at']
    if actor is not None:
        return_obj.updated_by = actor
        update_fields.append('updated_by')
    return_obj.save(update_fields=update_fields)
