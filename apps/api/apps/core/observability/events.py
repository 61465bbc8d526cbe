"""
Domain events logging helpers.

Provides structured event logging for return and inventory operations.
"""
from typing import Dict, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'return_created', 'inventory_restored')
        entity_type: Type of entity (e.g., 'Return', 'Medicine')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, blocked, ...)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'return_created',
            entity_type='Return',
            entity_id=str(ret.id),
            entity_ids={'sale_id': str(ret.original_sale_id)},
            result='success',
            line_count=2,
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'throttled']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, str],
    checks_passed: Dict[str, bool],
    **extra_fields
):
    """
    Log a consistency checkpoint event.

    Used to verify data integrity at critical points, e.g. after a
    restoration pass:

        log_consistency_checkpoint(
            'return_restoration_consistency',
            entity_ids={'return_id': str(ret.id)},
            checks_passed={'restored_lines_stamped': True},
        )
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)


def log_return_created(return_obj, duration_ms=None, **extra):
    """Log return creation event."""
    if duration_ms is not None:
        extra['duration_ms'] = duration_ms

    log_domain_event(
        'return_created',
        entity_type='Return',
        entity_id=str(return_obj.id),
        entity_ids={
            'return_id': str(return_obj.id),
            'sale_id': str(return_obj.original_sale_id),
            'store_id': str(return_obj.store_id),
        },
        result='success',
        return_number=return_obj.return_number,
        total_return_amount=str(return_obj.total_return_amount),
        inventory_restoration_status=return_obj.inventory_restoration_status,
        approval_required=return_obj.approval_required,
        **extra
    )


def log_over_return_blocked(sale_line, requested_qty, unit_type, available_qty):
    """Log a blocked attempt to return more than remains on a sale line."""
    log_domain_event(
        'return_over_return_blocked',
        entity_type='SaleLine',
        entity_id=str(sale_line.id),
        entity_ids={
            'sale_line_id': str(sale_line.id),
            'sale_id': str(sale_line.sale_id),
        },
        result='blocked',
        requested_qty=requested_qty,
        available_qty=available_qty,
        unit_type=unit_type,
        medicine_id=str(sale_line.medicine_id),
    )


def log_return_transition(return_obj, from_status, to_status, result='success', **extra):
    """Log return status transition event."""
    log_domain_event(
        'return_transition',
        entity_type='Return',
        entity_id=str(return_obj.id),
        entity_ids={'return_id': str(return_obj.id)},
        result=result,
        from_status=from_status,
        to_status=to_status,
        **extra
    )


def log_inventory_restoration(return_obj, restored_lines, failed_lines, status):
    """Log the outcome of a restoration pass."""
    log_domain_event(
        'return_inventory_restored',
        entity_type='Return',
        entity_id=str(return_obj.id),
        entity_ids={'return_id': str(return_obj.id)},
        result='warning' if failed_lines else 'success',
        restored_lines=restored_lines,
        failed_lines=failed_lines,
        inventory_restoration_status=status,
    )


def log_inventory_reversal(return_obj, reversed_lines, skipped_lines, clamped_lines, reason):
    """Log the outcome of a reversal pass."""
    log_domain_event(
        'return_inventory_reversed',
        entity_type='Return',
        entity_id=str(return_obj.id),
        entity_ids={'return_id': str(return_obj.id)},
        result='warning' if clamped_lines else 'success',
        reversed_lines=reversed_lines,
        skipped_lines=skipped_lines,
        clamped_lines=clamped_lines,
        reversal_reason=reason,
    )


def log_expired_medicine_return(sale_line, expiry_date):
    """Log that an expired medicine is being returned (allowed, not blocked)."""
    log_domain_event(
        'return_expired_medicine',
        entity_type='SaleLine',
        entity_id=str(sale_line.id),
        entity_ids={
            'sale_line_id': str(sale_line.id),
            'sale_id': str(sale_line.sale_id),
            'medicine_id': str(sale_line.medicine_id),
        },
        result='warning',
        expiry_date=str(expiry_date),
    )
