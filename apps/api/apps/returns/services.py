"""
Returns service layer - business operations on returns.

- Eligibility checks and availability lookups
- Return creation (validation, numbering, persistence, restoration) in one transaction
- Status lifecycle with inventory reversal on rejection
- Manual restoration retry
- Listing and lookups
"""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional
import time

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from apps.core.observability import metrics, get_sanitized_logger
from apps.core.observability.events import log_return_created, log_return_transition
from apps.core.observability.tracing import add_span_attribute, trace_span
from apps.sales.models import Sale

from .availability import LineAvailability, resolve_available_items
from .builder import ZERO, build_return, calculate_return_totals, prepare_return_lines
from .eligibility import EligibilityResult, load_sale, validate_return_eligibility
from .exceptions import (
    InvalidStatusTransition,
    PersistenceFailed,
    ReturnError,
    ReturnNotFound,
    ValidationFailed,
)
from .inventory import InventoryResult, apply_restoration, reverse_restoration
from .models import (
    INACTIVE_RETURN_STATUSES,
    RefundMethodChoices,
    RefundStatusChoices,
    RestorationStatusChoices,
    Return,
    ReturnStatusChoices,
)
from .numbering import generate_return_number
from .policy import ReturnPolicy
from .reconciliation import reconcile_sale_status

logger = get_sanitized_logger(__name__)

# Fields update_return_status() accepts besides the status itself
UPDATABLE_EXTRAS = ('refund_method', 'refund_status', 'refund_reference', 'notes', 'rejection_reason')

SORTABLE_FIELDS = ('return_date', 'created_at', 'total_return_amount', 'return_number', 'status')


@dataclass
class SaleAvailability:
    """What can still be returned from one sale."""
    sale: Sale
    items: List[LineAvailability] = field(default_factory=list)


@dataclass
class EligibilityReport:
    """Eligibility outcome plus the refund the request would produce."""
    eligibility: EligibilityResult
    estimated_subtotal: object = ZERO


def _as_return_error(error: ValidationError) -> ReturnError:
    """Wrap plain model validation errors so callers see one taxonomy."""
    if isinstance(error, ReturnError):
        return error
    return ValidationFailed('; '.join(error.messages), fields=getattr(error, 'message_dict', None))


def _refresh_pending_restoration_gauge():
    metrics.returns_pending_restoration.set(
        Return.objects.filter(
            inventory_restoration_status__in=[
                RestorationStatusChoices.PARTIAL,
                RestorationStatusChoices.FAILED,
            ]
        ).count()
    )


def _persistence_failed(operation, return_id, error: DatabaseError) -> PersistenceFailed:
    """Log and count a database failure (lock or statement timeout included) as retryable."""
    metrics.exceptions_total.labels(exception_type=type(error).__name__, location=operation).inc()
    logger.error(
        f'{operation}_failed',
        extra={
            'return_id': str(return_id),
            'error_type': type(error).__name__,
            'error_message': str(error)[:200],
        }
    )
    return PersistenceFailed(
        'The return could not be updated; please retry.', return_id=str(return_id)
    )


def validate_eligibility(sale_id, lines, policy: Optional[ReturnPolicy] = None, now=None) -> EligibilityReport:
    """
    Dry-run a return request: nothing is written.

    Raises the same errors create_return() would for the eligibility checks.
    """
    eligibility = validate_return_eligibility(sale_id, lines, policy=policy, now=now)
    prepared = prepare_return_lines(eligibility)
    totals = calculate_return_totals(prepared)
    return EligibilityReport(eligibility=eligibility, estimated_subtotal=totals.subtotal)


def list_available_for_return(sale_id) -> SaleAvailability:
    """
    Per-line returnable quantities for ``sale_id``.

    A sale that is already fully returned has no items.
    """
    sale = load_sale(sale_id)
    if sale.is_returned:
        return SaleAvailability(sale=sale)
    items = [item for item in resolve_available_items(sale) if item.is_available]
    return SaleAvailability(sale=sale, items=items)


def create_return(
    sale_id,
    lines,
    return_reason: str,
    refund_method: str,
    restore_inventory: bool = True,
    created_by=None,
    policy: Optional[ReturnPolicy] = None,
    return_reason_details: str = '',
    notes: str = '',
    tax_adjustment=ZERO,
    discount_adjustment=ZERO,
    now=None,
) -> Return:
    """
    Create a return against a sale.

    TRANSACTION: the sale row is locked (SELECT ... FOR UPDATE) before
    availability is computed, so concurrent returns against one sale are
    serialized; number, header and lines commit together or not at all.
    Inventory restoration runs in the same transaction with a savepoint per
    line, so a failed stock write is recorded and does not undo the return.

    Args:
        sale_id: Sale primary key
        lines: list of dicts with sale_line_id, return_quantity, unit_type and
            optionally item_return_reason and restore_to_inventory
        return_reason: ReturnReasonChoices value
        refund_method: RefundMethodChoices value
        restore_inventory: put returned stock back on the shelf
        created_by: User filing the return
        policy: ReturnPolicy (defaults to settings.RETURNS)

    Returns:
        Saved Return (with ``warnings`` from eligibility attached)

    Raises:
        ReturnError subclasses; see apps.returns.exceptions
    """
    policy = policy or ReturnPolicy.from_settings()
    now = now or timezone.now()
    start_time = time.monotonic()

    try:
        with trace_span('create_return', attributes={'sale_id': str(sale_id), 'line_count': len(lines or [])}):
            policy.check_time_window(now)
            policy.check_actor_limit(created_by, now)

            with transaction.atomic():
                eligibility = validate_return_eligibility(
                    sale_id, lines, policy=policy, now=now, lock=True
                )
                prepared = prepare_return_lines(eligibility, restore_inventory)
                totals = calculate_return_totals(prepared, tax_adjustment, discount_adjustment)
                policy.check_minimum_amount(totals.subtotal)

                return_obj = build_return(
                    eligibility,
                    return_number=generate_return_number(eligibility.sale.store, now),
                    return_reason=return_reason,
                    refund_method=refund_method,
                    restore_inventory=restore_inventory,
                    lines=prepared,
                    return_reason_details=return_reason_details,
                    notes=notes,
                    tax_adjustment=tax_adjustment,
                    discount_adjustment=discount_adjustment,
                    created_by=created_by,
                    now=now,
                )

                restoration = apply_restoration(return_obj, actor=created_by)
                reconcile_sale_status(eligibility.sale)
                add_span_attribute('return_number', return_obj.return_number)

    except ReturnError as e:
        metrics.returns_created_total.labels(result=e.error_type).inc()
        raise
    except ValidationError as e:
        metrics.returns_created_total.labels(result='validation_failed').inc()
        raise _as_return_error(e) from e
    except DatabaseError as e:
        metrics.returns_created_total.labels(result='persistence_failed').inc()
        logger.error(
            'create_return_failed',
            extra={
                'sale_id': str(sale_id),
                'error_type': type(e).__name__,
                'error_message': str(e)[:200],
            }
        )
        raise PersistenceFailed(
            'The return could not be saved; please retry.', sale_id=str(sale_id)
        ) from e

    duration = time.monotonic() - start_time
    metrics.returns_created_total.labels(result='success').inc()
    metrics.returns_create_duration_seconds.observe(duration)
    if restoration.failures:
        _refresh_pending_restoration_gauge()

    log_return_created(
        return_obj,
        duration_ms=int(duration * 1000),
        line_count=len(prepared),
        warnings=len(eligibility.warnings),
    )

    return_obj.warnings = eligibility.warnings
    return return_obj


def get_return(return_id, lock: bool = False) -> Return:
    queryset = Return.objects.select_related('store', 'original_sale', 'customer')
    if lock:
        queryset = Return.objects.select_for_update()
    try:
        return queryset.get(pk=return_id)
    except (Return.DoesNotExist, ValueError, ValidationError):
        raise ReturnNotFound(f'Return {return_id} not found.', return_id=str(return_id))


def _apply_extras(return_obj, extras, now):
    """Plain field mutations; returns the changed field names."""
    unknown = set(extras) - set(UPDATABLE_EXTRAS)
    if unknown:
        raise ValidationFailed(
            f'Cannot update field(s): {", ".join(sorted(unknown))}.', fields=sorted(unknown)
        )

    changed = []
    if 'refund_method' in extras and extras['refund_method'] not in RefundMethodChoices.values:
        raise ValidationFailed(f'Invalid refund method {extras["refund_method"]!r}.')
    if 'refund_status' in extras and extras['refund_status'] not in RefundStatusChoices.values:
        raise ValidationFailed(f'Invalid refund status {extras["refund_status"]!r}.')

    for name in UPDATABLE_EXTRAS:
        if name not in extras:
            continue
        value = extras[name]
        if value is None:
            value = ''
        setattr(return_obj, name, value)
        changed.append(name)

    if extras.get('refund_status') == RefundStatusChoices.COMPLETED and return_obj.refund_processed_at is None:
        return_obj.refund_processed_at = now
        changed.append('refund_processed_at')
    return changed


def update_return_status(return_id, new_status: Optional[str] = None, extras: Optional[dict] = None, user=None) -> Return:
    """
    Change a return's status and/or its refund and note fields.

    State machine: see RETURN_TRANSITIONS. Moving to rejected reverses any
    restored stock first; a reversal failure is logged and counted but does
    not block the rejection.

    Raises:
        ReturnNotFound, InvalidStatusTransition, ValidationFailed,
        PersistenceFailed (database or lock timeout; retryable)
    """
    extras = dict(extras or {})
    now = timezone.now()

    try:
        with transaction.atomic():
            return _update_locked(return_id, new_status, extras, user, now)
    except DatabaseError as e:
        raise _persistence_failed('update_return_status', return_id, e) from e


def _update_locked(return_id, new_status, extras, user, now) -> Return:
    return_obj = get_return(return_id, lock=True)
    from_status = return_obj.status
    update_fields = ['updated_at']

    if new_status is not None and new_status != from_status:
        if new_status not in ReturnStatusChoices.values:
            raise ValidationFailed(f'Unknown return status {new_status!r}.')

        if not return_obj.can_transition_to(new_status):
            metrics.returns_status_transition_total.labels(
                from_status=from_status, to_status=new_status, result='invalid'
            ).inc()
            log_return_transition(return_obj, from_status, new_status, result='blocked')
            raise InvalidStatusTransition(
                f'Cannot change return {return_obj.return_number} from {from_status} to {new_status}. '
                f'Allowed: {", ".join(return_obj.get_valid_transitions()) or "none"}.',
                from_status=from_status,
                to_status=new_status,
            )

        if new_status == ReturnStatusChoices.REJECTED and return_obj.restore_inventory:
            _reverse_for_rejection(return_obj, user)

        return_obj.status = new_status
        update_fields.append('status')
        update_fields.extend(_stamp_transition(return_obj, new_status, user, now))

    update_fields.extend(_apply_extras(return_obj, extras, now))

    if user is not None:
        return_obj.updated_by = user
        update_fields.append('updated_by')

    try:
        return_obj.save(update_fields=list(dict.fromkeys(update_fields)))
    except ValidationError as e:
        raise _as_return_error(e) from e

    if return_obj.status != from_status:
        metrics.returns_status_transition_total.labels(
            from_status=from_status, to_status=return_obj.status, result='success'
        ).inc()
        log_return_transition(return_obj, from_status, return_obj.status)

    if return_obj.status not in INACTIVE_RETURN_STATUSES:
        reconcile_sale_status(return_obj.original_sale)

    return return_obj


def _stamp_transition(return_obj, new_status, user, now):
    if new_status == ReturnStatusChoices.APPROVED:
        return_obj.approved_by = user
        return_obj.approved_at = now
        return ['approved_by', 'approved_at']
    if new_status == ReturnStatusChoices.PROCESSED:
        return_obj.processed_by = user
        return_obj.processed_at = now
        return ['processed_by', 'processed_at']
    if new_status == ReturnStatusChoices.COMPLETED:
        return_obj.completed_by = user
        return_obj.completed_at = now
        return ['completed_by', 'completed_at']
    return []


def _reverse_for_rejection(return_obj, user) -> Optional[InventoryResult]:
    try:
        with transaction.atomic():
            return reverse_restoration(return_obj, actor=user)
    except (ReturnError, DatabaseError) as e:
        metrics.returns_inventory_reversal_total.labels(unit_type='all', result='failed').inc()
        logger.error(
            'return_rejection_reversal_failed',
            extra={
                'return_id': str(return_obj.id),
                'error_type': type(e).__name__,
                'error_message': str(e)[:200],
            }
        )
        return None


def restore_inventory(return_id, user=None) -> Return:
    """
    Retry stock restoration for a return.

    IDEMPOTENT: lines already restored are skipped.
    """
    try:
        with transaction.atomic():
            return_obj = get_return(return_id, lock=True)
            if not return_obj.restore_inventory:
                raise ValidationFailed(
                    f'Return {return_obj.return_number} was filed without inventory restoration.'
                )
            if return_obj.status in INACTIVE_RETURN_STATUSES:
                raise ValidationFailed(
                    f'Cannot restore inventory for a {return_obj.status} return.',
                    status=return_obj.status,
                )
            result = apply_restoration(return_obj, actor=user)
    except DatabaseError as e:
        raise _persistence_failed('restore_inventory', return_id, e) from e

    _refresh_pending_restoration_gauge()
    return_obj.restoration_result = result
    return return_obj


def list_returns(store=None, filters: Optional[dict] = None):
    """
    Returns for ``store`` (all stores when None), filtered and sorted.

    Filters: status, return_reason, refund_status, start_date, end_date,
    search (return number, reason details, notes), sort_by, sort_order.
    """
    filters = filters or {}
    queryset = Return.objects.select_related(
        'store', 'original_sale', 'customer', 'created_by'
    ).prefetch_related('lines__medicine')

    if store is not None:
        queryset = queryset.filter(store=store)

    for name in ('status', 'return_reason', 'refund_status'):
        value = filters.get(name)
        if value:
            queryset = queryset.filter(**{name: value})

    start_date = _parse_filter_date(filters.get('start_date'), 'start_date')
    if start_date:
        queryset = queryset.filter(return_date__date__gte=start_date)
    end_date = _parse_filter_date(filters.get('end_date'), 'end_date')
    if end_date:
        queryset = queryset.filter(return_date__date__lte=end_date)

    search = (filters.get('search') or '').strip()
    if search:
        queryset = queryset.filter(
            Q(return_number__icontains=search)
            | Q(return_reason_details__icontains=search)
            | Q(notes__icontains=search)
        )

    sort_by = filters.get('sort_by') or 'return_date'
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationFailed(
            f'Cannot sort by {sort_by!r}. Allowed: {", ".join(SORTABLE_FIELDS)}.'
        )
    sort_order = (filters.get('sort_order') or 'desc').lower()
    if sort_order not in ('asc', 'desc'):
        raise ValidationFailed("sort_order must be 'asc' or 'desc'.")
    prefix = '-' if sort_order == 'desc' else ''
    return queryset.order_by(f'{prefix}{sort_by}', f'{prefix}id')


def _parse_filter_date(value, name) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationFailed(f'{name} must be a date (YYYY-MM-DD).')
    return parsed


def get_returns_for_sale(sale_id):
    """Every return filed against ``sale_id``, newest first."""
    sale = load_sale(sale_id)
    return Return.objects.filter(original_sale=sale).prefetch_related('lines__medicine').order_by('-return_date')
