"""
Return number generation.

Format: RET-<store prefix>-<YYMM>-<NNNN>, e.g. RET-CIT-2503-0042.

NNNN comes from the store's ReturnSequence row, incremented under a row
lock. A new row is seeded with the store's current return count, so the
sequence equals "returns in this store + 1". If the counter cannot be
read or written, a timestamp-derived number is used instead
(RET-CIT-2503-T<digits><hex>) so the return can still be saved.
"""
import time
import uuid

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from apps.core.observability import metrics, get_sanitized_logger

from .models import Return, ReturnSequence

logger = get_sanitized_logger(__name__)

MAX_SEQUENCE_ATTEMPTS = 5


def return_period(now=None) -> str:
    """YYMM of ``now`` in local time."""
    return timezone.localtime(now or timezone.now()).strftime('%y%m')


def format_return_number(prefix: str, period: str, sequence: int) -> str:
    return f'RET-{prefix}-{period}-{sequence:04d}'


def fallback_return_number(prefix: str, period: str) -> str:
    """Timestamp-derived number, unique without touching the counter."""
    stamp = time.time_ns() // 1000 % 10 ** 10
    return f'RET-{prefix}-{period}-T{stamp:010d}{uuid.uuid4().hex[:4].upper()}'


def next_sequence_value(store) -> int:
    """
    Increment and return the store's counter.

    Must run inside a transaction; the counter row stays locked until it ends.
    """
    sequence = ReturnSequence.objects.select_for_update().filter(store=store).first()
    if sequence is None:
        seeded = Return.objects.filter(store=store).count()
        sequence, created = ReturnSequence.objects.get_or_create(
            store=store, defaults={'last_value': seeded}
        )
        if not created:
            sequence = ReturnSequence.objects.select_for_update().get(store=store)

    ReturnSequence.objects.filter(pk=sequence.pk).update(last_value=F('last_value') + 1)
    sequence.refresh_from_db(fields=['last_value'])
    return sequence.last_value


def generate_return_number(store, now=None) -> str:
    """
    Produce a unique return number for ``store``.

    Runs in a savepoint so a counter failure leaves the caller's
    transaction usable for the fallback path.
    """
    prefix = store.number_prefix
    period = return_period(now)

    try:
        with transaction.atomic():
            for _ in range(MAX_SEQUENCE_ATTEMPTS):
                number = format_return_number(prefix, period, next_sequence_value(store))
                # Skip numbers already taken (e.g. imported history)
                if not Return.objects.filter(return_number=number).exists():
                    return number
    except DatabaseError as e:
        logger.warning(
            'Return sequence unavailable, using timestamp number',
            extra={
                'event': 'return_number_fallback',
                'store_id': str(store.id),
                'error_type': type(e).__name__,
            }
        )
    else:
        logger.warning(
            'Return sequence exhausted retries, using timestamp number',
            extra={'event': 'return_number_fallback', 'store_id': str(store.id)}
        )

    metrics.returns_number_fallback_total.inc()
    return fallback_return_number(prefix, period)
