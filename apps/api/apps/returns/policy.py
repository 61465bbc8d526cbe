"""
Return policy values.

A ReturnPolicy is built once per request (normally from settings.RETURNS)
and passed into the services, so tests can vary windows and limits per case.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Tuple

from django.conf import settings
from django.utils import timezone

from .exceptions import ReturnLimitExceeded, ValidationFailed


@dataclass(frozen=True)
class ReturnPolicy:
    return_window_days: int = 30
    manager_approval_after_days: int = 7
    max_returns_per_actor_per_day: int = 10
    minimum_return_amount: Decimal = Decimal('0')
    # (start_hour, end_hour) in local time, end exclusive; None = any time
    allowed_hours: Optional[Tuple[int, int]] = None

    @classmethod
    def from_settings(cls):
        """Build a policy from the RETURNS settings dict."""
        config = getattr(settings, 'RETURNS', {})
        start = config.get('ALLOWED_HOURS_START')
        end = config.get('ALLOWED_HOURS_END')
        allowed_hours = None
        if start is not None and end is not None:
            allowed_hours = (int(start), int(end))

        return cls(
            return_window_days=int(config.get('RETURN_WINDOW_DAYS', cls.return_window_days)),
            manager_approval_after_days=int(
                config.get('MANAGER_APPROVAL_AFTER_DAYS', cls.manager_approval_after_days)
            ),
            max_returns_per_actor_per_day=int(
                config.get('MAX_RETURNS_PER_ACTOR_PER_DAY', cls.max_returns_per_actor_per_day)
            ),
            minimum_return_amount=Decimal(
                str(config.get('MINIMUM_RETURN_AMOUNT', cls.minimum_return_amount))
            ),
            allowed_hours=allowed_hours,
        )

    def with_overrides(self, **changes):
        return replace(self, **changes)

    def check_time_window(self, now: datetime):
        """Raise ValidationFailed when ``now`` is outside the allowed hours."""
        if self.allowed_hours is None:
            return
        start, end = self.allowed_hours
        hour = timezone.localtime(now).hour
        if start <= end:
            allowed = start <= hour < end
        else:
            # Window wraps past midnight, e.g. (22, 6)
            allowed = hour >= start or hour < end
        if not allowed:
            raise ValidationFailed(
                f'Returns are only accepted between {start:02d}:00 and {end:02d}:00.',
                allowed_hours=[start, end],
            )

    def check_actor_limit(self, actor, now: datetime):
        """Raise ReturnLimitExceeded when ``actor`` created too many returns in 24h."""
        if actor is None or not getattr(actor, 'is_authenticated', False):
            return
        from .models import Return

        since = now - timedelta(days=1)
        created = Return.objects.filter(created_by=actor, created_at__gte=since).count()
        if created >= self.max_returns_per_actor_per_day:
            raise ReturnLimitExceeded(
                f'Daily return limit reached ({self.max_returns_per_actor_per_day} per 24 hours).',
                limit=self.max_returns_per_actor_per_day,
            )

    def check_minimum_amount(self, amount: Decimal):
        if amount < self.minimum_return_amount:
            raise ValidationFailed(
                f'Return amount {amount} is below the minimum of {self.minimum_return_amount}.',
                minimum_return_amount=str(self.minimum_return_amount),
            )
