"""
Return models - customer returns of prior sales.

A Return is an audit record: once created it is never deleted, and only its
status, refund and inventory restoration metadata change afterwards.
"""
import calendar
from decimal import Decimal
import uuid

from django.core.exceptions import ValidationError
from django.core.validators import MaxLengthValidator, MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.medicines.models import UnitTypeChoices


class ReturnStatusChoices(models.TextChoices):
    """
    Return status choices with state machine.

    Transitions:
    - pending -> approved, rejected, cancelled
    - approved -> processed, completed
    - processed -> completed
    - completed, rejected, cancelled -> (terminal)
    """
    PENDING = 'pending', _('Pending')
    APPROVED = 'approved', _('Approved')
    PROCESSED = 'processed', _('Processed')
    COMPLETED = 'completed', _('Completed')
    REJECTED = 'rejected', _('Rejected')
    CANCELLED = 'cancelled', _('Cancelled')


RETURN_TRANSITIONS = {
    ReturnStatusChoices.PENDING: [
        ReturnStatusChoices.APPROVED,
        ReturnStatusChoices.REJECTED,
        ReturnStatusChoices.CANCELLED,
    ],
    ReturnStatusChoices.APPROVED: [
        ReturnStatusChoices.PROCESSED,
        ReturnStatusChoices.COMPLETED,
    ],
    ReturnStatusChoices.PROCESSED: [
        ReturnStatusChoices.COMPLETED,
    ],
    ReturnStatusChoices.COMPLETED: [],
    ReturnStatusChoices.REJECTED: [],
    ReturnStatusChoices.CANCELLED: [],
}

# Returns in these states no longer count against a sale's returnable quantity
INACTIVE_RETURN_STATUSES = (ReturnStatusChoices.REJECTED, ReturnStatusChoices.CANCELLED)


class RefundStatusChoices(models.TextChoices):
    PENDING = 'pending', _('Pending')
    PROCESSED = 'processed', _('Processed')
    COMPLETED = 'completed', _('Completed')
    FAILED = 'failed', _('Failed')


class RefundMethodChoices(models.TextChoices):
    CASH = 'cash', _('Cash')
    CARD = 'card', _('Card')
    UPI = 'upi', _('UPI')
    STORE_CREDIT = 'store_credit', _('Store Credit')
    EXCHANGE = 'exchange', _('Exchange')


class RestorationStatusChoices(models.TextChoices):
    PENDING = 'pending', _('Pending')
    PARTIAL = 'partial', _('Partial')
    COMPLETED = 'completed', _('Completed')
    FAILED = 'failed', _('Failed')
    SKIPPED = 'skipped', _('Skipped')
    REVERSED = 'reversed', _('Reversed')


class ReturnReasonChoices(models.TextChoices):
    DEFECTIVE_PRODUCT = 'defective_product', _('Defective product')
    EXPIRED_MEDICINE = 'expired_medicine', _('Expired medicine')
    WRONG_MEDICINE_DISPENSED = 'wrong_medicine_dispensed', _('Wrong medicine dispensed')
    CUSTOMER_DISSATISFACTION = 'customer_dissatisfaction', _('Customer dissatisfaction')
    DOCTOR_PRESCRIPTION_CHANGE = 'doctor_prescription_change', _('Doctor prescription change')
    ADVERSE_REACTION = 'adverse_reaction', _('Adverse reaction')
    DUPLICATE_PURCHASE = 'duplicate_purchase', _('Duplicate purchase')
    BILLING_ERROR = 'billing_error', _('Billing error')
    QUALITY_ISSUE = 'quality_issue', _('Quality issue')
    OTHER = 'other', _('Other')


class ItemReturnReasonChoices(models.TextChoices):
    CUSTOMER_REQUEST = 'customer_request', _('Customer request')
    DEFECTIVE_PRODUCT = 'defective_product', _('Defective product')
    EXPIRED_MEDICINE = 'expired_medicine', _('Expired medicine')
    WRONG_MEDICINE_DISPENSED = 'wrong_medicine_dispensed', _('Wrong medicine dispensed')
    CUSTOMER_DISSATISFACTION = 'customer_dissatisfaction', _('Customer dissatisfaction')
    DOCTOR_PRESCRIPTION_CHANGE = 'doctor_prescription_change', _('Doctor prescription change')
    ADVERSE_REACTION = 'adverse_reaction', _('Adverse reaction')
    DUPLICATE_PURCHASE = 'duplicate_purchase', _('Duplicate purchase')
    BILLING_ERROR = 'billing_error', _('Billing error')
    QUALITY_ISSUE = 'quality_issue', _('Quality issue')
    OTHER = 'other', _('Other')


class Return(models.Model):
    """
    Return of (part of) a sale.

    Business Rules:
    - return_number is assigned before the first save and never changes
    - total_return_amount = subtotal + tax_adjustment - discount_adjustment
      (kept current by recalculate_totals)
    - status follows RETURN_TRANSITIONS
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    store = models.ForeignKey(
        'core.Store',
        on_delete=models.PROTECT,
        related_name='returns',
        verbose_name=_('Store')
    )
    original_sale = models.ForeignKey(
        'sales.Sale',
        on_delete=models.PROTECT,
        related_name='returns',
        verbose_name=_('Original Sale')
    )
    customer = models.ForeignKey(
        'sales.Customer',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='returns',
        verbose_name=_('Customer')
    )
    return_number = models.CharField(
        _('Return Number'),
        max_length=40,
        unique=True,
        help_text=_('RET-<store prefix>-<YYMM>-<sequence>, assigned once')
    )

    # Totals
    subtotal = models.DecimalField(
        _('Subtotal'), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )
    tax_adjustment = models.DecimalField(
        _('Tax Adjustment'), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )
    discount_adjustment = models.DecimalField(
        _('Discount Adjustment'), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )
    total_return_amount = models.DecimalField(
        _('Total Return Amount'), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )

    # Reason
    return_reason = models.CharField(
        _('Return Reason'),
        max_length=40,
        choices=ReturnReasonChoices.choices
    )
    return_reason_details = models.TextField(
        _('Reason Details'),
        blank=True,
        validators=[MaxLengthValidator(500)]
    )

    # Status
    status = models.CharField(
        _('Status'),
        max_length=20,
        choices=ReturnStatusChoices.choices,
        default=ReturnStatusChoices.PENDING
    )
    approval_required = models.BooleanField(
        _('Manager Approval Required'),
        default=False,
        help_text=_('Set when the sale was older than the manager approval threshold')
    )
    approved_by = models.ForeignKey(
        'authz.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='returns_approved', verbose_name=_('Approved By')
    )
    approved_at = models.DateTimeField(_('Approved At'), null=True, blank=True)
    rejection_reason = models.TextField(_('Rejection Reason'), blank=True)
    processed_by = models.ForeignKey(
        'authz.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='returns_processed', verbose_name=_('Processed By')
    )
    processed_at = models.DateTimeField(_('Processed At'), null=True, blank=True)
    completed_by = models.ForeignKey(
        'authz.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='returns_completed', verbose_name=_('Completed By')
    )
    completed_at = models.DateTimeField(_('Completed At'), null=True, blank=True)

    # Refund
    refund_method = models.CharField(
        _('Refund Method'),
        max_length=20,
        choices=RefundMethodChoices.choices
    )
    refund_status = models.CharField(
        _('Refund Status'),
        max_length=20,
        choices=RefundStatusChoices.choices,
        default=RefundStatusChoices.PENDING
    )
    refund_reference = models.CharField(_('Refund Reference'), max_length=100, blank=True)
    refund_processed_at = models.DateTimeField(_('Refund Processed At'), null=True, blank=True)

    # Inventory
    restore_inventory = models.BooleanField(_('Restore Inventory'), default=True)
    inventory_restoration_status = models.CharField(
        _('Inventory Restoration Status'),
        max_length=20,
        choices=RestorationStatusChoices.choices,
        default=RestorationStatusChoices.PENDING
    )

    notes = models.TextField(_('Notes'), blank=True, validators=[MaxLengthValidator(1000)])

    # Period metadata (set on first save)
    return_date = models.DateTimeField(_('Return Date'), default=timezone.now)
    fiscal_year = models.CharField(_('Fiscal Year'), max_length=4, blank=True)
    quarter = models.CharField(_('Quarter'), max_length=2, blank=True)
    month = models.CharField(_('Month'), max_length=12, blank=True)

    created_by = models.ForeignKey(
        'authz.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='returns_created', verbose_name=_('Created By')
    )
    updated_by = models.ForeignKey(
        'authz.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='returns_updated', verbose_name=_('Updated By')
    )
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    # return_number as loaded from the database, for the immutability check
    _loaded_return_number = None

    class Meta:
        db_table = 'returns'
        ordering = ['-return_date']
        verbose_name = _('Return')
        verbose_name_plural = _('Returns')
        indexes = [
            models.Index(fields=['store', '-return_date'], name='idx_return_store_date'),
            models.Index(fields=['original_sale'], name='idx_return_sale'),
            models.Index(fields=['store', 'status'], name='idx_return_store_status'),
            models.Index(fields=['created_by', 'created_at'], name='idx_return_actor_created'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(subtotal__gte=0),
                name='return_subtotal_non_negative'
            ),
            models.CheckConstraint(
                condition=~models.Q(return_number=''),
                name='return_number_not_empty'
            ),
        ]

    def __str__(self):
        return f"Return {self.return_number} - {self.get_status_display()} - {self.total_return_amount}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_return_number = instance.__dict__.get('return_number')
        return instance

    def save(self, *args, **kwargs):
        """
        Enforce full_clean() and the return number rules.

        The return number must be set before the first save and can never
        be changed afterwards. A saved row without a number is a hard error.
        """
        from .exceptions import PersistenceFailed, ValidationFailed

        if self._state.adding:
            self._stamp_period()
        elif self._loaded_return_number and self.return_number != self._loaded_return_number:
            raise ValidationFailed(
                f'Return number is immutable ({self._loaded_return_number}).'
            )

        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)

        if not self.return_number:
            raise PersistenceFailed(f'Return {self.id} was saved without a return number.')
        self._loaded_return_number = self.return_number

    def delete(self, *args, **kwargs):
        raise ValidationError('Returns are audit records and cannot be deleted.')

    def clean(self):
        super().clean()

        expected_total = self.subtotal + self.tax_adjustment - self.discount_adjustment
        if self.total_return_amount != expected_total:
            raise ValidationError({
                'total_return_amount': (
                    f'Total mismatch: total_return_amount={self.total_return_amount} but '
                    f'subtotal + tax - discount = {expected_total}.'
                )
            })

        if self.original_sale_id and self.store_id:
            if self.original_sale.store_id != self.store_id:
                raise ValidationError({'original_sale': 'Sale belongs to another store.'})

    def _stamp_period(self):
        return_date = self.return_date or timezone.now()
        local = timezone.localtime(return_date) if timezone.is_aware(return_date) else return_date
        self.fiscal_year = str(local.year)
        self.quarter = f'Q{(local.month - 1) // 3 + 1}'
        self.month = calendar.month_name[local.month]

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def get_valid_transitions(self):
        return RETURN_TRANSITIONS.get(self.status, [])

    def can_transition_to(self, new_status):
        return new_status in self.get_valid_transitions()

    @property
    def is_terminal_status(self):
        return not self.get_valid_transitions()

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------
    def recalculate_totals(self, save=True):
        """Recompute subtotal and total from the lines (single totals function)."""
        from .builder import calculate_return_totals

        totals = calculate_return_totals(
            self.lines.all(), self.tax_adjustment, self.discount_adjustment
        )
        self.subtotal = totals.subtotal
        self.total_return_amount = totals.total
        if save:
            self.save(update_fields=['subtotal', 'total_return_amount', 'updated_at'])
        return totals

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------
    @property
    def total_items(self):
        return sum(line.return_quantity for line in self.lines.all())

    @property
    def return_age(self):
        """Days since the return was filed."""
        return (timezone.now() - self.return_date).days

    @property
    def pending_restoration_count(self):
        return sum(
            1 for line in self.lines.all()
            if line.restore_to_inventory and not line.inventory_restored and not line.inventory_reversed
        )


class ReturnLine(models.Model):
    """
    One returned medicine quantity, tied to the sale line it came from.

    Restoration state per line: not restored -> restored -> reversed.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    return_record = models.ForeignKey(
        Return,
        on_delete=models.CASCADE,
        related_name='lines',
        verbose_name=_('Return')
    )
    original_sale_line = models.ForeignKey(
        'sales.SaleLine',
        on_delete=models.PROTECT,
        related_name='return_lines',
        verbose_name=_('Original Sale Line')
    )
    medicine = models.ForeignKey(
        'medicines.Medicine',
        on_delete=models.PROTECT,
        related_name='return_lines',
        verbose_name=_('Medicine')
    )

    return_quantity = models.PositiveIntegerField(
        _('Return Quantity'),
        validators=[MinValueValidator(1)]
    )
    unit_type = models.CharField(
        _('Unit Type'), max_length=20, choices=UnitTypeChoices.choices
    )
    original_quantity = models.PositiveIntegerField(_('Original Quantity'))
    original_unit_type = models.CharField(
        _('Original Unit Type'), max_length=20, choices=UnitTypeChoices.choices
    )
    unit_price = models.DecimalField(
        _('Original Unit Price'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Price per original unit type, copied from the sale line')
    )
    return_amount = models.DecimalField(_('Return Amount'), max_digits=12, decimal_places=2)

    # Batch metadata (copied from the sale line)
    batch_number = models.CharField(_('Batch Number'), max_length=100, blank=True)
    batch_expiry_date = models.DateField(_('Batch Expiry'), blank=True, null=True)
    batch_manufacturing_date = models.DateField(_('Batch Manufactured'), blank=True, null=True)

    item_return_reason = models.CharField(
        _('Item Return Reason'),
        max_length=40,
        choices=ItemReturnReasonChoices.choices,
        default=ItemReturnReasonChoices.CUSTOMER_REQUEST
    )

    # Restoration
    restore_to_inventory = models.BooleanField(_('Restore to Inventory'), default=True)
    inventory_restored = models.BooleanField(_('Inventory Restored'), default=False)
    restored_at = models.DateTimeField(_('Restored At'), null=True, blank=True)
    restored_by = models.ForeignKey(
        'authz.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='return_lines_restored', verbose_name=_('Restored By')
    )
    strip_quantity_restored = models.PositiveIntegerField(default=0)
    individual_quantity_restored = models.PositiveIntegerField(default=0)

    # Reversal
    inventory_reversed = models.BooleanField(_('Inventory Reversed'), default=False)
    reversed_at = models.DateTimeField(_('Reversed At'), null=True, blank=True)
    reversed_by = models.ForeignKey(
        'authz.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='return_lines_reversed', verbose_name=_('Reversed By')
    )
    strip_quantity_reversed = models.PositiveIntegerField(default=0)
    individual_quantity_reversed = models.PositiveIntegerField(default=0)
    reversal_reason = models.CharField(_('Reversal Reason'), max_length=255, blank=True)

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'return_lines'
        ordering = ['created_at', 'id']
        verbose_name = _('Return Line')
        verbose_name_plural = _('Return Lines')
        indexes = [
            models.Index(fields=['original_sale_line'], name='idx_return_line_sale_line'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(return_quantity__gte=1),
                name='return_line_quantity_positive'
            ),
            models.CheckConstraint(
                condition=models.Q(inventory_restored=False) | models.Q(restored_at__isnull=False),
                name='return_line_restored_has_timestamp'
            ),
            models.CheckConstraint(
                condition=models.Q(inventory_reversed=False) | models.Q(reversed_at__isnull=False),
                name='return_line_reversed_has_timestamp'
            ),
        ]

    def __str__(self):
        return f"{self.medicine} x {self.return_quantity} {self.unit_type}"

    def save(self, *args, **kwargs):
        """Run full_clean() unless skip_validation=True is passed."""
        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)

    def clean(self):
        super().clean()

        if self.inventory_restored and self.restored_at is None:
            raise ValidationError({'restored_at': 'Restored lines must record when they were restored.'})
        if self.inventory_reversed and self.reversed_at is None:
            raise ValidationError({'reversed_at': 'Reversed lines must record when they were reversed.'})

    @property
    def restoration_details(self):
        if self.restored_at is None:
            return None
        return {
            'restored_at': self.restored_at,
            'restored_by': self.restored_by_id,
            'strip_quantity_restored': self.strip_quantity_restored,
            'individual_quantity_restored': self.individual_quantity_restored,
        }

    @property
    def reversal_details(self):
        if self.reversed_at is None:
            return None
        return {
            'reversed_at': self.reversed_at,
            'reversed_by': self.reversed_by_id,
            'strip_quantity_reversed': self.strip_quantity_reversed,
            'individual_quantity_reversed': self.individual_quantity_reversed,
            'reason': self.reversal_reason,
        }


class ReturnSequence(models.Model):
    """
    Per-store return counter.

    Incremented under select_for_update so concurrent returns in one store
    never draw the same number.
    """
    store = models.OneToOneField(
        'core.Store',
        on_delete=models.CASCADE,
        primary_key=True,
        related_name='return_sequence'
    )
    last_value = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'return_sequences'
        verbose_name = _('Return Sequence')
        verbose_name_plural = _('Return Sequences')

    def __str__(self):
        return f"{self.store_id}: {self.last_value}"
