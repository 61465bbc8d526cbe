"""Sales models - completed POS transactions that returns refer back to."""
from decimal import Decimal
import uuid

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.medicines.models import UnitTypeChoices


class SaleStatusChoices(models.TextChoices):
    """
    Sale status choices.

    RETURNED is only ever set by return reconciliation, once every line has
    been returned in full. It is never cleared again.
    """
    COMPLETED = 'completed', _('Completed')
    PENDING = 'pending', _('Pending')
    CANCELLED = 'cancelled', _('Cancelled')
    RETURNED = 'returned', _('Returned')


class Customer(models.Model):
    """Minimal customer reference attached to sales and returns."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(
        'core.Store',
        on_delete=models.PROTECT,
        related_name='customers',
        verbose_name=_('Store')
    )
    name = models.CharField(_('Name'), max_length=255)
    phone = models.CharField(_('Phone'), max_length=30, blank=True)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'customers'
        ordering = ['name']
        verbose_name = _('Customer')
        verbose_name_plural = _('Customers')

    def __str__(self):
        return self.name


class Sale(models.Model):
    """
    Sale transaction.

    Business Rules:
    - total_amount = subtotal + tax_amount - discount_amount
    - subtotal = sum of line totals (see recalculate_totals)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    store = models.ForeignKey(
        'core.Store',
        on_delete=models.PROTECT,
        related_name='sales',
        verbose_name=_('Store')
    )
    customer = models.ForeignKey(
        Customer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales',
        verbose_name=_('Customer')
    )

    sale_number = models.CharField(
        _('Sale Number'),
        max_length=50,
        unique=True,
        blank=True,
        null=True,
        help_text=_('Human-readable invoice number')
    )
    status = models.CharField(
        _('Status'),
        max_length=20,
        choices=SaleStatusChoices.choices,
        default=SaleStatusChoices.COMPLETED
    )
    is_returned = models.BooleanField(
        _('Fully Returned'),
        default=False,
        help_text=_('Set once every line has been returned in full')
    )
    sale_date = models.DateTimeField(_('Sale Date'), default=timezone.now)

    # Financial fields
    subtotal = models.DecimalField(
        _('Subtotal'), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )
    tax_amount = models.DecimalField(
        _('Tax'), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )
    discount_amount = models.DecimalField(
        _('Discount'), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )
    total_amount = models.DecimalField(
        _('Total'), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )

    created_by = models.ForeignKey(
        'authz.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales_created',
        verbose_name=_('Created By')
    )
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'sales'
        ordering = ['-sale_date']
        verbose_name = _('Sale')
        verbose_name_plural = _('Sales')
        indexes = [
            models.Index(fields=['store', '-sale_date'], name='idx_sale_store_date'),
            models.Index(fields=['status', '-sale_date'], name='idx_sale_status_date'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name='sale_total_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(subtotal__gte=0),
                name='sale_subtotal_non_negative'
            ),
        ]

    def __str__(self):
        number = self.sale_number or f"#{self.id}"
        return f"Sale {number} - {self.get_status_display()} - {self.total_amount}"

    def save(self, *args, **kwargs):
        """Run full_clean() unless skip_validation=True is passed."""
        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)

    def clean(self):
        super().clean()

        expected_total = self.subtotal + self.tax_amount - self.discount_amount
        if self.total_amount != expected_total:
            raise ValidationError({
                'total_amount': (
                    f'Total mismatch: total_amount={self.total_amount} but '
                    f'subtotal + tax - discount = {expected_total}.'
                )
            })

    def recalculate_totals(self):
        """Recalculate subtotal and total from lines and save."""
        subtotal = sum((line.total_price for line in self.lines.all()), Decimal('0.00'))
        self.subtotal = subtotal
        self.total_amount = subtotal + self.tax_amount - self.discount_amount
        self.save(update_fields=['subtotal', 'total_amount', 'updated_at'], skip_validation=True)


class SaleLine(models.Model):
    """
    One medicine sold on a sale.

    unit_type is fixed at sale time and is the reference frame for how much
    of the line can later be returned.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name='lines',
        verbose_name=_('Sale')
    )
    medicine = models.ForeignKey(
        'medicines.Medicine',
        on_delete=models.PROTECT,
        related_name='sale_lines',
        verbose_name=_('Medicine')
    )
    quantity = models.PositiveIntegerField(
        _('Quantity'),
        validators=[MinValueValidator(1)]
    )
    unit_type = models.CharField(
        _('Unit Type'),
        max_length=20,
        choices=UnitTypeChoices.choices,
        default=UnitTypeChoices.STRIP
    )
    unit_price = models.DecimalField(_('Unit Price'), max_digits=10, decimal_places=2)
    total_price = models.DecimalField(
        _('Total Price'),
        max_digits=12,
        decimal_places=2,
        blank=True,
        help_text=_('quantity * unit_price, computed on save when empty')
    )

    # Batch metadata (copied onto return lines for audit)
    batch_number = models.CharField(_('Batch Number'), max_length=100, blank=True)
    batch_expiry_date = models.DateField(_('Batch Expiry'), blank=True, null=True)
    batch_manufacturing_date = models.DateField(_('Batch Manufactured'), blank=True, null=True)

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'sale_lines'
        ordering = ['created_at', 'id']
        verbose_name = _('Sale Line')
        verbose_name_plural = _('Sale Lines')
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name='sale_line_quantity_positive'
            ),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=0),
                name='sale_line_unit_price_non_negative'
            ),
        ]

    def __str__(self):
        return f"{self.medicine} x {self.quantity} {self.unit_type}"

    def save(self, *args, **kwargs):
        if self.total_price is None and self.unit_price is not None and self.quantity:
            self.total_price = (Decimal(self.quantity) * self.unit_price).quantize(Decimal('0.01'))
        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)
