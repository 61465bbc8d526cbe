"""
Medicine models - catalog entry with dual-unit stock.
"""
from decimal import Decimal
import uuid

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _


DEFAULT_UNITS_PER_STRIP = 10


class UnitTypeChoices(models.TextChoices):
    """
    Unit a medicine quantity is expressed in.

    - STRIP: the container unit (a strip/pack of tablets)
    - INDIVIDUAL: a single tablet/dose
    """
    STRIP = 'strip', _('Strip')
    INDIVIDUAL = 'individual', _('Individual')


class Medicine(models.Model):
    """
    Medicine sold by a store.

    Stock is tracked as two independent counters. Restoring a strip touches
    strip_stock only and restoring individual units touches individual_stock
    only; the counters are never converted into each other automatically.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(
        'core.Store',
        on_delete=models.PROTECT,
        related_name='medicines',
        verbose_name=_('Store')
    )

    # Basic info
    name = models.CharField(_('Name'), max_length=255)
    generic_name = models.CharField(_('Generic Name'), max_length=255, blank=True)
    manufacturer = models.CharField(_('Manufacturer'), max_length=255, blank=True)
    category = models.CharField(_('Category'), max_length=100, blank=True)

    # Unit configuration
    has_strips = models.BooleanField(_('Sold by Strip'), default=True)
    has_individual = models.BooleanField(_('Sold Individually'), default=True)
    units_per_strip = models.PositiveIntegerField(
        _('Units per Strip'),
        default=DEFAULT_UNITS_PER_STRIP,
        validators=[MinValueValidator(1)],
        help_text=_('Conversion ratio between strip and individual units')
    )

    # Pricing
    strip_price = models.DecimalField(
        _('Strip Price'), max_digits=10, decimal_places=2, default=Decimal('0.00')
    )
    individual_price = models.DecimalField(
        _('Individual Price'), max_digits=10, decimal_places=2, default=Decimal('0.00')
    )

    # Inventory
    strip_stock = models.PositiveIntegerField(_('Strip Stock'), default=0)
    individual_stock = models.PositiveIntegerField(_('Individual Stock'), default=0)
    expiry_date = models.DateField(_('Expiry Date'), blank=True, null=True)

    is_active = models.BooleanField(_('Active'), default=True)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'medicines'
        ordering = ['name']
        verbose_name = _('Medicine')
        verbose_name_plural = _('Medicines')
        indexes = [
            models.Index(fields=['store', 'name'], name='idx_medicine_store_name'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(units_per_strip__gte=1),
                name='medicine_units_per_strip_positive'
            ),
            models.CheckConstraint(
                condition=models.Q(strip_stock__gte=0) & models.Q(individual_stock__gte=0),
                name='medicine_stock_non_negative'
            ),
        ]

    def __str__(self):
        return self.name

    @staticmethod
    def stock_field_for(unit_type):
        """Name of the stock counter a quantity in ``unit_type`` belongs to."""
        if unit_type == UnitTypeChoices.STRIP:
            return 'strip_stock'
        if unit_type == UnitTypeChoices.INDIVIDUAL:
            return 'individual_stock'
        raise ValueError(f'Unknown unit type: {unit_type}')

    def is_expired(self, on_date, batch_expiry_date=None):
        """A batch expiry date, when known, takes precedence over the medicine's own."""
        expiry_date = batch_expiry_date or self.expiry_date
        return expiry_date is not None and expiry_date < on_date
