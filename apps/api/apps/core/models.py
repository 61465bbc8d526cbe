"""
Core models: store
"""
import re
import uuid
from django.db import models
from django.utils.translation import gettext_lazy as _


DEFAULT_STORE_PREFIX = 'STR'


class Store(models.Model):
    """
    A pharmacy store (branch).

    Sales, medicines, and returns belong to exactly one store. The store
    name also provides the three-letter prefix of return numbers.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(_('Name'), max_length=255)
    code = models.CharField(
        _('Code'),
        max_length=20,
        unique=True,
        blank=True,
        null=True,
        help_text=_('Optional short internal code (e.g., BR-001)')
    )
    address_line1 = models.CharField(_('Address'), max_length=255, blank=True, null=True)
    city = models.CharField(_('City'), max_length=100, blank=True, null=True)
    phone = models.CharField(_('Phone'), max_length=30, blank=True, null=True)
    is_active = models.BooleanField(_('Active'), default=True)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'stores'
        ordering = ['name']
        verbose_name = _('Store')
        verbose_name_plural = _('Stores')

    def __str__(self):
        return self.name

    @property
    def number_prefix(self):
        """First three letters of the store name, uppercased and padded with X ('STR' if none)."""
        letters = re.sub(r'[^A-Za-z]', '', self.name or '')
        if not letters:
            return DEFAULT_STORE_PREFIX
        return letters[:3].upper().ljust(3, 'X')
