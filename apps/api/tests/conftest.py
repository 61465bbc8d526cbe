"""
Global test fixtures for pytest.

Provides reusable fixtures for the returns tests:
- Stores, staff users by group, authenticated API clients
- Medicines with dual-unit stock
- Completed sales with strip and individual lines
"""
import pytest
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth.models import Group
from django.utils import timezone
from rest_framework.test import APIClient

from apps.authz.models import StaffGroups, User
from apps.core.models import Store
from apps.medicines.models import Medicine, UnitTypeChoices
from apps.returns.policy import ReturnPolicy
from apps.sales.models import Customer, Sale, SaleLine


# ============================================================================
# Stores, groups, users
# ============================================================================

@pytest.fixture
def store(db):
    return Store.objects.create(name='City Pharmacy', code='CITY-01')


@pytest.fixture
def other_store(db):
    return Store.objects.create(name='Harbor Chemists', code='HARB-01')


@pytest.fixture
def staff_groups(db):
    """Create staff groups."""
    return {name: Group.objects.get_or_create(name=name)[0] for name in StaffGroups.ALL}


def _make_user(email, store, groups=(), **extra):
    user = User.objects.create_user(email=email, password='testpass123', store=store, **extra)
    for group in groups:
        user.groups.add(group)
    return user


@pytest.fixture
def pharmacist(store, staff_groups):
    """User in the Pharmacist group."""
    return _make_user('pharmacist@test.com', store, [staff_groups[StaffGroups.PHARMACIST]])


@pytest.fixture
def manager(store, staff_groups):
    """User in the StoreManager group."""
    return _make_user('manager@test.com', store, [staff_groups[StaffGroups.STORE_MANAGER]])


@pytest.fixture
def cashier(store, staff_groups):
    """User in the Cashier group (no access to returns)."""
    return _make_user('cashier@test.com', store, [staff_groups[StaffGroups.CASHIER]])


@pytest.fixture
def other_store_pharmacist(other_store, staff_groups):
    return _make_user('pharmacist@harbor.test', other_store, [staff_groups[StaffGroups.PHARMACIST]])


@pytest.fixture
def admin_user(db):
    """Superuser without a store."""
    return User.objects.create_superuser(email='admin@test.com', password='testpass123')


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def pharmacist_client(pharmacist):
    return _client_for(pharmacist)


@pytest.fixture
def manager_client(manager):
    return _client_for(manager)


@pytest.fixture
def cashier_client(cashier):
    return _client_for(cashier)


@pytest.fixture
def admin_client(admin_user):
    return _client_for(admin_user)


@pytest.fixture
def other_store_client(other_store_pharmacist):
    return _client_for(other_store_pharmacist)


# ============================================================================
# Policy
# ============================================================================

@pytest.fixture
def policy():
    """Default policy: 30 day window, approval after 7 days, 10 returns per day."""
    return ReturnPolicy()


# ============================================================================
# Catalog and sales
# ============================================================================

@pytest.fixture
def paracetamol(store):
    """10 tablets per strip, 20.00 per strip."""
    return Medicine.objects.create(
        store=store,
        name='Paracetamol 500mg',
        units_per_strip=10,
        strip_price=Decimal('20.00'),
        individual_price=Decimal('2.00'),
        strip_stock=50,
        individual_stock=30,
        expiry_date=timezone.now().date() + timedelta(days=365),
    )


@pytest.fixture
def amoxicillin(store):
    """15 capsules per strip, sold individually at 3.50."""
    return Medicine.objects.create(
        store=store,
        name='Amoxicillin 250mg',
        units_per_strip=15,
        strip_price=Decimal('52.50'),
        individual_price=Decimal('3.50'),
        strip_stock=20,
        individual_stock=100,
        expiry_date=timezone.now().date() + timedelta(days=200),
    )


@pytest.fixture
def customer(store):
    return Customer.objects.create(store=store, name='Walk-in Customer', phone='555-0100')


@pytest.fixture
def make_sale(store, customer, pharmacist):
    """
    Factory for completed sales.

    Usage:
        sale = make_sale([(paracetamol, 10, 'strip', Decimal('20.00'))], days_ago=3)
    """
    counter = {'n': 0}

    def _make(lines, days_ago=0, sale_store=None):
        counter['n'] += 1
        sale_store = sale_store or store
        sale = Sale.objects.create(
            store=sale_store,
            customer=customer if sale_store == store else None,
            sale_number=f'INV-{sale_store.code}-{counter["n"]:05d}',
            sale_date=timezone.now() - timedelta(days=days_ago),
            created_by=pharmacist,
        )
        for medicine, quantity, unit_type, unit_price in lines:
            SaleLine.objects.create(
                sale=sale,
                medicine=medicine,
                quantity=quantity,
                unit_type=unit_type,
                unit_price=unit_price,
                batch_number=f'B-{medicine.name[:4].upper()}-01',
                batch_expiry_date=medicine.expiry_date,
            )
        sale.recalculate_totals()
        return sale

    return _make


@pytest.fixture
def strip_sale(make_sale, paracetamol):
    """10 strips of paracetamol at 20.00 per strip (10 tablets per strip)."""
    return make_sale([(paracetamol, 10, UnitTypeChoices.STRIP, Decimal('20.00'))])


@pytest.fixture
def mixed_sale(make_sale, paracetamol, amoxicillin):
    """2 strips of paracetamol + 12 individual amoxicillin capsules."""
    return make_sale([
        (paracetamol, 2, UnitTypeChoices.STRIP, Decimal('20.00')),
        (amoxicillin, 12, UnitTypeChoices.INDIVIDUAL, Decimal('3.50')),
    ])


@pytest.fixture
def return_line():
    """Build a request line dict for a sale line."""
    def _line(sale_line, quantity, unit_type, **extra):
        data = {
            'sale_line_id': str(sale_line.id),
            'return_quantity': quantity,
            'unit_type': unit_type,
        }
        data.update(extra)
        return data
    return _line
