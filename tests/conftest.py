"""
Shared fixtures for the API and model tests.
"""

from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from core.models import EscrowEntry, Item
from factories import auth, make_rental, make_user


@pytest.fixture(autouse=True)
def clear_cache(db):
    """Clear Django cache before each test to reset throttle limits."""
    from django.core.cache import cache
    cache.clear()


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    """Store uploaded files in a temporary directory."""
    settings.MEDIA_ROOT = str(tmp_path / 'media')
    return settings.MEDIA_ROOT


@pytest.fixture
def api_client():
    """Return API client for testing."""
    return APIClient()


@pytest.fixture
def owner(db):
    return make_user('owner@test.com', phone_number='09171234567', location='Quezon City')


@pytest.fixture
def renter(db):
    """Renter with ₱5,000 in escrow so deposits can be held."""
    user = make_user('renter@test.com', phone_number='09181234567', location='Makati')
    EscrowEntry.objects.top_up(user, Decimal('5000.00'), idempotency_key='fixture')
    user.refresh_from_db()
    return user


@pytest.fixture
def other_user(db):
    return make_user('other@test.com')


@pytest.fixture
def staff_user(db):
    return make_user('admin@test.com', is_staff=True)


@pytest.fixture
def rider(db):
    return make_user('rider@test.com', is_rider=True, phone_number='09191234567')


@pytest.fixture
def item(owner):
    return Item.objects.create(
        owner=owner,
        title='Sony A7 III Camera',
        description='Full-frame mirrorless camera with 28-70mm kit lens.',
        category='cameras',
        condition='like_new',
        price_per_day=Decimal('500.00'),
        deposit_amount=Decimal('1000.00'),
        location='Quezon City',
        logistics_type='light',
    )


@pytest.fixture
def rental(item, renter):
    return make_rental(item, renter)


@pytest.fixture
def owner_client(owner):
    return auth(APIClient(), owner)


@pytest.fixture
def renter_client(renter):
    return auth(APIClient(), renter)


@pytest.fixture
def staff_client(staff_user):
    return auth(APIClient(), staff_user)


@pytest.fixture
def other_client(other_user):
    return auth(APIClient(), other_user)


@pytest.fixture
def rider_client(rider):
    return auth(APIClient(), rider)
