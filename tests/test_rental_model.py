"""
Model tests for Rental pricing, validation and status transitions.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.test import override_settings
from django.utils import timezone

from core.models import Item, Rental
from factories import approve_rental, future, make_rental


@pytest.mark.django_db
class TestRentalPricing:

    def test_quote_multiplies_daily_price(self, item):
        quote = Rental.quote(item, future(1), future(4))

        assert quote['days'] == 3
        assert quote['rental_fee'] == Decimal('1500.00')
        assert quote['platform_fee'] == Decimal('15.00')
        assert quote['total_price'] == Decimal('1515.00')
        assert quote['deposit_amount'] == Decimal('1000.00')

    def test_same_day_rental_bills_one_day(self, item):
        quote = Rental.quote(item, future(2), future(2))

        assert quote['days'] == 1
        assert quote['total_price'] == Decimal('515.00')

    @override_settings(RENTAL_PLATFORM_FEE=Decimal('25.00'))
    def test_platform_fee_is_configurable(self, item):
        quote = Rental.quote(item, future(1), future(2))

        assert quote['platform_fee'] == Decimal('25.00')
        assert quote['total_price'] == Decimal('525.00')

    def test_created_rental_stores_quote(self, rental):
        assert rental.days == 2
        assert rental.rental_fee == Decimal('1000.00')
        assert rental.total_price == Decimal('1015.00')
        assert rental.status == 'pending'
        assert rental.payment_status == 'unpaid'
        assert rental.escrow_status == 'pending'


@pytest.mark.django_db
class TestRentalValidation:

    def test_cannot_rent_own_item(self, item, owner):
        with pytest.raises(ValidationError):
            make_rental(item, owner)

    def test_start_date_in_past_rejected(self, item, renter):
        yesterday = timezone.localdate() - timedelta(days=1)

        with pytest.raises(ValidationError):
            make_rental(item, renter, start=yesterday, end=future(1))

    def test_end_before_start_rejected(self, item, renter):
        with pytest.raises(ValidationError):
            make_rental(item, renter, start=future(5), end=future(3))

    def test_overlapping_rental_rejected(self, item, renter, other_user):
        make_rental(item, renter, start=future(1), end=future(3))

        with pytest.raises(ValidationError):
            make_rental(item, other_user, start=future(3), end=future(6))

    def test_adjacent_rental_allowed(self, item, renter, other_user):
        make_rental(item, renter, start=future(1), end=future(3))

        rental = make_rental(item, other_user, start=future(4), end=future(6))

        assert rental.pk is not None

    def test_finished_rentals_do_not_block_dates(self, item, renter, other_user):
        first = make_rental(item, renter, start=future(1), end=future(3))
        first.decline()

        second = make_rental(item, other_user, start=future(1), end=future(3))

        assert second.pk is not None

    def test_unavailable_item_rejected(self, owner, renter):
        item = Item.objects.create(
            owner=owner, title='Projector', description='1080p projector.',
            price_per_day=Decimal('300.00'), is_available=False
        )

        with pytest.raises(ValidationError):
            make_rental(item, renter)


@pytest.mark.django_db
class TestRentalTransitions:

    def test_can_transition_to_allowed_status(self, rental):
        assert rental.can_transition_to('approved') == (True, None)
        assert rental.can_transition_to('declined') == (True, None)

    def test_can_transition_to_rejects_skips(self, rental):
        is_valid, error = rental.can_transition_to('completed')

        assert is_valid is False
        assert 'pending to completed' in error

    def test_terminal_status_cannot_change(self, rental):
        rental.decline()

        is_valid, error = rental.can_transition_to('approved')

        assert is_valid is False
        assert 'declined' in error

    def test_direct_status_skip_rejected_on_save(self, rental):
        rental.status = 'completed'

        with pytest.raises(ValidationError):
            rental.save()

    def test_approval_requires_confirmed_payment(self, rental):
        rental.status = 'approved'

        with pytest.raises(ValidationError):
            rental.save()

    def test_decline_moves_no_money(self, rental, renter):
        rental.decline()
        renter.refresh_from_db()

        assert rental.status == 'declined'
        assert rental.escrow_status == 'refunded'
        assert renter.escrow_balance == Decimal('5000.00')
        assert not rental.escrow_entries.exists()

    def test_handover_requires_approval(self, rental):
        with pytest.raises(ValidationError):
            rental.handover()

    def test_delivery_rental_cannot_be_handed_over_by_owner(self, item, renter):
        rental = make_rental(item, renter, delivery_method='delivery')
        approve_rental(rental)

        with pytest.raises(ValidationError):
            rental.handover()

    def test_participants(self, rental, owner, renter, other_user):
        assert rental.is_participant(owner)
        assert rental.is_participant(renter)
        assert not rental.is_participant(other_user)
