"""
Tests for the append-only escrow ledger and the wallet endpoints.
"""

from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from rest_framework import status

from core.models import EscrowEntry, Notification
from factories import make_user

ESCROW_URL = '/api/escrow/'
TOP_UP_URL = '/api/escrow/top-up/'


@pytest.mark.django_db
class TestLedgerPosting:

    def test_top_up_credits_balance(self, other_user):
        entry, created = EscrowEntry.objects.top_up(other_user, Decimal('250.00'), idempotency_key='a')
        other_user.refresh_from_db()

        assert created is True
        assert entry.entry_type == 'top_up'
        assert entry.amount == Decimal('250.00')
        assert entry.balance_after == Decimal('250.00')
        assert other_user.escrow_balance == Decimal('250.00')

    def test_replayed_key_returns_original_entry(self, other_user):
        first, _ = EscrowEntry.objects.top_up(other_user, Decimal('250.00'), idempotency_key='same')
        second, created = EscrowEntry.objects.top_up(other_user, Decimal('250.00'), idempotency_key='same')
        other_user.refresh_from_db()

        assert created is False
        assert second.pk == first.pk
        assert other_user.escrow_balance == Decimal('250.00')

    def test_replayed_key_with_different_amount_conflicts(self, other_user):
        EscrowEntry.objects.top_up(other_user, Decimal('250.00'), idempotency_key='same')

        with pytest.raises(ValidationError) as excinfo:
            EscrowEntry.objects.top_up(other_user, Decimal('300.00'), idempotency_key='same')

        assert excinfo.value.code == 'idempotency_conflict'

    @pytest.mark.parametrize('amount', [Decimal('99.99'), Decimal('100000.01')])
    def test_top_up_limits(self, other_user, amount):
        with pytest.raises(ValidationError):
            EscrowEntry.objects.top_up(other_user, amount)

    def test_debit_cannot_overdraw(self, other_user):
        EscrowEntry.objects.top_up(other_user, Decimal('100.00'))

        with pytest.raises(ValidationError) as excinfo:
            EscrowEntry.objects.post(other_user.pk, Decimal('-150.00'), 'deposit_hold', 'overdraw')

        assert excinfo.value.code == 'insufficient_balance'
        other_user.refresh_from_db()
        assert other_user.escrow_balance == Decimal('100.00')

    def test_zero_amount_rejected(self, other_user):
        with pytest.raises(ValidationError):
            EscrowEntry.objects.post(other_user.pk, Decimal('0'), 'top_up', 'zero')

    def test_balance_matches_sum_of_entries(self, renter):
        EscrowEntry.objects.top_up(renter, Decimal('750.00'))
        EscrowEntry.objects.post(renter.pk, Decimal('-1200.00'), 'deposit_hold', 'hold-1')
        renter.refresh_from_db()

        assert EscrowEntry.objects.balance_for(renter.pk) == renter.escrow_balance
        assert renter.escrow_balance == Decimal('4550.00')

    def test_entries_cannot_be_modified(self, renter):
        entry = EscrowEntry.objects.filter(user=renter).first()
        entry.amount = Decimal('1.00')

        with pytest.raises(ValidationError):
            entry.save()

    def test_entries_cannot_be_deleted(self, renter):
        entry = EscrowEntry.objects.filter(user=renter).first()

        with pytest.raises(ValidationError):
            entry.delete()

        assert EscrowEntry.objects.filter(pk=entry.pk).exists()


@pytest.mark.django_db
class TestEscrowEndpoints:

    def test_history_and_balance(self, renter_client):
        response = renter_client.get(ESCROW_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['balance'] == '5000.00'
        assert response.data['count'] == 1
        assert response.data['results'][0]['entry_type'] == 'top_up'

    def test_history_is_private(self, other_client):
        response = other_client.get(ESCROW_URL)

        assert response.data['balance'] == '0.00'
        assert response.data['count'] == 0

    def test_top_up(self, other_client, other_user):
        response = other_client.post(TOP_UP_URL, {'amount': '500.00'}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['balance'] == '500.00'
        assert response.data['entry']['amount'] == '500.00'
        assert Notification.objects.filter(user=other_user, title='Top-up received').exists()

    def test_top_up_replay(self, other_client, other_user):
        other_client.post(TOP_UP_URL, {'amount': '500.00'}, format='json', HTTP_IDEMPOTENCY_KEY='wallet-1')
        response = other_client.post(
            TOP_UP_URL, {'amount': '500.00'}, format='json', HTTP_IDEMPOTENCY_KEY='wallet-1'
        )

        assert response.status_code == status.HTTP_200_OK
        other_user.refresh_from_db()
        assert other_user.escrow_balance == Decimal('500.00')
        assert Notification.objects.filter(user=other_user, title='Top-up received').count() == 1

    def test_top_up_key_conflict(self, other_client):
        other_client.post(TOP_UP_URL, {'amount': '500.00'}, format='json', HTTP_IDEMPOTENCY_KEY='wallet-1')
        response = other_client.post(
            TOP_UP_URL, {'amount': '700.00'}, format='json', HTTP_IDEMPOTENCY_KEY='wallet-1'
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_same_key_for_different_users_is_independent(self, other_client, renter_client, renter):
        other_client.post(TOP_UP_URL, {'amount': '500.00'}, format='json', HTTP_IDEMPOTENCY_KEY='shared')
        response = renter_client.post(
            TOP_UP_URL, {'amount': '500.00'}, format='json', HTTP_IDEMPOTENCY_KEY='shared'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['balance'] == '5500.00'

    @pytest.mark.parametrize('amount', ['50.00', '200000.00', 'lots'])
    def test_invalid_amounts(self, other_client, amount):
        response = other_client.post(TOP_UP_URL, {'amount': amount}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'amount' in response.data

    def test_requires_authentication(self, api_client):
        assert api_client.get(ESCROW_URL).status_code == status.HTTP_401_UNAUTHORIZED
        assert api_client.post(TOP_UP_URL, {'amount': '500.00'}, format='json').status_code == \
            status.HTTP_401_UNAUTHORIZED

    def test_balance_not_writable_through_profile(self, renter_client, renter):
        renter_client.patch('/api/auth/profile/', {'escrow_balance': '99999.00'}, format='json')

        renter.refresh_from_db()
        assert renter.escrow_balance == Decimal('5000.00')

    def test_new_user_starts_empty(self, db):
        user = make_user('fresh@test.com')

        assert user.escrow_balance == Decimal('0.00')
        assert EscrowEntry.objects.balance_for(user.pk) == Decimal('0.00')
