"""
Tests for the registration endpoint.

Tests cover:
- Successful registration and password hashing
- Email normalization and uniqueness
- Password confirmation and strength validation
- Privilege fields being ignored
- Username derivation from the email
"""

import pytest
from django.contrib.auth import get_user_model
from rest_framework import status

from factories import make_user

User = get_user_model()

REGISTER_URL = '/api/auth/register/'


def registration_data(**overrides):
    data = {
        'email': 'juan@example.com',
        'password': 'SecurePass123!',
        'confirm_password': 'SecurePass123!',
        'full_name': 'Juan Dela Cruz',
    }
    data.update(overrides)
    return data


@pytest.mark.django_db
class TestUserRegistration:

    def test_register_with_valid_data(self, api_client):
        response = api_client.post(REGISTER_URL, registration_data(), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['email'] == 'juan@example.com'
        assert response.data['full_name'] == 'Juan Dela Cruz'
        assert response.data['is_verified'] is False
        assert 'password' not in response.data
        assert 'confirm_password' not in response.data

        user = User.objects.get(email='juan@example.com')
        assert user.check_password('SecurePass123!')
        assert user.escrow_balance == 0

    def test_email_is_lowercased(self, api_client):
        response = api_client.post(REGISTER_URL, registration_data(email='Juan@Example.COM'), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert User.objects.filter(email='juan@example.com').exists()

    def test_duplicate_email_is_rejected_case_insensitively(self, api_client):
        make_user('juan@example.com')

        response = api_client.post(REGISTER_URL, registration_data(email='JUAN@example.com'), format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'email' in response.data

    def test_password_mismatch(self, api_client):
        response = api_client.post(
            REGISTER_URL, registration_data(confirm_password='Different123!'), format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'confirm_password' in response.data

    def test_weak_password_is_rejected(self, api_client):
        response = api_client.post(
            REGISTER_URL, registration_data(password='123', confirm_password='123'), format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'password' in response.data

    def test_full_name_is_required(self, api_client):
        data = registration_data()
        del data['full_name']

        response = api_client.post(REGISTER_URL, data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'full_name' in response.data

    def test_privilege_fields_are_ignored(self, api_client):
        data = registration_data(is_staff=True, is_superuser=True, is_verified=True, escrow_balance='99999.00')

        response = api_client.post(REGISTER_URL, data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        user = User.objects.get(email='juan@example.com')
        assert user.is_staff is False
        assert user.is_superuser is False
        assert user.is_verified is False
        assert user.escrow_balance == 0

    def test_username_is_derived_from_email_and_made_unique(self, api_client):
        make_user('juan@other.com')

        response = api_client.post(REGISTER_URL, registration_data(), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        user = User.objects.get(email='juan@example.com')
        assert user.username.startswith('juan')
        assert user.username != 'juan'
