"""
Login security tests.

Tests cover authentication, token generation, rate limiting and user
enumeration protection.
"""

import pytest
from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework_simplejwt.tokens import AccessToken

from factories import make_user

User = get_user_model()

LOGIN_URL = '/api/auth/login/'


@pytest.fixture
def active_user(db):
    return make_user('maria@example.com', full_name='Maria Santos')


@pytest.fixture
def inactive_user(db):
    return make_user('inactive@example.com', is_active=False)


@pytest.mark.django_db
class TestLogin:

    def test_successful_login_returns_tokens_and_user(self, api_client, active_user):
        response = api_client.post(
            LOGIN_URL, {'email': 'maria@example.com', 'password': 'TestPass123!'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data
        assert 'refresh' in response.data
        assert response.data['user']['id'] == active_user.id
        assert response.data['user']['full_name'] == 'Maria Santos'

        token = AccessToken(response.data['access'])
        assert token['user_id'] == str(active_user.id) or token['user_id'] == active_user.id

    def test_login_is_case_insensitive_on_email(self, api_client, active_user):
        response = api_client.post(
            LOGIN_URL, {'email': 'MARIA@Example.com', 'password': 'TestPass123!'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK

    def test_wrong_password_returns_generic_error(self, api_client, active_user):
        response = api_client.post(
            LOGIN_URL, {'email': 'maria@example.com', 'password': 'WrongPass123!'}, format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['detail'] == 'Invalid credentials'

    def test_unknown_email_returns_same_error(self, api_client):
        response = api_client.post(
            LOGIN_URL, {'email': 'nobody@example.com', 'password': 'TestPass123!'}, format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['detail'] == 'Invalid credentials'

    def test_inactive_account_returns_same_error(self, api_client, inactive_user):
        response = api_client.post(
            LOGIN_URL, {'email': 'inactive@example.com', 'password': 'TestPass123!'}, format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['detail'] == 'Invalid credentials'

    def test_missing_fields(self, api_client):
        response = api_client.post(LOGIN_URL, {'email': 'maria@example.com'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'password' in response.data

    def test_sql_injection_attempt_fails_safely(self, api_client, active_user):
        response = api_client.post(
            LOGIN_URL, {'email': "maria@example.com' OR '1'='1", 'password': "' OR '1'='1"}, format='json'
        )

        assert response.status_code in (status.HTTP_400_BAD_REQUEST, status.HTTP_401_UNAUTHORIZED)

    def test_login_is_rate_limited(self, api_client, active_user):
        for _ in range(5):
            api_client.post(
                LOGIN_URL, {'email': 'maria@example.com', 'password': 'WrongPass123!'}, format='json'
            )

        response = api_client.post(
            LOGIN_URL, {'email': 'maria@example.com', 'password': 'TestPass123!'}, format='json'
        )

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS

    def test_token_endpoint_accepts_email(self, api_client, active_user):
        response = api_client.post(
            '/api/token/', {'email': 'maria@example.com', 'password': 'TestPass123!'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data
