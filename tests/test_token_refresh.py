"""
Tests for token refresh with rotation and for logout (refresh token blacklist).
"""

import pytest
from rest_framework import status
from rest_framework_simplejwt.tokens import RefreshToken

from factories import make_user

REFRESH_URL = '/api/auth/refresh/'
LOGOUT_URL = '/api/auth/logout/'


@pytest.fixture
def user(db):
    return make_user('pedro@example.com')


@pytest.fixture
def refresh_token(user):
    return str(RefreshToken.for_user(user))


@pytest.mark.django_db
class TestTokenRefresh:

    def test_refresh_returns_new_access_and_rotated_refresh(self, api_client, refresh_token):
        response = api_client.post(REFRESH_URL, {'refresh': refresh_token}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data
        assert 'refresh' in response.data
        assert response.data['refresh'] != refresh_token

    def test_old_refresh_token_is_blacklisted_after_rotation(self, api_client, refresh_token):
        api_client.post(REFRESH_URL, {'refresh': refresh_token}, format='json')

        response = api_client.post(REFRESH_URL, {'refresh': refresh_token}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_invalid_token_is_rejected(self, api_client):
        response = api_client.post(REFRESH_URL, {'refresh': 'not-a-token'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_access_token_cannot_be_used_as_refresh(self, api_client, user):
        access = str(RefreshToken.for_user(user).access_token)

        response = api_client.post(REFRESH_URL, {'refresh': access}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_missing_refresh_field(self, api_client):
        response = api_client.post(REFRESH_URL, {}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_inactive_user_cannot_refresh(self, api_client, user, refresh_token):
        user.is_active = False
        user.save()

        response = api_client.post(REFRESH_URL, {'refresh': refresh_token}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestLogout:

    def test_logout_blacklists_refresh_token(self, api_client, refresh_token):
        response = api_client.post(LOGOUT_URL, {'refresh': refresh_token}, format='json')
        assert response.status_code == status.HTTP_200_OK

        response = api_client.post(REFRESH_URL, {'refresh': refresh_token}, format='json')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_logout_twice_fails(self, api_client, refresh_token):
        api_client.post(LOGOUT_URL, {'refresh': refresh_token}, format='json')

        response = api_client.post(LOGOUT_URL, {'refresh': refresh_token}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_logout_with_garbage_token(self, api_client):
        response = api_client.post(LOGOUT_URL, {'refresh': 'garbage'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
