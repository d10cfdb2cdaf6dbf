"""
Tests for reviewing the other party of a completed rental.

Tests cover:
- Renters reviewing owners and owners reviewing renters
- Completed-rental, participant and duplicate checks
- Rating range validation
- Rating aggregation on the reviewee
- Public review listing
"""

from decimal import Decimal

import pytest
from rest_framework import status

from core.models import Review
from factories import advance_rental

REVIEWS_URL = '/api/reviews/'


@pytest.fixture
def completed_rental(rental):
    return advance_rental(rental, 'completed')


@pytest.mark.django_db
class TestReviewCreation:

    def test_renter_reviews_owner(self, renter_client, completed_rental, owner):
        response = renter_client.post(REVIEWS_URL, {
            'rental': completed_rental.id,
            'rating': 5,
            'comment': 'Camera was spotless.',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['reviewee'] == owner.id
        owner.refresh_from_db()
        assert owner.rating == Decimal('5.00')
        assert owner.reviews_count == 1

    def test_owner_reviews_renter(self, owner_client, completed_rental, renter):
        response = owner_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': 4}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['reviewee'] == renter.id

    def test_both_parties_can_review_same_rental(self, renter_client, owner_client, completed_rental):
        first = renter_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': 5}, format='json')
        second = owner_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': 5}, format='json')

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_201_CREATED
        assert Review.objects.filter(rental=completed_rental).count() == 2

    def test_duplicate_review_rejected(self, renter_client, completed_rental):
        renter_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': 5}, format='json')

        response = renter_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': 1}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'rental' in response.data
        assert Review.objects.count() == 1

    def test_incomplete_rental_rejected(self, renter_client, rental):
        response = renter_client.post(REVIEWS_URL, {'rental': rental.id, 'rating': 5}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'rental' in response.data

    def test_outsider_cannot_review(self, other_client, completed_rental):
        response = other_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': 1}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.parametrize('rating', [0, 6, 'five'])
    def test_invalid_rating(self, renter_client, completed_rental, rating):
        response = renter_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': rating}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'rating' in response.data

    def test_requires_authentication(self, api_client, completed_rental):
        response = api_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': 5}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestUserReviews:

    def test_lists_received_reviews_with_summary(self, api_client, renter_client, completed_rental, owner):
        renter_client.post(REVIEWS_URL, {'rental': completed_rental.id, 'rating': 4, 'comment': 'Good.'},
                           format='json')

        response = api_client.get(f'/api/users/{owner.id}/reviews/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['rating'] == '4.00'
        assert response.data['reviews_count'] == 1
        assert response.data['results'][0]['comment'] == 'Good.'

    def test_unknown_user(self, api_client, db):
        response = api_client.get('/api/users/99999/reviews/')

        assert response.status_code == status.HTTP_404_NOT_FOUND
