"""
Tests for rider delivery jobs.
"""

import pytest
from rest_framework import status

from core.models import Notification
from factories import approve_rental, create_test_image, make_rental, make_user

DELIVERIES_URL = '/api/deliveries/'


@pytest.fixture
def delivery_rental(item, renter):
    rental = make_rental(item, renter, delivery_method='delivery')
    return approve_rental(rental)


@pytest.mark.django_db
class TestDeliveryJobs:

    def test_rider_sees_available_jobs(self, rider_client, delivery_rental):
        response = rider_client.get(DELIVERIES_URL)

        assert response.status_code == status.HTTP_200_OK
        assert [job['id'] for job in response.data['available']] == [delivery_rental.id]
        assert response.data['assigned'] == []

    def test_non_rider_forbidden(self, renter_client):
        response = renter_client.get(DELIVERIES_URL)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_rider_accepts_job(self, rider_client, rider, delivery_rental, renter, owner):
        response = rider_client.post(f'{DELIVERIES_URL}{delivery_rental.id}/accept/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'rider_pickup'
        assert response.data['rider'] == rider.id
        assert response.data['rider_phone'] == rider.phone_number
        assert Notification.objects.filter(user=renter, title='Delivery update').exists()
        assert Notification.objects.filter(user=owner, title='Delivery update').exists()

        listing = rider_client.get(DELIVERIES_URL)
        assert listing.data['available'] == []
        assert [job['id'] for job in listing.data['assigned']] == [delivery_rental.id]

    def test_job_can_only_be_accepted_once(self, rider_client, delivery_rental):
        second_rider = make_user('rider2@test.com', is_rider=True)
        delivery_rental.accept_delivery(second_rider)

        response = rider_client.post(f'{DELIVERIES_URL}{delivery_rental.id}/accept/')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_pickup_rental_is_not_a_delivery_job(self, rider_client, rental):
        approve_rental(rental)

        response = rider_client.post(f'{DELIVERIES_URL}{rental.id}/accept/')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_full_delivery_round_trip(self, rider_client, delivery_rental):
        rider_client.post(f'{DELIVERIES_URL}{delivery_rental.id}/accept/')

        pickup = rider_client.post(
            f'{DELIVERIES_URL}{delivery_rental.id}/status/',
            {'proof': create_test_image('pickup.jpg')},
            format='multipart'
        )
        assert pickup.status_code == status.HTTP_200_OK
        assert pickup.data['status'] == 'in_possession'
        assert pickup.data['pickup_proof_url'] is not None

        delivery_rental.refresh_from_db()
        delivery_rental.initiate_return()

        dropoff = rider_client.post(
            f'{DELIVERIES_URL}{delivery_rental.id}/status/',
            {'proof': create_test_image('return.jpg')},
            format='multipart'
        )
        assert dropoff.status_code == status.HTTP_200_OK
        assert dropoff.data['status'] == 'rider_return'
        assert dropoff.data['return_proof_url'] is not None

    def test_status_update_requires_proof(self, rider_client, delivery_rental):
        rider_client.post(f'{DELIVERIES_URL}{delivery_rental.id}/accept/')

        response = rider_client.post(f'{DELIVERIES_URL}{delivery_rental.id}/status/', {}, format='multipart')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_only_assigned_rider_updates(self, rider_client, delivery_rental):
        second_rider = make_user('rider2@test.com', is_rider=True)
        delivery_rental.accept_delivery(second_rider)

        response = rider_client.post(
            f'{DELIVERIES_URL}{delivery_rental.id}/status/',
            {'proof': create_test_image('pickup.jpg')},
            format='multipart'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_assigned_rider_can_view_rental(self, rider_client, delivery_rental):
        rider_client.post(f'{DELIVERIES_URL}{delivery_rental.id}/accept/')

        response = rider_client.get(f'/api/rentals/{delivery_rental.id}/')

        assert response.status_code == status.HTTP_200_OK
