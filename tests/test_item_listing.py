"""
Tests for listing management: create, update, delete, images and "my items".
"""

from decimal import Decimal

import pytest
from rest_framework import status

from core.models import Item
from factories import create_test_image, make_rental

ITEMS_URL = '/api/items/'


def item_payload(**overrides):
    data = {
        'title': 'DJI Mini 3 Drone',
        'description': 'Compact drone with 3 batteries.',
        'category': 'gadgets',
        'condition': 'good',
        'price_per_day': '800.00',
        'deposit_amount': '2000.00',
        'location': 'Makati',
        'logistics_type': 'light',
    }
    data.update(overrides)
    return data


@pytest.mark.django_db
class TestItemCreation:

    def test_create_item(self, owner_client, owner):
        response = owner_client.post(ITEMS_URL, item_payload(), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['owner']['id'] == owner.id
        assert response.data['category_display'] == 'Gadgets'
        item = Item.objects.get(pk=response.data['id'])
        assert item.price_per_day == Decimal('800.00')

    def test_create_item_with_images(self, owner_client):
        data = item_payload()
        data['images'] = [create_test_image('one.jpg'), create_test_image('two.png', image_format='PNG')]

        response = owner_client.post(ITEMS_URL, data, format='multipart')

        assert response.status_code == status.HTTP_201_CREATED
        assert len(response.data['images']) == 2
        assert [image['order'] for image in response.data['images']] == [0, 1]

    def test_create_requires_authentication(self, api_client):
        response = api_client.post(ITEMS_URL, item_payload(), format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_zero_price_rejected(self, owner_client):
        response = owner_client.post(ITEMS_URL, item_payload(price_per_day='0'), format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'price_per_day' in response.data

    def test_owner_cannot_be_spoofed(self, owner_client, owner, other_user):
        response = owner_client.post(ITEMS_URL, item_payload(owner=other_user.id), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert Item.objects.get(pk=response.data['id']).owner == owner


@pytest.mark.django_db
class TestItemDetailAndUpdate:

    def test_public_detail(self, api_client, item):
        response = api_client.get(f'{ITEMS_URL}{item.id}/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['title'] == item.title

    def test_blocked_item_is_hidden_from_public(self, api_client, item):
        item.block()

        response = api_client.get(f'{ITEMS_URL}{item.id}/')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_blocked_item_visible_to_owner_and_staff(self, owner_client, staff_client, item):
        item.block()

        assert owner_client.get(f'{ITEMS_URL}{item.id}/').status_code == status.HTTP_200_OK
        assert staff_client.get(f'{ITEMS_URL}{item.id}/').status_code == status.HTTP_200_OK

    def test_owner_can_patch(self, owner_client, item):
        response = owner_client.patch(f'{ITEMS_URL}{item.id}/', {'price_per_day': '650.00'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        item.refresh_from_db()
        assert item.price_per_day == Decimal('650.00')

    def test_other_user_cannot_patch(self, other_client, item):
        response = other_client.patch(f'{ITEMS_URL}{item.id}/', {'price_per_day': '1.00'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        item.refresh_from_db()
        assert item.price_per_day == Decimal('500.00')

    def test_owner_can_delete_unrented_item(self, owner_client, item):
        response = owner_client.delete(f'{ITEMS_URL}{item.id}/')

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not Item.objects.filter(pk=item.id).exists()

    def test_item_with_rentals_cannot_be_deleted(self, owner_client, item, renter):
        make_rental(item, renter)

        response = owner_client.delete(f'{ITEMS_URL}{item.id}/')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert Item.objects.filter(pk=item.id).exists()

    def test_other_user_cannot_delete(self, other_client, item):
        response = other_client.delete(f'{ITEMS_URL}{item.id}/')

        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestItemImagesAndMine:

    def test_owner_uploads_images(self, owner_client, item):
        response = owner_client.post(
            f'{ITEMS_URL}{item.id}/images/',
            {'images': [create_test_image('front.jpg')]},
            format='multipart'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert item.images.count() == 1

    def test_image_upload_requires_files(self, owner_client, item):
        response = owner_client.post(f'{ITEMS_URL}{item.id}/images/', {}, format='multipart')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_non_owner_cannot_upload(self, other_client, item):
        response = other_client.post(
            f'{ITEMS_URL}{item.id}/images/',
            {'images': [create_test_image('front.jpg')]},
            format='multipart'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_my_items_include_unavailable(self, owner_client, item, owner):
        hidden = Item.objects.create(
            owner=owner, title='Old Tripod', description='Works.',
            price_per_day=Decimal('50.00'), is_available=False
        )

        response = owner_client.get(f'{ITEMS_URL}mine/')

        assert response.status_code == status.HTTP_200_OK
        ids = {result['id'] for result in response.data['results']}
        assert ids == {item.id, hidden.id}
