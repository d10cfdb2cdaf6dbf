"""
Tests for hosted checkout sessions.

The gateway is never contacted: requests.post is patched in core.payments.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests
from rest_framework import status

from core.payments import PaymentGatewayError, build_checkout_payload, create_checkout_session, to_centavos
from factories import approve_rental

CHECKOUT_URL = 'https://checkout.paymongo.com/cs_test_123'


def gateway_response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


@pytest.fixture
def gateway(settings):
    settings.PAYMONGO_SECRET_KEY = 'sk_test_abc'
    settings.PAYMONGO_API_URL = 'https://api.paymongo.com/v1'
    settings.CHECKOUT_SUCCESS_URL = 'http://localhost:5173/#/dashboard?payment=success'
    settings.CHECKOUT_CANCEL_URL = 'http://localhost:5173/#/dashboard?payment=cancelled'
    with patch('core.payments.requests.post') as mock_post:
        mock_post.return_value = gateway_response({'data': {'attributes': {'checkout_url': CHECKOUT_URL}}})
        yield mock_post


def test_to_centavos():
    assert to_centavos('1015.00') == 101500
    assert to_centavos('0.5') == 50


@pytest.mark.django_db
class TestCheckoutSession:

    def test_payload_describes_rental(self, rental, settings):
        settings.CHECKOUT_SUCCESS_URL = 'https://app.example.com/success'
        payload = build_checkout_payload(rental)

        attributes = payload['data']['attributes']
        assert attributes['line_items'][0]['amount'] == 101500
        assert attributes['line_items'][0]['currency'] == 'PHP'
        assert attributes['reference_number'] == f'rental-{rental.id}'
        assert attributes['success_url'] == f'https://app.example.com/success?rental_id={rental.id}'

    def test_creates_session(self, rental, gateway):
        assert create_checkout_session(rental) == CHECKOUT_URL

        args, kwargs = gateway.call_args
        assert args[0] == 'https://api.paymongo.com/v1/checkout_sessions'
        assert kwargs['auth'] == ('sk_test_abc', '')
        assert kwargs['json']['data']['attributes']['success_url'].endswith(f'&rental_id={rental.id}')

    def test_not_configured(self, rental, settings):
        settings.PAYMONGO_SECRET_KEY = ''

        with pytest.raises(PaymentGatewayError) as excinfo:
            create_checkout_session(rental)

        assert excinfo.value.configured is False

    def test_gateway_error_detail(self, rental, gateway):
        gateway.return_value = gateway_response({'errors': [{'detail': 'amount is invalid'}]}, status_code=400)

        with pytest.raises(PaymentGatewayError, match='amount is invalid'):
            create_checkout_session(rental)

    def test_gateway_unreachable(self, rental, gateway):
        gateway.side_effect = requests.ConnectionError('boom')

        with pytest.raises(PaymentGatewayError, match='unreachable'):
            create_checkout_session(rental)

    @pytest.mark.parametrize('body', [['boom'], 'boom', None, 42])
    def test_non_object_body(self, rental, gateway, body):
        gateway.return_value = gateway_response(body)

        with pytest.raises(PaymentGatewayError, match='invalid response'):
            create_checkout_session(rental)

    def test_error_status_without_errors_key(self, rental, gateway):
        gateway.return_value = gateway_response({'message': 'Service unavailable'}, status_code=503)

        with pytest.raises(PaymentGatewayError, match='Payment creation failed'):
            create_checkout_session(rental)

    def test_malformed_errors_list(self, rental, gateway):
        gateway.return_value = gateway_response({'errors': ['bad']}, status_code=400)

        with pytest.raises(PaymentGatewayError, match='Payment creation failed'):
            create_checkout_session(rental)

    def test_response_without_url(self, rental, gateway):
        gateway.return_value = gateway_response({'data': {}})

        with pytest.raises(PaymentGatewayError):
            create_checkout_session(rental)


@pytest.mark.django_db
class TestCheckoutEndpoint:

    def test_renter_gets_checkout_url(self, renter_client, rental, gateway):
        response = renter_client.post(f'/api/rentals/{rental.id}/checkout/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'checkout_url': CHECKOUT_URL}

    def test_owner_cannot_checkout(self, owner_client, rental, gateway):
        response = owner_client.post(f'/api/rentals/{rental.id}/checkout/')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        gateway.assert_not_called()

    def test_paid_rental_cannot_checkout(self, renter_client, rental, gateway):
        approve_rental(rental)

        response = renter_client.post(f'/api/rentals/{rental.id}/checkout/')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_gateway_failure_returns_502(self, renter_client, rental, gateway):
        gateway.side_effect = requests.Timeout('slow')

        response = renter_client.post(f'/api/rentals/{rental.id}/checkout/')

        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    def test_invalid_gateway_body_returns_502(self, renter_client, rental, gateway):
        gateway.return_value = gateway_response(['boom'])

        response = renter_client.post(f'/api/rentals/{rental.id}/checkout/')

        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    def test_unconfigured_returns_503(self, renter_client, rental, settings):
        settings.PAYMONGO_SECRET_KEY = ''

        response = renter_client.post(f'/api/rentals/{rental.id}/checkout/')

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
