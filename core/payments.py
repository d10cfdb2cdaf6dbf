"""
Hosted checkout sessions through the PayMongo API.

Only session creation lives here. Payment confirmation still goes through
the owner's review of the payment proof; gateway webhooks are not consumed.
"""

import logging
from decimal import Decimal

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

PAYMENT_METHOD_TYPES = ['card', 'gcash', 'paymaya', 'grab_pay']


class PaymentGatewayError(Exception):
    """Raised when a checkout session cannot be created."""

    def __init__(self, message, configured=True):
        super().__init__(message)
        self.configured = configured


def to_centavos(amount):
    return int((Decimal(amount) * 100).to_integral_value())


def build_checkout_payload(rental):
    """Request body for POST /checkout_sessions for a rental's total price."""
    title = rental.item.title
    separator = '&' if '?' in settings.CHECKOUT_SUCCESS_URL else '?'
    return {
        'data': {
            'attributes': {
                'line_items': [
                    {
                        'currency': 'PHP',
                        'amount': to_centavos(rental.total_price),
                        'description': f'Rental: {title} (ID: {rental.pk})',
                        'name': title,
                        'quantity': 1,
                    },
                ],
                'payment_method_types': PAYMENT_METHOD_TYPES,
                'success_url': f'{settings.CHECKOUT_SUCCESS_URL}{separator}rental_id={rental.pk}',
                'cancel_url': f'{settings.CHECKOUT_CANCEL_URL}{separator}rental_id={rental.pk}',
                'description': f'HiramKo Rental for {title}',
                'reference_number': f'rental-{rental.pk}',
            },
        },
    }


def create_checkout_session(rental):
    """
    Create a hosted checkout page for a rental and return its URL.

    Raises:
        PaymentGatewayError: If the gateway is not configured, unreachable,
            or rejects the request
    """
    secret_key = settings.PAYMONGO_SECRET_KEY
    if not secret_key:
        raise PaymentGatewayError('Online checkout is not configured.', configured=False)

    url = f"{settings.PAYMONGO_API_URL.rstrip('/')}/checkout_sessions"
    try:
        response = requests.post(
            url,
            json=build_checkout_payload(rental),
            auth=(secret_key, ''),
            headers={'Accept': 'application/json'},
            timeout=settings.PAYMONGO_TIMEOUT,
        )
        data = response.json()
    except requests.RequestException as e:
        logger.error(f"Checkout session request failed. Rental ID: {rental.pk}, Error: {e}")
        raise PaymentGatewayError('Payment gateway is unreachable.') from e
    except ValueError as e:
        logger.error(f"Checkout session returned invalid JSON. Rental ID: {rental.pk}")
        raise PaymentGatewayError('Payment gateway returned an invalid response.') from e

    if not isinstance(data, dict):
        logger.error(f"Checkout session returned a non-object body. Rental ID: {rental.pk}")
        raise PaymentGatewayError('Payment gateway returned an invalid response.')

    errors = data.get('errors')
    if errors or not 200 <= response.status_code < 300:
        detail = 'Payment creation failed'
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            detail = errors[0].get('detail') or detail
        logger.warning(
            f"Checkout session rejected by gateway. Rental ID: {rental.pk}, "
            f"Status: {response.status_code}, Detail: {detail}"
        )
        raise PaymentGatewayError(detail)

    try:
        checkout_url = data['data']['attributes']['checkout_url']
    except (KeyError, TypeError) as e:
        raise PaymentGatewayError('Payment gateway response did not include a checkout URL.') from e

    logger.info(f"Checkout session created. Rental ID: {rental.pk}, Amount: {rental.total_price}")
    return checkout_url
