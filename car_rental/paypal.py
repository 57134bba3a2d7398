"""
Thin client for the PayPal REST API (Orders v2 and Payments v2 refunds).

Only the calls the checkout flow needs are wrapped. Responses are returned
as the decoded JSON dicts PayPal sends back; transport and HTTP errors are
raised as ``PaymentProviderError``.
"""

import json
import time

import requests
from loguru import logger

from .errors import PaymentProviderError

BASE_URLS = {
    'sandbox': 'https://api-m.sandbox.paypal.com',
    'live': 'https://api-m.paypal.com',
}


class PayPalClient:

    def __init__(self, client_id: str, client_secret: str, mode: str = 'sandbox',
                 currency: str = 'USD', brand_name: str = None, timeout: int = 30):
        self.client_id = client_id
        self.client_secret = client_secret
        self.mode = mode if mode in BASE_URLS else 'sandbox'
        self.base_url = BASE_URLS[self.mode]
        self.currency = currency
        self.brand_name = brand_name
        self.timeout = timeout
        self._token = None
        self._token_expires_at = 0

    @classmethod
    def from_config(cls, config) -> 'PayPalClient':
        return cls(
            client_id=config.get('PAYPAL_CLIENT_ID', ''),
            client_secret=config.get('PAYPAL_CLIENT_SECRET', ''),
            mode=config.get('PAYPAL_MODE', 'sandbox'),
            currency=config.get('PAYPAL_CURRENCY', 'USD'),
            brand_name=config.get('APP_NAME'),
        )

    def access_token(self) -> str:
        """Fetch an OAuth2 client-credentials token, reusing it until it expires."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        try:
            response = requests.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={'grant_type': 'client_credentials'},
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error('PayPal authentication failed: {}', exc)
            raise PaymentProviderError('Could not authenticate with PayPal.') from exc
        payload = response.json()
        self._token = payload['access_token']
        # Refresh a minute early
        self._token_expires_at = time.monotonic() + int(payload.get('expires_in', 0)) - 60
        return self._token

    def _request(self, method: str, path: str, body: dict = None) -> dict:
        headers = {
            'Authorization': f"Bearer {self.access_token()}",
            'Content-Type': 'application/json',
            'Prefer': 'return=representation',
        }
        try:
            response = requests.request(method, f"{self.base_url}{path}", json=body,
                                        headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error('PayPal {} {} failed: {}', method, path, exc)
            raise PaymentProviderError(f"PayPal request failed: {exc}") from exc
        return response.json() if response.content else {}

    def create_order(self, reference: str, amount, custom: dict, return_url: str,
                     cancel_url: str) -> dict:
        body = {
            'intent': 'CAPTURE',
            'purchase_units': [{
                'reference_id': reference,
                'description': f"Car Rental - {reference}",
                'custom_id': json.dumps(custom),
                'amount': {'currency_code': self.currency, 'value': f"{amount:.2f}"},
            }],
            'application_context': {
                'brand_name': self.brand_name,
                'landing_page': 'BILLING',
                'user_action': 'PAY_NOW',
                'return_url': return_url,
                'cancel_url': cancel_url,
            },
        }
        return self._request('POST', '/v2/checkout/orders', body)

    def capture_order(self, order_id: str) -> dict:
        return self._request('POST', f"/v2/checkout/orders/{order_id}/capture", {})

    def get_order(self, order_id: str) -> dict:
        return self._request('GET', f"/v2/checkout/orders/{order_id}")

    def refund_capture(self, capture_id: str, amount=None, note: str = None) -> dict:
        body = {}
        if amount is not None:
            body['amount'] = {'currency_code': self.currency, 'value': f"{amount:.2f}"}
        if note:
            body['note_to_payer'] = note[:255]
        return self._request('POST', f"/v2/payments/captures/{capture_id}/refund", body)

    @staticmethod
    def approval_url(order: dict):
        for link in order.get('links', []):
            if link.get('rel') in ('approve', 'payer-action'):
                return link.get('href')
        return None

    @staticmethod
    def capture_id(order: dict):
        """Id of the first capture in a captured order, needed for refunds."""
        for unit in order.get('purchase_units', []):
            for capture in unit.get('payments', {}).get('captures', []):
                return capture.get('id')
        return None
