from decimal import Decimal

import pytest
import requests

from car_rental.errors import PaymentProviderError
from car_rental.paypal import PayPalClient


class FakeResponse:

    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status
        self.content = b'{}'

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


@pytest.fixture
def client():
    return PayPalClient('id', 'secret', mode='sandbox', brand_name='Car Rental')


def test_unknown_mode_falls_back_to_sandbox():
    assert PayPalClient('id', 'secret', mode='staging').base_url == 'https://api-m.sandbox.paypal.com'


def test_token_is_reused(client, monkeypatch):
    calls = []

    def fake_post(url, **kwargs):
        calls.append(url)
        return FakeResponse({'access_token': 'TOKEN', 'expires_in': 3600})

    monkeypatch.setattr('car_rental.paypal.requests.post', fake_post)
    assert client.access_token() == 'TOKEN'
    assert client.access_token() == 'TOKEN'
    assert calls == ['https://api-m.sandbox.paypal.com/v1/oauth2/token']


def test_create_order_sends_amount_and_urls(client, monkeypatch):
    sent = {}
    monkeypatch.setattr('car_rental.paypal.requests.post',
                        lambda url, **kwargs: FakeResponse({'access_token': 'T', 'expires_in': 3600}))

    def fake_request(method, url, json=None, headers=None, timeout=None):
        sent.update(method=method, url=url, body=json, headers=headers)
        return FakeResponse({'id': 'ORDER-9', 'status': 'CREATED',
                             'links': [{'rel': 'payer-action', 'href': 'https://paypal/approve'}]})

    monkeypatch.setattr('car_rental.paypal.requests.request', fake_request)
    order = client.create_order('BK-2025-000001', Decimal('44'), {'booking_id': 1},
                                'https://app/success', 'https://app/cancel')

    assert sent['method'] == 'POST'
    assert sent['url'].endswith('/v2/checkout/orders')
    assert sent['headers']['Authorization'] == 'Bearer T'
    unit = sent['body']['purchase_units'][0]
    assert unit['amount'] == {'currency_code': 'USD', 'value': '44.00'}
    assert sent['body']['application_context']['return_url'] == 'https://app/success'
    assert PayPalClient.approval_url(order) == 'https://paypal/approve'


def test_http_errors_become_provider_errors(client, monkeypatch):
    monkeypatch.setattr('car_rental.paypal.requests.post',
                        lambda url, **kwargs: FakeResponse({}, status=401))
    with pytest.raises(PaymentProviderError):
        client.capture_order('ORDER-1')


def test_capture_id():
    order = {'purchase_units': [{'payments': {'captures': [{'id': 'CAP-1'}]}}]}
    assert PayPalClient.capture_id(order) == 'CAP-1'
    assert PayPalClient.capture_id({}) is None


def test_get_order(client, monkeypatch):
    sent = {}
    monkeypatch.setattr('car_rental.paypal.requests.post',
                        lambda url, **kwargs: FakeResponse({'access_token': 'T', 'expires_in': 3600}))

    def fake_request(method, url, json=None, headers=None, timeout=None):
        sent.update(method=method, url=url, body=json)
        return FakeResponse({'id': 'ORDER-9', 'status': 'APPROVED'})

    monkeypatch.setattr('car_rental.paypal.requests.request', fake_request)
    assert client.get_order('ORDER-9')['status'] == 'APPROVED'
    assert sent['method'] == 'GET'
    assert sent['url'] == 'https://api-m.sandbox.paypal.com/v2/checkout/orders/ORDER-9'
    assert sent['body'] is None
