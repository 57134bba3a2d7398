from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from car_rental import create_app, db
from car_rental import bookings, seed
from car_rental.paypal import PayPalClient


class FakePayPal:
    """Stands in for PayPalClient; records calls instead of hitting the API."""

    currency = 'USD'
    approval_url = staticmethod(PayPalClient.approval_url)
    capture_id = staticmethod(PayPalClient.capture_id)

    def __init__(self):
        self.orders = {}
        self.captured = []
        self.refunds = []
        self.capture_status = 'COMPLETED'
        self.capture_error = None

    def create_order(self, reference, amount, custom, return_url, cancel_url):
        order_id = f"ORDER-{len(self.orders) + 1}"
        self.orders[order_id] = {'reference': reference, 'amount': amount, 'custom': custom,
                                 'return_url': return_url, 'cancel_url': cancel_url}
        return {
            'id': order_id,
            'status': 'CREATED',
            'links': [{'rel': 'approve',
                       'href': f"https://www.sandbox.paypal.com/checkoutnow?token={order_id}"}],
        }

    def capture_order(self, order_id):
        if self.capture_error is not None:
            raise self.capture_error
        self.captured.append(order_id)
        return {
            'id': order_id,
            'status': self.capture_status,
            'payer': {'payer_id': 'PAYER123', 'email_address': 'buyer@example.com'},
            'purchase_units': [{'payments': {'captures': [{'id': f"CAPTURE-{order_id}"}]}}],
        }

    def refund_capture(self, capture_id, amount=None, note=None):
        self.refunds.append((capture_id, amount, note))
        return {'id': f"REFUND-{capture_id}", 'status': 'COMPLETED'}


@pytest.fixture
def app():
    app = create_app('car_rental.config.TestingConfig')
    app.extensions['paypal'] = FakePayPal()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def paypal(app):
    return app.extensions['paypal']


@pytest.fixture
def customer(app):
    return seed.create_user(name='Lan Nguyen')


@pytest.fixture
def admin(app):
    return seed.create_admin(name='Site Admin')


@pytest.fixture
def location(app):
    return seed.create_location(name='District 1 Centre')


@pytest.fixture
def car(app, location):
    # 50k/hour, 400k/day, a day is 10 hours
    return seed.create_car(location=location, hourly_rate=Decimal('50000'),
                           daily_rate=Decimal('400000'), daily_hour_threshold=10,
                           overtime_fee_per_hour=Decimal('60000'))


@pytest.fixture
def pickup():
    return (datetime.now() + timedelta(days=3)).replace(hour=9, minute=0, second=0, microsecond=0)


@pytest.fixture
def make_booking(app, customer, car, pickup):
    """Create a booking through the service; ``hours`` long from the default pickup."""

    def _make(user=None, hours=24, start=None, now=None, **extra):
        start = start or pickup
        data = {
            'car_id': car.id,
            'pickup_datetime': start.isoformat(),
            'return_datetime': (start + timedelta(hours=hours)).isoformat(),
            'payment_method': 'paypal',
        }
        data.update(extra)
        return bookings.create_booking(user or customer, data, now=now)

    return _make


def login(client, user, password='password123'):
    response = client.post('/auth/login', json={'email': user.email, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response
