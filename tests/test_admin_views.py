from datetime import datetime, timedelta

import pytest

from car_rental import bookings, db, payments, seed
from car_rental.models import (Booking, Car, CarBrand, CarCategory, Location, Promotion,
                               Review, User)
from car_rental.views.admin import is_last_admin

from .conftest import login


@pytest.fixture(autouse=True)
def quiet_mail(monkeypatch):
    monkeypatch.setattr('car_rental.mail.deliver', lambda to, subject, html: None)


@pytest.fixture
def admin_client(client, admin):
    login(client, admin)
    return client


def test_admin_routes_require_an_admin(client, customer):
    assert client.get('/admin/dashboard').status_code == 401
    login(client, customer)
    response = client.get('/admin/dashboard')
    assert response.status_code == 403
    assert response.get_json() == {'error': 'Admin access required'}


def test_dashboard(admin_client, make_booking):
    make_booking()
    data = admin_client.get('/admin/dashboard').get_json()
    assert data['bookings']['total'] == 1
    assert data['bookings']['by_status'] == {'pending': 1}
    assert data['users']['by_role']['admin'] == 1


def test_create_and_update_user(admin_client):
    response = admin_client.post('/admin/users', json={
        'name': 'Owner One', 'email': 'Owner@Example.com', 'role': 'owner',
        'password': 'password123', 'password_confirmation': 'password123'})
    assert response.status_code == 201
    user_id = response.get_json()['user']['id']
    assert response.get_json()['user']['email'] == 'owner@example.com'

    response = admin_client.put(f"/admin/users/{user_id}", json={'phone': '0909000111'})
    assert response.get_json()['user']['phone'] == '0909000111'


def test_admin_cannot_delete_or_demote_themselves(admin_client, admin):
    response = admin_client.delete(f"/admin/users/{admin.id}")
    assert response.status_code == 409
    assert response.get_json()['error'] == 'You cannot delete your own account.'

    response = admin_client.post(f"/admin/users/{admin.id}/role", json={'role': 'customer'})
    assert response.get_json()['error'] == 'You cannot change your own role.'

    response = admin_client.post(f"/admin/users/{admin.id}/status",
                                 json={'status': 'banned', 'reason': 'Test'})
    assert response.status_code == 409


def test_last_admin_check(app, admin):
    assert is_last_admin(admin)
    other = seed.create_admin()
    assert not is_last_admin(admin)

    other.deleted_at = datetime.now()
    db.session.commit()
    assert is_last_admin(admin)
    assert not is_last_admin(seed.create_user())


def test_role_changes_on_other_users(admin_client):
    customer = seed.create_user()
    response = admin_client.post(f"/admin/users/{customer.id}/role", json={'role': 'owner'})
    assert response.status_code == 200
    assert response.get_json()['user']['role'] == 'owner'

    second = seed.create_admin()
    response = admin_client.post(f"/admin/users/{second.id}/role", json={'role': 'customer'})
    assert response.status_code == 200

    response = admin_client.post(f"/admin/users/{customer.id}/role", json={'role': 'pilot'})
    assert response.status_code == 422


def test_status_change_requires_reason_for_suspension(admin_client, customer):
    response = admin_client.post(f"/admin/users/{customer.id}/status", json={'status': 'suspended'})
    assert response.status_code == 422

    response = admin_client.post(f"/admin/users/{customer.id}/status",
                                 json={'status': 'suspended', 'reason': 'Unpaid fees'})
    assert response.status_code == 200
    db.session.expire_all()
    assert db.session.get(User, customer.id).status == 'suspended'


def test_delete_user_is_soft(admin_client, customer):
    response = admin_client.delete(f"/admin/users/{customer.id}", json={'reason': 'Requested'})
    assert response.status_code == 200
    db.session.expire_all()
    user = db.session.get(User, customer.id)
    assert user.deleted_at is not None
    assert user.deletion_reason == 'Requested'
    assert not user.is_active


def test_reset_password(admin_client, customer):
    response = admin_client.post(f"/admin/users/{customer.id}/password",
                                 json={'password': 'newpass123', 'password_confirmation': 'other'})
    assert response.status_code == 422
    response = admin_client.post(f"/admin/users/{customer.id}/password",
                                 json={'password': 'newpass123', 'password_confirmation': 'newpass123'})
    assert response.status_code == 200
    db.session.expire_all()
    assert db.session.get(User, customer.id).check_password('newpass123')


def test_booking_lifecycle_endpoints(admin_client, make_booking, car):
    booking = make_booking(hours=24)
    booking_id = booking.id

    response = admin_client.post(f"/admin/bookings/{booking_id}/activate")
    assert response.status_code == 409

    assert admin_client.post(f"/admin/bookings/{booking_id}/confirm").status_code == 200
    assert admin_client.post(f"/admin/bookings/{booking_id}/activate").status_code == 200

    actual = (booking.return_datetime + timedelta(hours=1)).isoformat()
    response = admin_client.post(f"/admin/bookings/{booking_id}/complete", json={
        'actual_return_datetime': actual, 'extra_fee': 40000, 'extra_fee_reason': 'Fuel',
        'car_condition_notes': 'Scratch on rear bumper'})
    assert response.status_code == 200
    data = response.get_json()['booking']
    # 1 late hour (60k) + 40k on top of 1,000,000, then VAT
    assert data['charge']['extra_fee'] == 100000.0
    assert data['charge']['total_amount'] == 1210000.0
    assert data['car_condition_notes'] == 'Scratch on rear bumper'

    db.session.expire_all()
    assert db.session.get(Booking, booking_id).status == 'completed'
    assert car.status == 'available'


def test_reject_and_delete_booking(admin_client, make_booking):
    booking = make_booking()
    assert admin_client.delete(f"/admin/bookings/{booking.id}").status_code == 409
    assert admin_client.post(f"/admin/bookings/{booking.id}/reject", json={}).status_code == 422

    response = admin_client.post(f"/admin/bookings/{booking.id}/reject",
                                 json={'rejection_reason': 'Documents missing'})
    assert response.get_json()['booking']['status'] == 'rejected'
    assert admin_client.delete(f"/admin/bookings/{booking.id}").status_code == 200
    db.session.expire_all()
    assert Booking.query.count() == 0


def test_update_booking_notes(admin_client, make_booking):
    booking = make_booking()
    response = admin_client.patch(f"/admin/bookings/{booking.id}", json={'admin_notes': 'VIP'})
    assert response.get_json()['booking']['admin_notes'] == 'VIP'


def test_search_bookings(admin_client, make_booking, customer):
    booking = make_booking()
    data = admin_client.get('/admin/bookings', query_string={'search': customer.email}).get_json()
    assert [b['id'] for b in data['bookings']] == [booking.id]
    data = admin_client.get('/admin/bookings', query_string={'status': 'completed'}).get_json()
    assert data['bookings'] == []


def car_payload(**fields):
    data = {
        'owner_id': seed.create_user(role='owner').id,
        'brand_id': seed.create_brand(name='Toyota').id,
        'category_id': seed.create_category(name='Sedan').id,
        'location_id': seed.create_location().id,
        'model': 'Vios', 'year': 2022, 'license_plate': '51g-12345', 'seats': 5,
        'transmission': 'automatic', 'fuel_type': 'petrol',
        'hourly_rate': 60000, 'daily_rate': 500000, 'daily_hour_threshold': 10,
        'deposit_amount': 2000000, 'min_rental_hours': 4,
    }
    data.update(fields)
    return data


def test_car_management(admin_client, car, make_booking):
    response = admin_client.post('/admin/cars', json=car_payload())
    assert response.status_code == 201
    created = response.get_json()['car']
    assert created['name'] == 'Toyota Vios'
    assert created['license_plate'] == '51G-12345'
    assert created['is_verified'] is False
    assert created['status'] == 'available'

    duplicate = admin_client.post('/admin/cars', json=car_payload())
    assert duplicate.get_json()['errors']['license_plate'] == 'The license plate has already been taken.'
    too_old = admin_client.post('/admin/cars', json=car_payload(license_plate='30A-1', year=1990))
    assert too_old.status_code == 422
    not_owner = admin_client.post('/admin/cars', json=car_payload(
        license_plate='30A-2', owner_id=seed.create_user().id))
    assert not_owner.status_code == 422

    car_id = created['id']
    response = admin_client.patch(f"/admin/cars/{car_id}", json={'daily_rate': 450000})
    assert response.get_json()['car']['daily_rate'] == 450000.0
    response = admin_client.post(f"/admin/cars/{car_id}/verify")
    assert response.get_json()['car']['is_verified'] is True
    response = admin_client.post(f"/admin/cars/{car_id}/toggle-status")
    assert response.get_json()['car']['status'] == 'maintenance'

    listed = admin_client.get('/admin/cars', query_string={'search': '51G'}).get_json()
    assert [c['id'] for c in listed['cars']] == [car_id]

    make_booking()
    assert admin_client.delete(f"/admin/cars/{car.id}").status_code == 409
    assert admin_client.delete(f"/admin/cars/{car_id}").status_code == 200
    db.session.expire_all()
    assert db.session.get(Car, car_id) is None


def test_brand_management(admin_client, car):
    first = admin_client.post('/admin/brands', json={'name': 'Mazda'}).get_json()['brand']
    second = admin_client.post('/admin/brands', json={'name': 'Mazda'}).get_json()['brand']
    assert (first['slug'], second['slug']) == ('mazda', 'mazda-1')
    assert admin_client.post('/admin/brands', json={}).status_code == 422

    response = admin_client.put(f"/admin/brands/{second['id']}",
                                json={'name': 'Mazda Motor', 'is_active': False})
    assert response.get_json()['brand']['slug'] == 'mazda-motor'
    listed = admin_client.get('/admin/brands', query_string={'status': 'inactive'}).get_json()
    assert [b['id'] for b in listed['brands']] == [second['id']]

    assert admin_client.delete(f"/admin/brands/{car.brand_id}").status_code == 409
    assert admin_client.delete(f"/admin/brands/{first['id']}").status_code == 200
    db.session.expire_all()
    assert db.session.get(CarBrand, first['id']) is None


def test_category_management(admin_client, car):
    response = admin_client.post('/admin/categories', json={'name': 'Family SUV', 'sort_order': 2})
    assert response.status_code == 201
    category = response.get_json()['category']
    assert category['slug'] == 'family-suv'
    assert category['cars_count'] == 0

    shown = admin_client.get(f"/admin/categories/{car.category_id}").get_json()
    assert shown['cars_count'] == 1
    assert admin_client.delete(f"/admin/categories/{car.category_id}").status_code == 409
    assert admin_client.delete(f"/admin/categories/{category['id']}").status_code == 200
    db.session.expire_all()
    assert db.session.get(CarCategory, category['id']) is None


def test_driver_management(admin_client):
    driver = seed.create_driver()
    response = admin_client.post(f"/admin/drivers/{driver.id}/toggle-availability")
    assert response.get_json()['driver']['is_available_for_booking'] is False

    response = admin_client.put(f"/admin/drivers/{driver.id}", json={'daily_fee': 350000,
                                                                     'daily_hour_threshold': 8})
    assert response.get_json()['driver']['daily_fee'] == 350000.0
    assert response.get_json()['driver']['daily_hour_threshold'] == 8

    response = admin_client.post(f"/admin/drivers/{driver.id}/status", json={'status': 'retired'})
    assert response.status_code == 422


def test_location_crud(admin_client, car):
    response = admin_client.post('/admin/locations', json={
        'name': 'Thu Duc Hub', 'address': '1 Vo Van Ngan, Thu Duc',
        'latitude': 10.85, 'longitude': 106.77, 'opening_time': '06:30'})
    assert response.status_code == 201
    location = response.get_json()['location']
    assert location['slug'] == 'thu-duc-hub'
    assert location['opening_time'] == '06:30'

    bad = admin_client.post('/admin/locations', json={'name': 'X', 'address': 'Y', 'latitude': 95})
    assert bad.status_code == 422

    toggled = admin_client.post(f"/admin/locations/{location['id']}/toggle").get_json()
    assert toggled['location']['is_active'] is False

    in_use = admin_client.delete(f"/admin/locations/{car.location_id}")
    assert in_use.status_code == 409
    assert in_use.get_json()['error'] == 'Failed to delete location. It may be in use.'

    assert admin_client.delete(f"/admin/locations/{location['id']}").status_code == 200
    db.session.expire_all()
    assert db.session.get(Location, location['id']) is None


def promotion_payload(**fields):
    now = datetime.now()
    data = {
        'code': 'summer25', 'name': 'Summer', 'discount_type': 'percentage',
        'discount_value': 25, 'start_date': now.isoformat(),
        'end_date': (now + timedelta(days=30)).isoformat(), 'status': 'active',
    }
    data.update(fields)
    return data


def test_promotion_validation(admin_client):
    assert admin_client.post('/admin/promotions',
                             json=promotion_payload(discount_value=120)).status_code == 422
    assert admin_client.post('/admin/promotions',
                             json=promotion_payload(code='X' * 21)).status_code == 422
    now = datetime.now()
    assert admin_client.post('/admin/promotions', json=promotion_payload(
        start_date=now.isoformat(), end_date=(now - timedelta(days=1)).isoformat())).status_code == 422
    assert admin_client.post('/admin/promotions',
                             json=promotion_payload(status='archived')).status_code == 422


def test_promotion_crud(admin_client):
    response = admin_client.post('/admin/promotions', json=promotion_payload())
    assert response.status_code == 201
    promotion = response.get_json()['promotion']
    assert promotion['code'] == 'SUMMER25'

    duplicate = admin_client.post('/admin/promotions', json=promotion_payload())
    assert duplicate.status_code == 422

    toggled = admin_client.post(f"/admin/promotions/{promotion['id']}/toggle").get_json()
    assert toggled['promotion']['status'] == 'paused'

    response = admin_client.put(f"/admin/promotions/{promotion['id']}", json={'max_discount': 200000})
    assert response.get_json()['promotion']['max_discount'] == 200000.0

    assert admin_client.delete(f"/admin/promotions/{promotion['id']}").status_code == 200
    db.session.expire_all()
    assert Promotion.query.count() == 0


def test_used_promotion_is_archived_not_deleted(admin_client, make_booking):
    promotion = seed.create_promotion(code='USED')
    make_booking(promotion_code='USED')
    response = admin_client.delete(f"/admin/promotions/{promotion.id}")
    assert response.status_code == 200
    db.session.expire_all()
    assert db.session.get(Promotion, promotion.id).status == 'archived'


def test_only_active_or_paused_promotions_toggle(admin_client):
    for status in ('archived', 'upcoming'):
        promotion = seed.create_promotion(status=status)
        response = admin_client.post(f"/admin/promotions/{promotion.id}/toggle")
        assert response.status_code == 409
        db.session.expire_all()
        assert db.session.get(Promotion, promotion.id).status == status


def test_refund_endpoint(admin_client, make_booking):
    booking = make_booking()
    started = payments.start_payment(booking, 'paypal', 'full_payment', 'http://r', 'http://c')
    payments.capture_payment(started['order_id'])

    response = admin_client.post(f"/admin/payments/{started['payment_id']}/refund",
                                 json={'reason': 'Car broke down'})
    assert response.status_code == 200
    assert response.get_json()['payment']['status'] == 'refunded'

    again = admin_client.post(f"/admin/payments/{started['payment_id']}/refund", json={})
    assert again.status_code == 400

    listed = admin_client.get('/admin/payments', query_string={'status': 'refunded'}).get_json()
    assert len(listed) == 1


def _completed_booking(make_booking, admin, start):
    booking = make_booking(start=start)
    bookings.confirm(booking, admin)
    bookings.activate(booking)
    bookings.complete(booking, booking.return_datetime)
    return booking


def test_review_moderation_updates_car_rating(admin_client, admin, make_booking, customer, car, pickup):
    first = _completed_booking(make_booking, admin, pickup)
    second = _completed_booking(make_booking, admin, pickup + timedelta(days=2))
    r1 = Review(booking_id=first.id, car_id=car.id, user_id=customer.id, rating=5)
    r2 = Review(booking_id=second.id, car_id=car.id, user_id=customer.id, rating=2)
    db.session.add_all([r1, r2])
    db.session.commit()

    admin_client.post(f"/admin/reviews/{r1.id}/approve")
    admin_client.post(f"/admin/reviews/{r2.id}/approve")
    db.session.expire_all()
    assert float(car.average_rating) == 3.5

    admin_client.post(f"/admin/reviews/{r2.id}/reject")
    db.session.expire_all()
    assert float(car.average_rating) == 5.0

    response = admin_client.post(f"/admin/reviews/{r1.id}/respond", json={'response': 'Thanks!'})
    assert response.get_json()['review']['response'] == 'Thanks!'

    assert admin_client.delete(f"/admin/reviews/{r1.id}").status_code == 200
    db.session.expire_all()
    assert car.average_rating is None


def test_verification_review(admin_client, customer):
    verification = seed.create_verification(customer, status='pending')

    response = admin_client.post(f"/admin/verifications/{verification.id}/reject", json={})
    assert response.status_code == 422

    response = admin_client.post(f"/admin/verifications/{verification.id}/approve")
    assert response.get_json()['verification']['status'] == 'verified'
    again = admin_client.post(f"/admin/verifications/{verification.id}/approve")
    assert again.status_code == 409

    response = admin_client.post(f"/admin/verifications/{verification.id}/reject",
                                 json={'reason': 'Licence expired'})
    assert response.get_json()['verification']['rejected_reason'] == 'Licence expired'
