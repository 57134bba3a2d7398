"""
Factories and demo data.

The ``create_*`` factories build one row with sensible defaults, commit it
and return it; any column can be overridden by keyword. They back both the
``--seed`` command and the test suite.
"""

import itertools
import random
from datetime import datetime, time, timedelta
from decimal import Decimal

from loguru import logger

from . import bookings, db
from .models import (Car, CarBrand, CarCategory, DriverProfile, Location,
                     Promotion, User, UserVerification)

_seq = itertools.count(1)


def _next() -> int:
    return next(_seq)


def _save(obj):
    db.session.add(obj)
    db.session.commit()
    return obj


def create_user(name=None, email=None, password='password123', role='customer', **fields):
    n = _next()
    user = User(name=name or f"User {n}", email=email or f"user{n}@example.com",
                role=role, **fields)
    user.set_password(password)
    return _save(user)


def create_admin(**fields):
    return create_user(role='admin', **fields)


def create_verification(user, status='verified', **fields):
    fields.setdefault('driving_license_number', f"B2-{_next():08d}")
    fields.setdefault('license_type', 'B2')
    fields.setdefault('license_expiry_date', (datetime.now() + timedelta(days=3 * 365)).date())
    fields.setdefault('nationality', 'Vietnam')
    return _save(UserVerification(user_id=user.id, status=status, **fields))


def create_location(name=None, **fields):
    n = _next()
    name = name or f"Branch {n}"
    fields.setdefault('slug', f"branch-{n}")
    fields.setdefault('address', f"{n} Nguyen Hue, District 1, Ho Chi Minh City")
    fields.setdefault('latitude', Decimal('10.77370000'))
    fields.setdefault('longitude', Decimal('106.70330000'))
    fields.setdefault('opening_time', time(7, 0))
    fields.setdefault('closing_time', time(21, 0))
    return _save(Location(name=name, **fields))


def create_brand(name=None):
    n = _next()
    return _save(CarBrand(name=name or f"Brand {n}", slug=f"brand-{n}"))


def create_category(name=None):
    n = _next()
    return _save(CarCategory(name=name or f"Category {n}", slug=f"category-{n}"))


def create_car(owner=None, location=None, brand=None, category=None, **fields):
    n = _next()
    owner = owner or create_user(role='owner')
    location = location or create_location()
    brand = brand or create_brand()
    category = category or create_category()
    fields.setdefault('name', f"{brand.name} Model {n}")
    fields.setdefault('model', f"Model {n}")
    fields.setdefault('year', 2023)
    fields.setdefault('license_plate', f"51A-{n:05d}")
    fields.setdefault('hourly_rate', Decimal('50000'))
    fields.setdefault('daily_rate', Decimal('400000'))
    fields.setdefault('deposit_amount', Decimal('0'))
    fields.setdefault('overtime_fee_per_hour', Decimal('60000'))
    fields.setdefault('delivery_fee_per_km', Decimal('10000'))
    fields.setdefault('max_delivery_distance', Decimal('30'))
    fields.setdefault('is_verified', True)
    return _save(Car(owner_id=owner.id, location_id=location.id, brand_id=brand.id,
                     category_id=category.id, **fields))


def create_driver(user=None, **fields):
    user = user or create_user(role='customer')
    fields.setdefault('hourly_fee', Decimal('20000'))
    fields.setdefault('daily_fee', Decimal('300000'))
    fields.setdefault('overtime_fee_per_hour', Decimal('30000'))
    return _save(DriverProfile(user_id=user.id, **fields))


def create_promotion(code=None, discount_type='percentage', discount_value=10, **fields):
    n = _next()
    now = datetime.now()
    fields.setdefault('name', f"Promotion {n}")
    fields.setdefault('start_date', now - timedelta(days=1))
    fields.setdefault('end_date', now + timedelta(days=30))
    fields.setdefault('min_amount', Decimal('0'))
    fields.setdefault('min_rental_hours', 4)
    return _save(Promotion(code=code or f"PROMO{n}", discount_type=discount_type,
                           discount_value=Decimal(str(discount_value)), **fields))


# ---------------------------------------------------------------------------
# Demo data

LOCATIONS = [
    ('Tan Son Nhat Airport', 'Truong Son, Tan Binh, Ho Chi Minh City', 10.8184, 106.6588, True),
    ('District 1 Centre', '72 Le Thanh Ton, District 1, Ho Chi Minh City', 10.7769, 106.7009, False),
    ('Noi Bai Airport', 'Phu Minh, Soc Son, Ha Noi', 21.2212, 105.8072, True),
    ('Hoan Kiem', '2 Trang Tien, Hoan Kiem, Ha Noi', 21.0245, 105.8556, False),
    ('Da Nang Riverside', '36 Bach Dang, Hai Chau, Da Nang', 16.0717, 108.2243, False),
]

BRANDS = ['Toyota', 'Honda', 'Hyundai', 'Kia', 'Mazda', 'VinFast', 'Ford', 'Mercedes-Benz']

# Daily rate range (thousand VND) and deposit per category
CATEGORIES = {
    'Economy': ((400, 600), 2000000),
    'Sedan': ((600, 900), 3000000),
    'SUV': ((900, 1500), 5000000),
    'MPV': ((700, 1200), 4000000),
    'Luxury': ((2000, 5000), 10000000),
    'Electric': ((1000, 2500), 7000000),
}


def _slug(text: str) -> str:
    return text.lower().replace(' ', '-')


def _round_thousand(value) -> Decimal:
    return Decimal(int(round(value / 1000)) * 1000)


def seed_database(rng: random.Random = None, cars_per_location: int = 3) -> dict:
    """Populate an empty database with a small, consistent demo data set."""
    rng = rng or random.Random(42)
    admin = create_admin(name='Admin', email='admin@example.com', password='admin12345')
    owners = [create_user(role='owner', name=f"Owner {i}") for i in range(1, 3)]
    customers = []
    for i in range(1, 6):
        customer = create_user(name=f"Customer {i}", phone=f"09{rng.randint(10000000, 99999999)}")
        create_verification(customer, status='verified' if i % 2 else 'pending')
        customers.append(customer)

    locations = [
        create_location(name=name, slug=_slug(name), address=address,
                        latitude=Decimal(str(lat)), longitude=Decimal(str(lng)),
                        is_airport=airport, is_24_7=airport, is_popular=airport, sort_order=i)
        for i, (name, address, lat, lng, airport) in enumerate(LOCATIONS)
    ]
    brands = [_save(CarBrand(name=name, slug=_slug(name), sort_order=i))
              for i, name in enumerate(BRANDS)]
    categories = {name: _save(CarCategory(name=name, slug=_slug(name)))
                  for name in CATEGORIES}

    cars = []
    for location in locations:
        for _ in range(cars_per_location):
            category_name = rng.choice(list(CATEGORIES))
            (low, high), deposit = CATEGORIES[category_name]
            daily = Decimal(rng.randint(low, high) * 1000)
            hourly = _round_thousand(daily / 24 * Decimal('1.2'))
            brand = rng.choice(brands)
            cars.append(create_car(
                owner=rng.choice(owners), location=location, brand=brand,
                category=categories[category_name],
                name=f"{brand.name} {category_name}",
                seats=rng.choice([4, 5, 7]),
                transmission=rng.choice(['manual', 'automatic']),
                fuel_type='electric' if category_name == 'Electric' else rng.choice(['petrol', 'diesel', 'hybrid']),
                daily_rate=daily, hourly_rate=hourly, deposit_amount=Decimal(deposit),
                overtime_fee_per_hour=hourly + rng.randint(10, 20) * 1000,
                delivery_fee_per_km=Decimal(rng.randint(10, 30) * 1000),
                max_delivery_distance=Decimal(rng.choice([10, 20, 30])),
            ))

    drivers = []
    for i in range(1, 4):
        daily = Decimal(rng.randint(300, 500) * 1000)
        hourly = _round_thousand(daily / 24 * Decimal('1.2'))
        drivers.append(create_driver(
            user=create_user(name=f"Driver {i}"), owner_id=rng.choice(owners).id,
            daily_fee=daily, hourly_fee=hourly,
            overtime_fee_per_hour=hourly + rng.randint(10, 20) * 1000))

    now = datetime.now().replace(minute=0, second=0, microsecond=0)
    promotions = [
        create_promotion(code='WELCOME10', name='Welcome 10%', discount_value=10,
                         max_discount=Decimal('500000'), max_uses_per_user=1, is_featured=True,
                         created_by=admin.id),
        create_promotion(code='SAVE200K', name='Save 200k', discount_type='fixed_amount',
                         discount_value=200000, min_amount=Decimal('1000000'), max_uses=100,
                         created_by=admin.id),
        create_promotion(code='SUMMER', name='Summer sale', discount_value=15, status='upcoming',
                         start_date=now + timedelta(days=30), end_date=now + timedelta(days=90),
                         created_by=admin.id),
    ]

    created = []
    for i, customer in enumerate(customers):
        car = cars[i % len(cars)]
        pickup = now + timedelta(days=2 + i * 3, hours=9 - now.hour)
        created.append(bookings.create_booking(customer, {
            'car_id': car.id,
            'pickup_datetime': pickup.isoformat(),
            'return_datetime': (pickup + timedelta(hours=rng.choice([12, 24, 36]))).isoformat(),
            'payment_method': 'paypal',
            'with_insurance': i % 2 == 0,
            'promotion_code': 'WELCOME10' if i == 0 else None,
        }))

    counts = {
        'users': User.query.count(),
        'locations': len(locations),
        'cars': len(cars),
        'drivers': len(drivers),
        'promotions': len(promotions),
        'bookings': len(created),
    }
    logger.info('Seeded demo data: {}', counts)
    return counts
