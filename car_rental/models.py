"""Database models for the car rental platform.

Money columns are ``Numeric(12, 2)`` and hold amounts in the application
currency (VND). Status-like columns are plain strings; the allowed values
are listed in the module-level tuples next to each model and checked by
the views before writing.
"""

from datetime import datetime, time
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from . import db

Money = db.Numeric(12, 2)

USER_ROLES = ('customer', 'owner', 'admin')
USER_STATUSES = ('active', 'inactive', 'suspended', 'banned')


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    address = db.Column(db.Text)
    date_of_birth = db.Column(db.Date)
    role = db.Column(db.String(20), default='customer', nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)
    deletion_reason = db.Column(db.Text)
    deletion_requested_at = db.Column(db.DateTime)
    deleted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.now)

    verification = db.relationship('UserVerification', uselist=False,
                                   foreign_keys='UserVerification.user_id',
                                   back_populates='user')

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    # Flask-Login refuses to log in users for whom this is False.
    @property
    def is_active(self) -> bool:
        return self.status == 'active' and self.deleted_at is None

    def is_admin(self) -> bool:
        return self.role == 'admin'

    def is_owner(self) -> bool:
        return self.role == 'owner'

    def is_verified(self) -> bool:
        return self.verification is not None and self.verification.status == 'verified'

    def can_rent_cars(self) -> bool:
        return self.is_active

    def __repr__(self) -> str:
        return f"<User {self.email}>"


VERIFICATION_STATUSES = ('pending', 'verified', 'rejected', 'expired')


class UserVerification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=False)
    driving_license_number = db.Column(db.String(50))
    license_type = db.Column(db.String(20))
    license_issue_date = db.Column(db.Date)
    license_expiry_date = db.Column(db.Date)
    license_issued_country = db.Column(db.String(100))
    nationality = db.Column(db.String(100))
    status = db.Column(db.String(20), default='pending', nullable=False)
    verified_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    verified_at = db.Column(db.DateTime)
    rejected_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    rejected_at = db.Column(db.DateTime)
    rejected_reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.now)

    user = db.relationship('User', foreign_keys=[user_id], back_populates='verification')

    def __repr__(self) -> str:
        return f"<UserVerification user={self.user_id} {self.status}>"


class Location(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.Text)
    address = db.Column(db.String(500), nullable=False)
    latitude = db.Column(db.Numeric(10, 8))
    longitude = db.Column(db.Numeric(11, 8))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(255))
    opening_time = db.Column(db.Time, default=time(8, 0))
    closing_time = db.Column(db.Time, default=time(18, 0))
    is_24_7 = db.Column(db.Boolean, default=False)
    is_airport = db.Column(db.Boolean, default=False)
    is_popular = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)
    sort_order = db.Column(db.Integer, default=0)

    cars = db.relationship('Car', back_populates='location')

    def is_open(self, at: datetime = None) -> bool:
        """Return True if the branch is open at the given moment (default now)."""
        if not self.is_active:
            return False
        if self.is_24_7:
            return True
        if self.opening_time is None or self.closing_time is None:
            return False
        moment = (at or datetime.now()).time()
        return self.opening_time <= moment <= self.closing_time

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self) -> str:
        return f"<Location {self.slug}>"


class CarBrand(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    sort_order = db.Column(db.Integer, default=0)

    cars = db.relationship('Car', back_populates='brand')


class CarCategory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    sort_order = db.Column(db.Integer, default=0)

    cars = db.relationship('Car', back_populates='category')


CAR_STATUSES = ('available', 'rented', 'maintenance', 'inactive')
TRANSMISSIONS = ('manual', 'automatic')
FUEL_TYPES = ('petrol', 'diesel', 'electric', 'hybrid')


class Car(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    brand_id = db.Column(db.Integer, db.ForeignKey('car_brand.id'), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey('car_category.id'), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey('location.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    model = db.Column(db.String(100), nullable=False)
    color = db.Column(db.String(50))
    year = db.Column(db.Integer)
    license_plate = db.Column(db.String(20), unique=True)
    seats = db.Column(db.Integer, default=4)
    transmission = db.Column(db.String(20), default='automatic')
    fuel_type = db.Column(db.String(20), default='petrol')
    odometer_km = db.Column(db.Integer, default=0)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), default='available', nullable=False)
    is_verified = db.Column(db.Boolean, default=False)
    is_delivery_available = db.Column(db.Boolean, default=True)

    # Pricing
    hourly_rate = db.Column(Money, nullable=False)
    daily_rate = db.Column(Money, nullable=False)
    daily_hour_threshold = db.Column(db.Integer, default=10)  # hours that bill as one day
    deposit_amount = db.Column(Money, default=0)
    min_rental_hours = db.Column(db.Integer, default=4)
    overtime_fee_per_hour = db.Column(Money, default=0)
    delivery_fee_per_km = db.Column(Money)
    max_delivery_distance = db.Column(db.Numeric(8, 2))  # km

    rental_count = db.Column(db.Integer, default=0)
    average_rating = db.Column(db.Numeric(3, 2))

    owner = db.relationship('User', backref=db.backref('cars', lazy=True))
    brand = db.relationship('CarBrand', back_populates='cars')
    category = db.relationship('CarCategory', back_populates='cars')
    location = db.relationship('Location', back_populates='cars')
    bookings = db.relationship('Booking', back_populates='car')
    reviews = db.relationship('Review', back_populates='car')

    @property
    def display_name(self) -> str:
        return self.name or f"{self.brand.name} {self.model}"

    def is_rentable(self) -> bool:
        return self.status == 'available' and self.is_verified

    def approved_reviews(self):
        return [r for r in self.reviews if r.status == 'approved']

    def refresh_average_rating(self) -> None:
        ratings = [r.rating for r in self.approved_reviews()]
        if ratings:
            self.average_rating = Decimal(sum(ratings)) / len(ratings)
        else:
            self.average_rating = None

    def __repr__(self) -> str:
        return f"<Car {self.license_plate}>"


DRIVER_STATUSES = ('available', 'on_duty', 'off_duty', 'suspended')


class DriverProfile(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'))  # car owner employing the driver
    hourly_fee = db.Column(Money, default=0)
    daily_fee = db.Column(Money, default=0)
    overtime_fee_per_hour = db.Column(Money, default=0)
    daily_hour_threshold = db.Column(db.Integer, default=10)
    status = db.Column(db.String(20), default='available', nullable=False)
    is_available_for_booking = db.Column(db.Boolean, default=True)
    completed_trips = db.Column(db.Integer, default=0)
    average_rating = db.Column(db.Numeric(3, 2))
    total_km_driven = db.Column(db.Integer, default=0)
    total_hours_driven = db.Column(db.Integer, default=0)

    user = db.relationship('User', foreign_keys=[user_id],
                           backref=db.backref('driver_profile', uselist=False))
    owner = db.relationship('User', foreign_keys=[owner_id])

    def is_bookable(self) -> bool:
        return self.is_available_for_booking and self.status == 'available'

    def __repr__(self) -> str:
        return f"<DriverProfile user={self.user_id} {self.status}>"


DISCOUNT_TYPES = ('percentage', 'fixed_amount')
PROMOTION_STATUSES = ('active', 'paused', 'upcoming', 'archived')


class Promotion(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    discount_type = db.Column(db.String(20), nullable=False)
    discount_value = db.Column(Money, nullable=False)
    max_discount = db.Column(Money)  # cap for percentage discounts
    min_amount = db.Column(Money, default=0)
    min_rental_hours = db.Column(db.Integer, default=4)
    max_uses = db.Column(db.Integer)  # None means unlimited
    max_uses_per_user = db.Column(db.Integer, default=1)
    used_count = db.Column(db.Integer, default=0)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)
    is_auto_apply = db.Column(db.Boolean, default=False)
    is_featured = db.Column(db.Boolean, default=False)
    priority = db.Column(db.Integer, default=0)  # lower applies first
    created_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    created_at = db.Column(db.DateTime, default=datetime.now)

    creator = db.relationship('User')

    def has_reached_limit(self) -> bool:
        if self.max_uses is None:
            return False
        return (self.used_count or 0) >= self.max_uses

    def __repr__(self) -> str:
        return f"<Promotion {self.code}>"


BOOKING_STATUSES = ('pending', 'confirmed', 'active', 'completed', 'cancelled', 'rejected')
BOOKING_PAYMENT_METHODS = ('credit_card', 'paypal', 'bank_transfer')
BOOKING_PAYMENT_STATUSES = ('pending', 'paid', 'failed', 'refunded')


class Booking(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    booking_code = db.Column(db.String(20), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    car_id = db.Column(db.Integer, db.ForeignKey('car.id'), nullable=False)
    confirmed_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    cancelled_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    pickup_location_id = db.Column(db.Integer, db.ForeignKey('location.id'), nullable=False)
    return_location_id = db.Column(db.Integer, db.ForeignKey('location.id'), nullable=False)
    pickup_datetime = db.Column(db.DateTime, nullable=False)
    return_datetime = db.Column(db.DateTime, nullable=False)
    actual_pickup_time = db.Column(db.DateTime)
    actual_return_time = db.Column(db.DateTime)

    # Rate snapshot taken when the booking is made
    hourly_rate = db.Column(Money, nullable=False)
    daily_rate = db.Column(Money, nullable=False)
    daily_hour_threshold = db.Column(db.Integer, default=10)
    deposit_amount = db.Column(Money, default=0)

    with_driver = db.Column(db.Boolean, default=False)
    driver_profile_id = db.Column(db.Integer, db.ForeignKey('driver_profile.id'))
    driver_hourly_fee = db.Column(Money)
    driver_daily_fee = db.Column(Money)
    total_driver_hours = db.Column(db.Integer, default=0)
    driver_notes = db.Column(db.Text)

    is_delivery = db.Column(db.Boolean, default=False)
    delivery_address = db.Column(db.String(500))
    delivery_distance = db.Column(db.Numeric(10, 2))
    delivery_fee_per_km = db.Column(Money)

    status = db.Column(db.String(20), default='pending', nullable=False)
    total_amount = db.Column(Money, default=0)
    payment_method = db.Column(db.String(20))
    payment_status = db.Column(db.String(20), default='pending', nullable=False)
    confirmed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.Text)
    special_requests = db.Column(db.Text)
    admin_notes = db.Column(db.Text)
    car_condition_notes = db.Column(db.Text)
    reminder_sent_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.now)

    user = db.relationship('User', foreign_keys=[user_id],
                           backref=db.backref('bookings', lazy=True))
    owner = db.relationship('User', foreign_keys=[owner_id])
    car = db.relationship('Car', back_populates='bookings')
    pickup_location = db.relationship('Location', foreign_keys=[pickup_location_id])
    return_location = db.relationship('Location', foreign_keys=[return_location_id])
    driver_profile = db.relationship('DriverProfile', backref=db.backref('bookings', lazy=True))
    charge = db.relationship('BookingCharge', uselist=False, back_populates='booking',
                             cascade='all, delete-orphan')
    promotions = db.relationship('BookingPromotion', back_populates='booking',
                                 cascade='all, delete-orphan')
    payments = db.relationship('Payment', back_populates='booking',
                               cascade='all, delete-orphan')
    review = db.relationship('Review', uselist=False, back_populates='booking',
                             cascade='all, delete-orphan')

    def can_be_cancelled(self) -> bool:
        return self.status in ('pending', 'confirmed')

    def can_be_confirmed(self) -> bool:
        return self.status == 'pending'

    def can_be_started(self) -> bool:
        return self.status == 'confirmed'

    def can_be_completed(self) -> bool:
        return self.status == 'active'

    def can_be_deleted(self) -> bool:
        return self.status in ('cancelled', 'rejected')

    def __repr__(self) -> str:
        return f"<Booking {self.booking_code} {self.status}>"


class BookingCharge(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('booking.id'), unique=True, nullable=False)
    total_hours = db.Column(db.Integer, default=0)
    total_days = db.Column(db.Integer, default=0)
    hourly_rate = db.Column(Money)
    daily_rate = db.Column(Money)
    base_amount = db.Column(Money, default=0)
    delivery_fee = db.Column(Money, default=0)
    driver_fee_amount = db.Column(Money, default=0)
    insurance_fee = db.Column(Money, default=0)
    extra_fee = db.Column(Money, default=0)
    extra_fee_details = db.Column(db.JSON)
    discount_amount = db.Column(Money, default=0)
    subtotal = db.Column(Money, default=0)
    vat_amount = db.Column(Money, default=0)
    total_amount = db.Column(Money, default=0)
    deposit_amount = db.Column(Money, default=0)
    amount_paid = db.Column(Money, default=0)
    balance_due = db.Column(Money, default=0)
    refund_amount = db.Column(Money, default=0)

    booking = db.relationship('Booking', back_populates='charge')

    def __repr__(self) -> str:
        return f"<BookingCharge booking={self.booking_id} total={self.total_amount}>"


class BookingPromotion(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('booking.id'), nullable=False)
    promotion_id = db.Column(db.Integer, db.ForeignKey('promotion.id'), nullable=False)
    applied_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    promotion_code = db.Column(db.String(20), nullable=False)
    discount_amount = db.Column(Money, nullable=False)
    promotion_details = db.Column(db.JSON)
    applied_at = db.Column(db.DateTime, default=datetime.now)

    booking = db.relationship('Booking', back_populates='promotions')
    promotion = db.relationship('Promotion')


PAYMENT_METHODS = ('cash', 'paypal', 'credit_card', 'bank_transfer', 'wallet')
PAYMENT_TYPES = ('deposit', 'full_payment', 'partial', 'refund')
PAYMENT_STATUSES = ('pending', 'completed', 'failed', 'refunded', 'cancelled')


class Payment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(100), unique=True, nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey('booking.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    payment_method = db.Column(db.String(20), default='cash', nullable=False)
    payment_type = db.Column(db.String(20), default='deposit', nullable=False)
    amount = db.Column(Money, nullable=False)
    amount_vnd = db.Column(Money)
    amount_usd = db.Column(Money)
    exchange_rate = db.Column(db.Numeric(12, 4))
    currency = db.Column(db.String(3), default='USD')
    status = db.Column(db.String(20), default='pending', nullable=False)
    paypal_order_id = db.Column(db.String(100), index=True)
    paypal_payer_id = db.Column(db.String(100))
    paypal_payer_email = db.Column(db.String(255))
    paypal_response = db.Column(db.JSON)
    notes = db.Column(db.Text)
    paid_at = db.Column(db.DateTime)
    refunded_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.now)

    booking = db.relationship('Booking', back_populates='payments')
    user = db.relationship('User')

    def is_completed(self) -> bool:
        return self.status == 'completed'

    def is_pending(self) -> bool:
        return self.status == 'pending'

    def is_refunded(self) -> bool:
        return self.status == 'refunded'

    def mark_completed(self, when: datetime = None) -> None:
        self.status = 'completed'
        self.paid_at = when or datetime.now()

    def mark_failed(self) -> None:
        self.status = 'failed'

    def mark_refunded(self, when: datetime = None) -> None:
        self.status = 'refunded'
        self.refunded_at = when or datetime.now()

    def __repr__(self) -> str:
        return f"<Payment {self.transaction_id} {self.status}>"


REVIEW_STATUSES = ('pending', 'approved', 'rejected')


class Review(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('booking.id'), unique=True, nullable=False)
    car_id = db.Column(db.Integer, db.ForeignKey('car.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text)
    status = db.Column(db.String(20), default='pending', nullable=False)
    response = db.Column(db.Text)
    responded_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    responded_at = db.Column(db.DateTime)
    is_verified_booking = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.now)

    booking = db.relationship('Booking', back_populates='review')
    car = db.relationship('Car', back_populates='reviews')
    user = db.relationship('User', foreign_keys=[user_id])

    def __repr__(self) -> str:
        return f"<Review car={self.car_id} rating={self.rating}>"


class Contact(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50))
    subject = db.Column(db.String(255))
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), default='new')  # new, read or replied
    created_at = db.Column(db.DateTime, default=datetime.now)
