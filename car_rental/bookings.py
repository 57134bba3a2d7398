"""
Booking services: pricing previews, availability, creation and the status
lifecycle.

Views call into this module with plain payload dicts; everything that
touches more than one row happens inside a single commit here, and a
failure rolls the whole unit back before the error is re-raised.

Status lifecycle::

    pending -> confirmed -> active -> completed
    pending -> rejected
    pending | confirmed -> cancelled
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from flask import current_app
from geopy.distance import geodesic
from loguru import logger
from sqlalchemy import func

from . import db
from . import mail
from . import pricing
from .errors import (AuthorizationError, BookingStateError, PricingError,
                     UnavailableError, ValidationError)
from .models import (BOOKING_PAYMENT_METHODS, Booking, BookingCharge,
                     BookingPromotion, Car, DriverProfile, Location, Promotion)
from .parsing import (parse_bool, parse_choice, parse_datetime, parse_decimal,
                      parse_int, require)

# Bookings in these states no longer hold the car
RELEASED_STATUSES = ('cancelled', 'rejected')


@dataclass
class PromotionCheck:
    code: Optional[str] = None
    is_valid: bool = False
    discount_amount: Decimal = pricing.ZERO
    promotion: Optional[Promotion] = None
    details: Optional[dict] = None
    error: Optional[str] = None


@dataclass
class Quote:
    car: Car
    pickup_location: Location
    return_location: Location
    pickup: datetime
    return_: datetime
    rental: pricing.DurationCharge
    driver: Optional[DriverProfile]
    driver_charge: pricing.DurationCharge
    delivery: pricing.DeliveryQuote
    promotion: PromotionCheck
    insurance_requested: bool
    breakdown: pricing.ChargeBreakdown
    calculated_at: datetime = field(default_factory=datetime.now)


def _vat_rate() -> Decimal:
    return Decimal(str(current_app.config.get('VAT_RATE', '0.10')))


def promotion_uses_by_user(promotion_id: int, user_id: int) -> int:
    return (BookingPromotion.query
            .join(Booking, BookingPromotion.booking_id == Booking.id)
            .filter(BookingPromotion.promotion_id == promotion_id,
                    Booking.user_id == user_id)
            .count())


def check_promotion(code, base_amount, user_id, rental_hours, now=None) -> PromotionCheck:
    """Run the promotion rules in order and stop at the first that fails."""
    if not code:
        return PromotionCheck()
    now = now or datetime.now()
    base_amount = pricing.to_decimal(base_amount)

    promotion = Promotion.query.filter_by(code=code).first()
    if promotion is None:
        return PromotionCheck(code=code, error='Invalid promotion code.')

    def refused(message):
        return PromotionCheck(code=code, promotion=promotion, error=message)

    if promotion.status != 'active':
        return refused('This promotion is not currently active.')
    if now < promotion.start_date or now > promotion.end_date:
        return refused('This promotion is not valid at this time.')
    if base_amount < pricing.to_decimal(promotion.min_amount):
        return refused(f"Minimum order amount of {promotion.min_amount} required.")
    if rental_hours < (promotion.min_rental_hours or 0):
        return refused(f"Minimum rental duration of {promotion.min_rental_hours} hours required.")
    if promotion.has_reached_limit():
        return refused('This promotion has reached its usage limit.')
    if user_id is not None and promotion.max_uses_per_user is not None:
        if promotion_uses_by_user(promotion.id, user_id) >= promotion.max_uses_per_user:
            return refused('You have already used this promotion the maximum number of times.')

    discount = pricing.promotion_discount(pricing.PromotionTerms.for_promotion(promotion), base_amount)
    details = {
        'name': promotion.name,
        'description': promotion.description,
        'discount_type': promotion.discount_type,
        'discount_value': float(promotion.discount_value),
        'max_discount': float(promotion.max_discount) if promotion.max_discount else None,
        'min_amount': float(promotion.min_amount or 0),
    }
    return PromotionCheck(code=code, is_valid=True, discount_amount=discount,
                          promotion=promotion, details=details)


def delivery_distance(location: Location, latitude, longitude) -> Optional[Decimal]:
    """Geodesic distance in km from a branch to a delivery point."""
    if not location.has_coordinates():
        return None
    origin = (float(location.latitude), float(location.longitude))
    return pricing.money(geodesic(origin, (float(latitude), float(longitude))).km)


def is_car_available(car: Car, pickup: datetime, return_: datetime,
                     exclude_booking_id: int = None) -> bool:
    # Two windows overlap when each one starts before the other ends
    query = Booking.query.filter(
        Booking.car_id == car.id,
        Booking.status.notin_(RELEASED_STATUSES),
        Booking.pickup_datetime < return_,
        Booking.return_datetime > pickup,
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query.first() is None


def booked_car_ids(pickup: datetime, return_: datetime):
    rows = (db.session.query(Booking.car_id)
            .filter(Booking.status.notin_(RELEASED_STATUSES),
                    Booking.pickup_datetime < return_,
                    Booking.return_datetime > pickup)
            .distinct())
    return [row[0] for row in rows]


def generate_booking_code(now: datetime = None) -> str:
    now = now or datetime.now()
    last_id = db.session.query(func.max(Booking.id)).scalar() or 0
    return f"BK-{now.year}-{last_id + 1:06d}"


def quote(data: dict, user=None, now: datetime = None, apply_vat: bool = True,
          extra_fee=None) -> Quote:
    """Price a booking request without writing anything.

    Only booking fields are read from ``data``. VAT and extra fees are set
    by the caller, never by the customer payload.
    """
    require(data, 'car_id', 'pickup_datetime', 'return_datetime')
    now = now or datetime.now()
    car = Car.query.get_or_404(parse_int(data, 'car_id'))
    pickup = parse_datetime(data, 'pickup_datetime')
    return_ = parse_datetime(data, 'return_datetime')
    if return_ <= pickup:
        raise ValidationError({'return_datetime': 'The return time must be after the pickup time.'})

    pickup_location_id = parse_int(data, 'pickup_location_id') or car.location_id
    pickup_location = Location.query.get_or_404(pickup_location_id)
    return_location_id = parse_int(data, 'return_location_id') or pickup_location.id
    return_location = Location.query.get_or_404(return_location_id)

    rental = pricing.rental_price(pickup, return_, pricing.RateCard.for_car(car))

    driver = None
    if parse_bool(data, 'with_driver') or data.get('driver_profile_id'):
        require(data, 'driver_profile_id')
        driver = DriverProfile.query.get_or_404(parse_int(data, 'driver_profile_id'))
    driver_charge = pricing.driver_fee(rental.total_hours,
                                       pricing.RateCard.for_driver(driver) if driver else None)

    delivery = _price_delivery(data, car, pickup_location)

    promotion = check_promotion(data.get('promotion_code'), rental.amount,
                                user.id if user is not None else None,
                                rental.total_hours, now)

    with_insurance = parse_bool(data, 'with_insurance')
    insurance = pricing.insurance_fee(rental.total_hours, car.daily_hour_threshold,
                                      current_app.config.get('INSURANCE_FEE_PER_DAY', 0),
                                      requested=with_insurance)

    breakdown = pricing.charge_breakdown(
        rental.amount,
        delivery=delivery.fee,
        driver=driver_charge.amount,
        insurance=insurance,
        extra=pricing.money(extra_fee or 0),
        discount=promotion.discount_amount,
        deposit=car.deposit_amount,
        apply_vat=apply_vat,
        vat_rate=_vat_rate(),
    )
    return Quote(car=car, pickup_location=pickup_location, return_location=return_location,
                 pickup=pickup, return_=return_, rental=rental, driver=driver,
                 driver_charge=driver_charge, delivery=delivery, promotion=promotion,
                 insurance_requested=with_insurance, breakdown=breakdown, calculated_at=now)


def _price_delivery(data: dict, car: Car, location: Location) -> pricing.DeliveryQuote:
    requested = parse_bool(data, 'is_delivery')
    if not requested:
        return pricing.DeliveryQuote()
    terms = pricing.DeliveryTerms.for_car(car)
    if not terms.is_delivery_available or not terms.fee_per_km:
        return pricing.delivery_fee(True, terms, None)

    require(data, 'delivery_latitude', 'delivery_longitude')
    latitude = parse_decimal(data, 'delivery_latitude')
    longitude = parse_decimal(data, 'delivery_longitude')
    if not -90 <= latitude <= 90:
        raise ValidationError({'delivery_latitude': 'The delivery latitude must be between -90 and 90.'})
    if not -180 <= longitude <= 180:
        raise ValidationError({'delivery_longitude': 'The delivery longitude must be between -180 and 180.'})

    distance = delivery_distance(location, latitude, longitude)
    if distance is None:
        return pricing.DeliveryQuote(requested=True,
                                     error='Delivery is not available from this pickup location.')
    return pricing.delivery_fee(True, terms, distance)


def create_booking(user, data: dict, now: datetime = None) -> Booking:
    now = now or datetime.now()
    if not user.can_rent_cars():
        raise AuthorizationError('Your account is not allowed to rent cars.')

    require(data, 'payment_method')
    payment_method = parse_choice(data, 'payment_method', BOOKING_PAYMENT_METHODS)
    result = quote(data, user, now)
    car = result.car

    if result.pickup < now:
        raise ValidationError({'pickup_datetime': 'The pickup time must not be in the past.'})
    if result.rental.total_hours < (car.min_rental_hours or 0):
        raise ValidationError({'return_datetime':
                               f"Minimum rental duration is {car.min_rental_hours} hours."})
    if not car.is_rentable():
        raise UnavailableError('This car is not available for booking.')
    if result.driver is not None and not result.driver.is_bookable():
        raise UnavailableError('The selected driver is not available.')
    if result.delivery.error:
        raise PricingError(result.delivery.error, {'is_delivery': result.delivery.error})
    if result.promotion.code and not result.promotion.is_valid:
        raise ValidationError({'promotion_code': result.promotion.error})

    breakdown = result.breakdown
    try:
        # Re-check inside the transaction that writes the booking
        if not is_car_available(car, result.pickup, result.return_):
            raise UnavailableError('Car is not available for the selected dates.')

        booking = Booking(
            booking_code=generate_booking_code(now),
            user_id=user.id,
            owner_id=car.owner_id,
            car_id=car.id,
            pickup_location_id=result.pickup_location.id,
            return_location_id=result.return_location.id,
            pickup_datetime=result.pickup,
            return_datetime=result.return_,
            hourly_rate=car.hourly_rate,
            daily_rate=car.daily_rate,
            daily_hour_threshold=car.daily_hour_threshold,
            deposit_amount=breakdown.deposit_amount,
            status='pending',
            payment_method=payment_method,
            payment_status='pending',
            total_amount=breakdown.total_amount,
            special_requests=data.get('special_requests'),
            created_at=now,
        )
        if result.driver is not None:
            booking.with_driver = True
            booking.driver_profile_id = result.driver.id
            booking.driver_hourly_fee = result.driver.hourly_fee
            booking.driver_daily_fee = result.driver.daily_fee
            booking.total_driver_hours = result.driver_charge.total_hours
            booking.driver_notes = data.get('driver_notes')
        if result.delivery.can_deliver:
            booking.is_delivery = True
            booking.delivery_address = data.get('delivery_address')
            booking.delivery_distance = result.delivery.distance
            booking.delivery_fee_per_km = result.delivery.fee_per_km

        booking.charge = BookingCharge(
            total_hours=result.rental.total_hours,
            total_days=result.rental.total_days,
            hourly_rate=car.hourly_rate,
            daily_rate=car.daily_rate,
            base_amount=breakdown.base_amount,
            delivery_fee=breakdown.delivery_fee,
            driver_fee_amount=breakdown.driver_fee,
            insurance_fee=breakdown.insurance_fee,
            extra_fee=breakdown.extra_fee,
            discount_amount=breakdown.discount_amount,
            subtotal=breakdown.subtotal,
            vat_amount=breakdown.vat_amount,
            total_amount=breakdown.total_amount,
            deposit_amount=breakdown.deposit_amount,
            amount_paid=pricing.ZERO,
            balance_due=breakdown.balance_due,
            refund_amount=pricing.ZERO,
        )

        promotion = result.promotion
        if promotion.is_valid:
            booking.promotions.append(BookingPromotion(
                promotion_id=promotion.promotion.id,
                applied_by=user.id,
                promotion_code=promotion.code,
                discount_amount=promotion.discount_amount,
                promotion_details=promotion.details,
                applied_at=now,
            ))
            promotion.promotion.used_count = (promotion.promotion.used_count or 0) + 1

        db.session.add(booking)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info('Booking {} created by user {} for car {} ({} {})', booking.booking_code,
                user.id, car.id, breakdown.total_amount, current_app.config['APP_CURRENCY'])
    return booking


def update_booking(booking: Booking, data: dict) -> Booking:
    """Admin edit of schedule, locations, driver, delivery and notes.

    The stored charge is left as it was; prices are only recomputed through
    ``complete``.
    """
    pickup = parse_datetime(data, 'pickup_datetime', required=False) or booking.pickup_datetime
    return_ = parse_datetime(data, 'return_datetime', required=False) or booking.return_datetime
    if return_ <= pickup:
        raise ValidationError({'return_datetime': 'The return time must be after the pickup time.'})
    if (pickup, return_) != (booking.pickup_datetime, booking.return_datetime):
        if not is_car_available(booking.car, pickup, return_, exclude_booking_id=booking.id):
            raise UnavailableError('Car is not available for the selected dates.')
    booking.pickup_datetime, booking.return_datetime = pickup, return_

    for key in ('pickup_location_id', 'return_location_id'):
        location_id = parse_int(data, key)
        if location_id is not None:
            setattr(booking, key, Location.query.get_or_404(location_id).id)

    if 'with_driver' in data:
        booking.with_driver = parse_bool(data, 'with_driver')
        if booking.with_driver:
            require(data, 'driver_profile_id')
            driver = DriverProfile.query.get_or_404(parse_int(data, 'driver_profile_id'))
            booking.driver_profile_id = driver.id
            booking.driver_hourly_fee = driver.hourly_fee
            booking.driver_daily_fee = driver.daily_fee
        else:
            booking.driver_profile_id = None

    if 'is_delivery' in data:
        booking.is_delivery = parse_bool(data, 'is_delivery')
        booking.delivery_address = data.get('delivery_address') if booking.is_delivery else None

    for key in ('special_requests', 'admin_notes', 'driver_notes'):
        if key in data:
            setattr(booking, key, data[key])

    db.session.commit()
    logger.info('Booking {} updated', booking.booking_code)
    return booking


def confirm(booking: Booking, admin, now: datetime = None) -> Booking:
    if not booking.can_be_confirmed():
        raise BookingStateError('Only pending bookings can be confirmed.')
    booking.status = 'confirmed'
    booking.confirmed_by = admin.id if admin is not None else None
    booking.confirmed_at = now or datetime.now()
    db.session.commit()
    logger.info('Booking {} confirmed', booking.booking_code)
    mail.send_booking_confirmation(booking)
    return booking


def reject(booking: Booking, admin, reason: str, now: datetime = None) -> Booking:
    if not booking.can_be_confirmed():
        raise BookingStateError('Only pending bookings can be rejected.')
    if not reason:
        raise ValidationError({'rejection_reason': 'The rejection reason field is required.'})
    booking.status = 'rejected'
    booking.cancelled_by = admin.id if admin is not None else None
    booking.cancelled_at = now or datetime.now()
    booking.cancellation_reason = reason
    db.session.commit()
    logger.info('Booking {} rejected: {}', booking.booking_code, reason)
    return booking


def activate(booking: Booking, now: datetime = None) -> Booking:
    if not booking.can_be_started():
        raise BookingStateError('Only confirmed bookings can be activated.')
    booking.status = 'active'
    booking.actual_pickup_time = now or datetime.now()
    booking.car.status = 'rented'
    db.session.commit()
    logger.info('Booking {} activated, car {} picked up', booking.booking_code, booking.car_id)
    return booking


def complete(booking: Booking, actual_return: datetime, extra_fee=None,
             extra_fee_reason: str = None, condition_notes: str = None) -> Booking:
    """Close an active booking and settle late-return and admin charges."""
    if not booking.can_be_completed():
        raise BookingStateError('Only active bookings can be completed.')

    charge = booking.charge
    extra_fee = pricing.money(extra_fee or 0)
    overtime = pricing.overtime_fee(booking.return_datetime, actual_return,
                                    booking.car.overtime_fee_per_hour)
    try:
        booking.status = 'completed'
        booking.actual_return_time = actual_return
        booking.car_condition_notes = condition_notes

        added = extra_fee + overtime.amount
        if charge is not None and added > 0:
            details = dict(charge.extra_fee_details or {})
            if extra_fee > 0:
                details['admin_charge'] = {
                    'amount': float(extra_fee),
                    'reason': extra_fee_reason or 'Additional charge',
                    'added_at': actual_return.isoformat(sep=' '),
                }
            if overtime.is_late:
                details['overtime'] = {
                    'amount': float(overtime.amount),
                    'late_hours': overtime.late_hours,
                }
            charge.extra_fee_details = details
            pricing.recompute_with_extra_fee(charge, added, _vat_rate())
            booking.total_amount = charge.total_amount

        car = booking.car
        car.rental_count = (car.rental_count or 0) + 1
        car.status = 'available'
        if booking.driver_profile is not None:
            booking.driver_profile.completed_trips = (booking.driver_profile.completed_trips or 0) + 1
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info('Booking {} completed (overtime {}h, extra {})', booking.booking_code,
                overtime.late_hours, extra_fee)
    return booking


def is_free_cancellation(booking: Booking, now: datetime = None) -> bool:
    now = now or datetime.now()
    hours = current_app.config.get('FREE_CANCELLATION_HOURS', 24)
    return booking.pickup_datetime - now >= timedelta(hours=hours)


def cancel(booking: Booking, user, reason: str, now: datetime = None) -> bool:
    """Cancel a pending or confirmed booking.

    Returns True when the cancellation is free of charge.
    """
    if not booking.can_be_cancelled():
        raise BookingStateError('This booking cannot be cancelled. '
                                'Only pending or confirmed bookings can be cancelled.')
    if not reason:
        raise ValidationError({'reason': 'The reason field is required.'})
    if len(reason) > 500:
        raise ValidationError({'reason': 'The reason may not be greater than 500 characters.'})

    now = now or datetime.now()
    free = is_free_cancellation(booking, now)
    booking.status = 'cancelled'
    booking.cancelled_at = now
    booking.cancelled_by = user.id if user is not None else None
    booking.cancellation_reason = reason
    db.session.commit()
    logger.info('Booking {} cancelled ({})', booking.booking_code, 'free' if free else 'fee may apply')
    mail.send_booking_cancellation(booking)
    return free


def delete_booking(booking: Booking) -> None:
    if not booking.can_be_deleted():
        raise BookingStateError('Only cancelled or rejected bookings can be deleted.')
    code = booking.booking_code
    db.session.delete(booking)
    db.session.commit()
    logger.info('Booking {} deleted', code)
