"""Customer-facing API: car search, pricing preview, bookings, reviews and
licence verification."""

from datetime import date, datetime

from flask import Blueprint, abort, jsonify, request, url_for
from flask_login import current_user, login_required
from loguru import logger
from sqlalchemy import or_

from .. import bookings, db
from ..errors import BookingStateError, ValidationError
from ..models import Booking, Car, Contact, Location, Review, UserVerification
from ..parsing import (parse_choice, parse_datetime, parse_decimal, parse_int,
                       require)
from ..serializers import (booking_to_dict, car_to_dict, location_to_dict,
                           quote_to_dict, review_to_dict, verification_to_dict)
from . import payload

customer_bp = Blueprint('customer', __name__)


def _current_user_or_none():
    return current_user if current_user.is_authenticated else None


def own_booking(booking_id: int) -> Booking:
    booking = Booking.query.get_or_404(booking_id)
    if booking.user_id != current_user.id:
        abort(403, description='Unauthorized access to this booking')
    return booking


@customer_bp.route('/cars')
def list_cars():
    """Available, verified cars, optionally filtered.

    When both ``pickup_datetime`` and ``return_datetime`` are given, cars
    already booked in that window are left out.
    """
    args = request.args
    query = Car.query.filter(Car.status == 'available', Car.is_verified.is_(True))
    for field in ('location_id', 'brand_id', 'category_id'):
        value = parse_int(args, field)
        if value is not None:
            query = query.filter(getattr(Car, field) == value)
    if args.get('transmission'):
        query = query.filter(Car.transmission == args['transmission'])
    seats = parse_int(args, 'seats')
    if seats is not None:
        query = query.filter(Car.seats >= seats)
    min_price = parse_decimal(args, 'min_price', minimum=0)
    if min_price is not None:
        query = query.filter(Car.daily_rate >= min_price)
    max_price = parse_decimal(args, 'max_price', minimum=0)
    if max_price is not None:
        query = query.filter(Car.daily_rate <= max_price)

    pickup = parse_datetime(args, 'pickup_datetime', required=False)
    return_ = parse_datetime(args, 'return_datetime', required=False)
    if pickup and return_:
        if return_ <= pickup:
            raise ValidationError({'return_datetime': 'The return time must be after the pickup time.'})
        booked = bookings.booked_car_ids(pickup, return_)
        if booked:
            query = query.filter(Car.id.notin_(booked))

    sort = args.get('sort', 'price_asc')
    if sort == 'price_desc':
        query = query.order_by(Car.daily_rate.desc())
    elif sort == 'popular':
        query = query.order_by(Car.rental_count.desc())
    else:
        query = query.order_by(Car.daily_rate.asc())

    cars = query.all()
    return jsonify({'cars': [car_to_dict(c) for c in cars], 'total': len(cars)})


@customer_bp.route('/cars/<int:car_id>')
def show_car(car_id: int):
    car = Car.query.get_or_404(car_id)
    if not car.is_verified or car.status == 'inactive':
        abort(404)
    return jsonify(car_to_dict(car, detail=True))


@customer_bp.route('/locations')
def list_locations():
    locations = (Location.query.filter_by(is_active=True)
                 .order_by(Location.sort_order, Location.name).all())
    return jsonify([location_to_dict(loc) for loc in locations])


@customer_bp.route('/booking/calculate', methods=['POST'])
def calculate():
    result = bookings.quote(payload(), _current_user_or_none())
    return jsonify(quote_to_dict(result))


@customer_bp.route('/booking/promotion/validate', methods=['POST'])
def validate_promotion():
    data = payload()
    require(data, 'code', 'base_amount')
    user = _current_user_or_none()
    check = bookings.check_promotion(
        data['code'].strip(),
        parse_decimal(data, 'base_amount', minimum=0),
        user.id if user else None,
        parse_int(data, 'rental_hours', minimum=0) or 0,
    )
    if not check.is_valid:
        return jsonify({'valid': False, 'message': check.error}), 422
    return jsonify({
        'valid': True,
        'message': 'Promotion applied successfully',
        'promotion': {
            'id': check.promotion.id,
            'code': check.code,
            'name': check.promotion.name,
            'discount_type': check.promotion.discount_type,
            'discount_value': float(check.promotion.discount_value),
            'discount_amount': float(check.discount_amount),
        },
    })


@customer_bp.route('/bookings', methods=['POST'])
@login_required
def create_booking():
    booking = bookings.create_booking(current_user, payload())
    return jsonify({
        'message': 'Booking created successfully.',
        'booking': booking_to_dict(booking, detail=True),
        'confirmation_url': url_for('customer.booking_confirmation', booking_id=booking.id),
    }), 201


@customer_bp.route('/bookings')
@login_required
def list_bookings():
    status = request.args.get('status', 'all')
    search = request.args.get('search', '').strip()
    query = Booking.query.filter_by(user_id=current_user.id)
    if status != 'all':
        query = query.filter(Booking.status == status)
    if search:
        like = f"%{search}%"
        query = query.join(Car).filter(or_(Booking.booking_code.ilike(like),
                                           Car.name.ilike(like), Car.model.ilike(like)))
    items = query.order_by(Booking.created_at.desc()).all()

    own = Booking.query.filter_by(user_id=current_user.id)
    stats = {
        'total': own.count(),
        'upcoming': own.filter(Booking.status.in_(('pending', 'confirmed')),
                               Booking.pickup_datetime > datetime.now()).count(),
        'active': own.filter(Booking.status == 'active').count(),
        'completed': own.filter(Booking.status == 'completed').count(),
    }
    return jsonify({'bookings': [booking_to_dict(b) for b in items], 'stats': stats,
                    'filters': {'status': status, 'search': search}})


@customer_bp.route('/bookings/<int:booking_id>')
@login_required
def show_booking(booking_id: int):
    return jsonify(booking_to_dict(own_booking(booking_id), detail=True))


@customer_bp.route('/booking/<int:booking_id>/confirmation')
@login_required
def booking_confirmation(booking_id: int):
    booking = own_booking(booking_id)
    data = booking_to_dict(booking, detail=True)
    data['with_insurance'] = bool(booking.charge and booking.charge.insurance_fee)
    return jsonify(data)


@customer_bp.route('/bookings/<int:booking_id>/cancel', methods=['POST'])
@login_required
def cancel_booking(booking_id: int):
    booking = own_booking(booking_id)
    free = bookings.cancel(booking, current_user, (payload().get('reason') or '').strip())
    if free:
        message = 'Booking cancelled successfully. Full refund will be processed within 5-7 business days.'
    else:
        message = 'Booking cancelled. Cancellation fee may apply as per our policy.'
    return jsonify({'message': message, 'free_cancellation': free,
                    'booking': booking_to_dict(booking)})


@customer_bp.route('/bookings/<int:booking_id>/review', methods=['POST'])
@login_required
def review_booking(booking_id: int):
    booking = own_booking(booking_id)
    if booking.status != 'completed':
        raise BookingStateError('Only completed bookings can be reviewed.')
    if booking.review is not None:
        raise BookingStateError('This booking has already been reviewed.')
    data = payload()
    rating = parse_int(data, 'rating', required=True)
    if not 1 <= rating <= 5:
        raise ValidationError({'rating': 'The rating must be between 1 and 5.'})
    comment = data.get('comment')
    if comment and len(comment) > 1000:
        raise ValidationError({'comment': 'The comment may not be greater than 1000 characters.'})

    review = Review(booking_id=booking.id, car_id=booking.car_id, user_id=current_user.id,
                    rating=rating, comment=comment, status='pending')
    db.session.add(review)
    db.session.commit()
    logger.info('Review {} submitted for booking {}', review.id, booking.booking_code)
    return jsonify({'message': 'Thank you! Your review will be published after moderation.',
                    'review': review_to_dict(review)}), 201


@customer_bp.route('/contact', methods=['POST'])
def contact():
    data = payload()
    require(data, 'name', 'email', 'message')
    if '@' not in data['email']:
        raise ValidationError({'email': 'The email must be a valid email address.'})
    message = Contact(name=data['name'], email=data['email'], phone=data.get('phone'),
                      subject=data.get('subject'), message=data['message'])
    db.session.add(message)
    db.session.commit()
    logger.info('Contact message {} received from {}', message.id, message.email)
    return jsonify({'message': 'Thank you for contacting us. We will get back to you soon.'}), 201


LICENSE_TYPES = ('B1', 'B2', 'C', 'D', 'E')


@customer_bp.route('/profile/verification')
@login_required
def show_verification():
    verification = current_user.verification
    return jsonify({'verification': verification_to_dict(verification) if verification else None})


@customer_bp.route('/profile/verification', methods=['POST', 'PUT'])
@login_required
def submit_verification():
    """Create or update the user's driving licence details.

    Every submission goes back to ``pending`` for review unless the user
    is already verified.
    """
    data = payload()
    errors = {}
    for key, limit in (('driving_license_number', 50), ('license_issued_country', 100),
                       ('nationality', 100)):
        if data.get(key) and len(data[key]) > limit:
            errors[key] = f"The {key.replace('_', ' ')} may not be greater than {limit} characters."
    if errors:
        raise ValidationError(errors)

    issued = parse_datetime(data, 'license_issue_date', required=False)
    expires = parse_datetime(data, 'license_expiry_date', required=False)
    if issued is not None and issued.date() >= date.today():
        raise ValidationError({'license_issue_date': 'The license issue date must be a date before today.'})
    if expires is not None and issued is not None and expires <= issued:
        raise ValidationError({'license_expiry_date': 'The expiry date must be after the issue date.'})

    verification = current_user.verification
    if verification is None:
        verification = UserVerification(user_id=current_user.id, status='pending')
        db.session.add(verification)
    if 'license_type' in data:
        verification.license_type = parse_choice(data, 'license_type', LICENSE_TYPES)
    for key in ('driving_license_number', 'license_issued_country', 'nationality'):
        if key in data:
            setattr(verification, key, data[key])
    if issued is not None:
        verification.license_issue_date = issued.date()
    if expires is not None:
        verification.license_expiry_date = expires.date()
    if verification.status != 'verified':
        verification.status = 'pending'
    db.session.commit()
    logger.info('User {} submitted licence verification {}', current_user.id, verification.id)
    return jsonify({'message': 'Verification information submitted successfully.',
                    'verification': verification_to_dict(verification)})
