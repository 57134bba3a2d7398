"""
Admin back-office API.

Every route in this blueprint requires a logged-in admin. Listing
endpoints accept a ``status`` filter and a free-text ``search`` where it
makes sense; there is no pagination.
"""

import re
from datetime import datetime

from flask import Blueprint, abort, jsonify, request
from flask_login import current_user
from loguru import logger
from sqlalchemy import func, or_

from .. import bookings, db, login_manager, payments
from ..errors import ConflictError, ValidationError
from ..models import (CAR_STATUSES, DISCOUNT_TYPES, DRIVER_STATUSES, FUEL_TYPES,
                      TRANSMISSIONS, USER_ROLES, USER_STATUSES, Booking, Car,
                      CarBrand, CarCategory, DriverProfile, Location, Payment,
                      Promotion, Review, User, UserVerification)
from ..parsing import (parse_bool, parse_choice, parse_datetime, parse_decimal,
                       parse_int, require)
from ..serializers import (booking_to_dict, car_to_dict, catalog_to_dict,
                           driver_to_dict, location_to_dict,
                           payment_to_dict, promotion_to_dict, review_to_dict,
                           user_to_dict, verification_to_dict)
from . import payload

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


@admin_bp.before_request
def require_admin():
    if not current_user.is_authenticated:
        return login_manager.unauthorized()
    if not current_user.is_admin():
        abort(403, description='Admin access required')


def slugify(text: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-')


# ---------------------------------------------------------------------------
# Dashboard

def _counts_by(column):
    rows = db.session.query(column, func.count()).group_by(column).all()
    return {key: count for key, count in rows}


@admin_bp.route('/dashboard')
def dashboard():
    now = datetime.now()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    revenue = (db.session.query(func.coalesce(func.sum(Payment.amount), 0))
               .filter(Payment.status == 'completed', Payment.paid_at >= month_start)
               .scalar())
    average_rating = (db.session.query(func.avg(Review.rating))
                      .filter(Review.status == 'approved').scalar())
    return jsonify({
        'users': {
            'total': User.query.filter(User.deleted_at.is_(None)).count(),
            'by_role': dict(db.session.query(User.role, func.count())
                            .filter(User.deleted_at.is_(None)).group_by(User.role).all()),
        },
        'cars': {'total': Car.query.count(), 'by_status': _counts_by(Car.status)},
        'bookings': {'total': Booking.query.count(), 'by_status': _counts_by(Booking.status)},
        'revenue_this_month': float(revenue or 0),
        'reviews': {
            'pending': Review.query.filter_by(status='pending').count(),
            'average_rating': round(float(average_rating), 2) if average_rating else None,
        },
    })


# ---------------------------------------------------------------------------
# Users

def is_last_admin(user: User) -> bool:
    if not user.is_admin():
        return False
    return User.query.filter(User.role == 'admin', User.deleted_at.is_(None)).count() <= 1


def _validate_password(data: dict) -> str:
    password = data.get('password') or ''
    if len(password) < 8:
        raise ValidationError({'password': 'The password must be at least 8 characters.'})
    if password != data.get('password_confirmation'):
        raise ValidationError({'password': 'The password confirmation does not match.'})
    return password


def _apply_user_fields(user: User, data: dict) -> None:
    if 'email' in data:
        email = (data.get('email') or '').strip().lower()
        if not email or '@' not in email:
            raise ValidationError({'email': 'The email must be a valid email address.'})
        taken = User.query.filter(User.email == email, User.id != user.id).first()
        if taken:
            raise ValidationError({'email': 'The email has already been taken.'})
        user.email = email
    if 'name' in data:
        if not data['name']:
            raise ValidationError({'name': 'The name field is required.'})
        user.name = data['name']
    for key in ('phone', 'address'):
        if key in data:
            setattr(user, key, data[key])
    if data.get('date_of_birth'):
        user.date_of_birth = parse_datetime(data, 'date_of_birth').date()


@admin_bp.route('/users')
def list_users():
    query = User.query
    if not parse_bool(request.args, 'include_deleted'):
        query = query.filter(User.deleted_at.is_(None))
    for key in ('role', 'status'):
        value = request.args.get(key)
        if value and value != 'all':
            query = query.filter(getattr(User, key) == value)
    search = request.args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(User.name.ilike(like), User.email.ilike(like), User.phone.ilike(like)))
    users = query.order_by(User.created_at.desc()).all()
    return jsonify({'users': [user_to_dict(u) for u in users], 'total': len(users)})


@admin_bp.route('/users', methods=['POST'])
def create_user():
    data = payload()
    require(data, 'name', 'email', 'password')
    password = _validate_password(data)
    user = User(role=parse_choice(data, 'role', USER_ROLES, default='customer'),
                status=parse_choice(data, 'status', USER_STATUSES, default='active'))
    _apply_user_fields(user, data)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    logger.info('Admin {} created user {}', current_user.id, user.id)
    return jsonify({'message': f"User '{user.name}' has been created successfully.",
                    'user': user_to_dict(user, detail=True)}), 201


@admin_bp.route('/users/<int:user_id>')
def show_user(user_id: int):
    user = User.query.get_or_404(user_id)
    data = user_to_dict(user, detail=True)
    data['bookings'] = [booking_to_dict(b) for b in user.bookings]
    return jsonify(data)


@admin_bp.route('/users/<int:user_id>', methods=['PUT', 'PATCH'])
def update_user(user_id: int):
    user = User.query.get_or_404(user_id)
    _apply_user_fields(user, payload())
    db.session.commit()
    return jsonify({'message': f"User '{user.name}' has been updated successfully.",
                    'user': user_to_dict(user, detail=True)})


@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
def delete_user(user_id: int):
    user = User.query.get_or_404(user_id)
    if user.id == current_user.id:
        raise ConflictError('You cannot delete your own account.')
    if is_last_admin(user):
        raise ConflictError('Cannot delete the last admin user.')
    now = datetime.now()
    user.deleted_at = now
    user.deletion_requested_at = now
    user.deletion_reason = payload().get('reason')
    db.session.commit()
    logger.info('Admin {} deleted user {}', current_user.id, user.id)
    return jsonify({'message': f"User '{user.name}' has been deleted successfully."})


@admin_bp.route('/users/<int:user_id>/status', methods=['POST'])
def change_user_status(user_id: int):
    user = User.query.get_or_404(user_id)
    data = payload()
    status = parse_choice(data, 'status', USER_STATUSES, required=True)
    if status in ('suspended', 'banned') and not data.get('reason'):
        raise ValidationError({'reason': f"The reason field is required when status is {status}."})
    if user.id == current_user.id:
        raise ConflictError('You cannot change your own status.')
    user.status = status
    db.session.commit()
    logger.info('Admin {} set user {} status to {} ({})', current_user.id, user.id, status,
                data.get('reason'))
    return jsonify({'message': f"User status has been changed to '{status}'.",
                    'user': user_to_dict(user)})


@admin_bp.route('/users/<int:user_id>/role', methods=['POST'])
def change_user_role(user_id: int):
    user = User.query.get_or_404(user_id)
    role = parse_choice(payload(), 'role', USER_ROLES, required=True)
    if user.id == current_user.id:
        raise ConflictError('You cannot change your own role.')
    if role != 'admin' and is_last_admin(user):
        raise ConflictError('Cannot change the role of the last admin.')
    user.role = role
    db.session.commit()
    logger.info('Admin {} set user {} role to {}', current_user.id, user.id, role)
    return jsonify({'message': f"User role has been changed to '{role}'.",
                    'user': user_to_dict(user)})


@admin_bp.route('/users/<int:user_id>/password', methods=['POST'])
def reset_user_password(user_id: int):
    user = User.query.get_or_404(user_id)
    user.set_password(_validate_password(payload()))
    db.session.commit()
    logger.info('Admin {} reset the password of user {}', current_user.id, user.id)
    return jsonify({'message': 'User password has been reset successfully.'})


# ---------------------------------------------------------------------------
# Bookings

@admin_bp.route('/bookings')
def list_bookings():
    query = Booking.query
    status = request.args.get('status', 'all')
    if status != 'all':
        query = query.filter(Booking.status == status)
    owner_id = parse_int(request.args, 'owner_id')
    if owner_id:
        query = query.filter(Booking.owner_id == owner_id)
    search = request.args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        query = (query.join(User, Booking.user_id == User.id).join(Car, Booking.car_id == Car.id)
                 .filter(or_(Booking.booking_code.ilike(like), User.name.ilike(like),
                             User.email.ilike(like), Car.model.ilike(like),
                             Car.license_plate.ilike(like))))
    items = query.order_by(Booking.created_at.desc()).all()
    stats = {'total': Booking.query.count()}
    stats.update(_counts_by(Booking.status))
    return jsonify({'bookings': [booking_to_dict(b) for b in items], 'stats': stats})


@admin_bp.route('/bookings/<int:booking_id>')
def show_booking(booking_id: int):
    return jsonify(booking_to_dict(Booking.query.get_or_404(booking_id), detail=True))


@admin_bp.route('/bookings/<int:booking_id>', methods=['PUT', 'PATCH'])
def update_booking(booking_id: int):
    booking = bookings.update_booking(Booking.query.get_or_404(booking_id), payload())
    return jsonify({'message': 'Booking updated successfully.',
                    'booking': booking_to_dict(booking, detail=True)})


@admin_bp.route('/bookings/<int:booking_id>/confirm', methods=['POST'])
def confirm_booking(booking_id: int):
    booking = bookings.confirm(Booking.query.get_or_404(booking_id), current_user)
    return jsonify({'message': 'Booking confirmed successfully.', 'booking': booking_to_dict(booking)})


@admin_bp.route('/bookings/<int:booking_id>/reject', methods=['POST'])
def reject_booking(booking_id: int):
    reason = (payload().get('rejection_reason') or '').strip()
    booking = bookings.reject(Booking.query.get_or_404(booking_id), current_user, reason)
    return jsonify({'message': 'Booking rejected.', 'booking': booking_to_dict(booking)})


@admin_bp.route('/bookings/<int:booking_id>/activate', methods=['POST'])
def activate_booking(booking_id: int):
    booking = bookings.activate(Booking.query.get_or_404(booking_id))
    return jsonify({'message': 'Booking activated. Car has been picked up.',
                    'booking': booking_to_dict(booking)})


@admin_bp.route('/bookings/<int:booking_id>/complete', methods=['POST'])
def complete_booking(booking_id: int):
    booking = Booking.query.get_or_404(booking_id)
    data = payload()
    booking = bookings.complete(
        booking,
        parse_datetime(data, 'actual_return_datetime'),
        extra_fee=parse_decimal(data, 'extra_fee', minimum=0),
        extra_fee_reason=data.get('extra_fee_reason'),
        condition_notes=data.get('car_condition_notes'),
    )
    return jsonify({'message': 'Booking completed successfully.',
                    'booking': booking_to_dict(booking, detail=True)})


@admin_bp.route('/bookings/<int:booking_id>', methods=['DELETE'])
def delete_booking(booking_id: int):
    bookings.delete_booking(Booking.query.get_or_404(booking_id))
    return jsonify({'message': 'Booking deleted successfully.'})


# ---------------------------------------------------------------------------
# Cars

CAR_STATUS_CYCLE = {'available': 'maintenance', 'maintenance': 'inactive',
                    'inactive': 'available', 'rented': 'available'}


def _bounded_int(data: dict, key: str, low: int, high: int, required: bool = False):
    value = parse_int(data, key, required=required)
    if value is not None and not low <= value <= high:
        raise ValidationError({key: f"The {key.replace('_', ' ')} must be between {low} and {high}."})
    return value


def _apply_car_fields(car: Car, data: dict) -> None:
    """Validate and copy car fields; on create the core fields must be present."""
    if car.id is None:
        require(data, 'owner_id', 'brand_id', 'category_id', 'location_id', 'model', 'year',
                'license_plate', 'hourly_rate', 'daily_rate')

    if 'owner_id' in data:
        owner = User.query.get_or_404(parse_int(data, 'owner_id', required=True))
        if not (owner.is_owner() or owner.is_admin()):
            raise ValidationError({'owner_id': 'The selected owner must have the owner role.'})
        car.owner_id = owner.id
    for key, model in (('brand_id', CarBrand), ('category_id', CarCategory), ('location_id', Location)):
        if key in data:
            setattr(car, key, model.query.get_or_404(parse_int(data, key, required=True)).id)

    if 'license_plate' in data:
        plate = (data.get('license_plate') or '').strip().upper()
        if not plate or len(plate) > 20:
            raise ValidationError({'license_plate': 'The license plate must be between 1 and 20 characters.'})
        if Car.query.filter(Car.license_plate == plate, Car.id != car.id).first():
            raise ValidationError({'license_plate': 'The license plate has already been taken.'})
        car.license_plate = plate
    if 'model' in data:
        if not data['model'] or len(data['model']) > 200:
            raise ValidationError({'model': 'The model must be between 1 and 200 characters.'})
        car.model = data['model']
    for key in ('name', 'color', 'description'):
        if key in data:
            setattr(car, key, data[key])

    year = _bounded_int(data, 'year', 2000, 2030)
    if year is not None:
        car.year = year
    seats = _bounded_int(data, 'seats', 2, 20)
    if seats is not None:
        car.seats = seats
    threshold = _bounded_int(data, 'daily_hour_threshold', 1, 24)
    if threshold is not None:
        car.daily_hour_threshold = threshold
    for key in ('min_rental_hours', 'odometer_km'):
        value = parse_int(data, key, minimum=1 if key == 'min_rental_hours' else 0)
        if value is not None:
            setattr(car, key, value)

    if 'transmission' in data:
        car.transmission = parse_choice(data, 'transmission', TRANSMISSIONS, required=True)
    if 'fuel_type' in data:
        car.fuel_type = parse_choice(data, 'fuel_type', FUEL_TYPES, required=True)
    if 'status' in data:
        car.status = parse_choice(data, 'status', CAR_STATUSES, required=True)

    for key in ('hourly_rate', 'daily_rate', 'deposit_amount', 'overtime_fee_per_hour',
                'delivery_fee_per_km'):
        value = parse_decimal(data, key, minimum=0)
        if value is not None:
            setattr(car, key, value)
    distance = parse_decimal(data, 'max_delivery_distance', minimum=1)
    if distance is not None:
        car.max_delivery_distance = distance
    for key in ('is_delivery_available', 'is_verified'):
        if key in data:
            setattr(car, key, parse_bool(data, key))

    if not car.name:
        car.name = f"{CarBrand.query.get_or_404(car.brand_id).name} {car.model}"


@admin_bp.route('/cars')
def list_cars():
    query = Car.query
    status = request.args.get('status', 'all')
    if status != 'all':
        query = query.filter(Car.status == status)
    for key in ('brand_id', 'category_id', 'owner_id'):
        value = parse_int(request.args, key)
        if value:
            query = query.filter(getattr(Car, key) == value)
    verified = request.args.get('verified', 'all')
    if verified != 'all':
        query = query.filter(Car.is_verified.is_(verified == 'verified'))
    search = request.args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        query = (query.join(User, Car.owner_id == User.id)
                 .filter(or_(Car.model.ilike(like), Car.name.ilike(like),
                             Car.license_plate.ilike(like), Car.color.ilike(like),
                             User.name.ilike(like), User.email.ilike(like))))
    cars = query.order_by(Car.id.desc()).all()
    stats = {
        'total': Car.query.count(),
        'available': Car.query.filter(Car.status == 'available', Car.is_verified.is_(True)).count(),
        'rented': Car.query.filter_by(status='rented').count(),
        'maintenance': Car.query.filter_by(status='maintenance').count(),
    }
    return jsonify({'cars': [car_to_dict(c, detail=True) for c in cars], 'stats': stats})


@admin_bp.route('/cars', methods=['POST'])
def create_car():
    car = Car(status='available', is_verified=False)
    _apply_car_fields(car, payload())
    db.session.add(car)
    db.session.commit()
    logger.info('Admin {} created car {} ({})', current_user.id, car.id, car.license_plate)
    return jsonify({'message': 'Car created successfully', 'car': car_to_dict(car, detail=True)}), 201


@admin_bp.route('/cars/<int:car_id>')
def show_car(car_id: int):
    return jsonify(car_to_dict(Car.query.get_or_404(car_id), detail=True))


@admin_bp.route('/cars/<int:car_id>', methods=['PUT', 'PATCH'])
def update_car(car_id: int):
    car = Car.query.get_or_404(car_id)
    _apply_car_fields(car, payload())
    db.session.commit()
    return jsonify({'message': 'Car updated successfully', 'car': car_to_dict(car, detail=True)})


@admin_bp.route('/cars/<int:car_id>', methods=['DELETE'])
def delete_car(car_id: int):
    car = Car.query.get_or_404(car_id)
    if Booking.query.filter_by(car_id=car.id).first() is not None:
        raise ConflictError('Cannot delete a car that has bookings. Set it inactive instead.')
    db.session.delete(car)
    db.session.commit()
    logger.info('Admin {} deleted car {}', current_user.id, car_id)
    return jsonify({'message': 'Car deleted successfully'})


@admin_bp.route('/cars/<int:car_id>/toggle-status', methods=['POST'])
def toggle_car_status(car_id: int):
    car = Car.query.get_or_404(car_id)
    car.status = CAR_STATUS_CYCLE.get(car.status, 'available')
    db.session.commit()
    return jsonify({'message': f"Car status changed to {car.status}", 'car': car_to_dict(car)})


@admin_bp.route('/cars/<int:car_id>/verify', methods=['POST'])
def verify_car(car_id: int):
    car = Car.query.get_or_404(car_id)
    car.is_verified = parse_bool(payload(), 'is_verified', default=True)
    db.session.commit()
    logger.info('Admin {} set car {} verified={}', current_user.id, car.id, car.is_verified)
    state = 'verified' if car.is_verified else 'unverified'
    return jsonify({'message': f"Car marked as {state}.", 'car': car_to_dict(car, detail=True)})


# ---------------------------------------------------------------------------
# Brands and categories

def unique_slug(model, text: str, exclude_id: int = None) -> str:
    """Slugify ``text``, appending -1, -2, ... until no other row uses it."""
    base = slugify(text)
    slug, counter = base, 1
    query = model.query
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    while query.filter(model.slug == slug).first():
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def _apply_catalog_fields(item, data: dict) -> None:
    if item.id is None:
        require(data, 'name')
    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name or len(name) > 100:
            raise ValidationError({'name': 'The name must be between 1 and 100 characters.'})
        item.name = name
    if data.get('slug') or 'name' in data or not item.slug:
        item.slug = unique_slug(type(item), data.get('slug') or item.name, item.id)
    if 'is_active' in data:
        item.is_active = parse_bool(data, 'is_active')
    sort_order = _bounded_int(data, 'sort_order', 0, 65535)
    if sort_order is not None:
        item.sort_order = sort_order


def _list_catalog(model):
    query = model.query
    status = request.args.get('status', 'all')
    if status != 'all':
        query = query.filter(model.is_active.is_(status == 'active'))
    search = request.args.get('search', '').strip()
    if search:
        query = query.filter(model.name.ilike(f"%{search}%"))
    items = query.order_by(model.sort_order, model.name).all()
    stats = {
        'total': model.query.count(),
        'active': model.query.filter(model.is_active.is_(True)).count(),
        'inactive': model.query.filter(model.is_active.is_(False)).count(),
    }
    return {'items': [catalog_to_dict(i) for i in items], 'stats': stats}


def _delete_catalog(item, label: str):
    if item.cars:
        raise ConflictError(f"Cannot delete this {label} while cars use it.")
    slug = item.slug
    db.session.delete(item)
    db.session.commit()
    logger.info('Admin {} deleted {} {}', current_user.id, label, slug)


@admin_bp.route('/brands')
def list_brands():
    result = _list_catalog(CarBrand)
    return jsonify({'brands': result['items'], 'stats': result['stats']})


@admin_bp.route('/brands', methods=['POST'])
def create_brand():
    brand = CarBrand(is_active=True, sort_order=0)
    _apply_catalog_fields(brand, payload())
    db.session.add(brand)
    db.session.commit()
    return jsonify({'message': 'Car brand created successfully.', 'brand': catalog_to_dict(brand)}), 201


@admin_bp.route('/brands/<int:brand_id>')
def show_brand(brand_id: int):
    return jsonify(catalog_to_dict(CarBrand.query.get_or_404(brand_id)))


@admin_bp.route('/brands/<int:brand_id>', methods=['PUT', 'PATCH'])
def update_brand(brand_id: int):
    brand = CarBrand.query.get_or_404(brand_id)
    _apply_catalog_fields(brand, payload())
    db.session.commit()
    return jsonify({'message': 'Car brand updated successfully.', 'brand': catalog_to_dict(brand)})


@admin_bp.route('/brands/<int:brand_id>', methods=['DELETE'])
def delete_brand(brand_id: int):
    _delete_catalog(CarBrand.query.get_or_404(brand_id), 'brand')
    return jsonify({'message': 'Car brand deleted successfully.'})


@admin_bp.route('/categories')
def list_categories():
    result = _list_catalog(CarCategory)
    return jsonify({'categories': result['items'], 'stats': result['stats']})


@admin_bp.route('/categories', methods=['POST'])
def create_category():
    category = CarCategory(is_active=True, sort_order=0)
    _apply_catalog_fields(category, payload())
    db.session.add(category)
    db.session.commit()
    return jsonify({'message': 'Car category created successfully.',
                    'category': catalog_to_dict(category)}), 201


@admin_bp.route('/categories/<int:category_id>')
def show_category(category_id: int):
    return jsonify(catalog_to_dict(CarCategory.query.get_or_404(category_id)))


@admin_bp.route('/categories/<int:category_id>', methods=['PUT', 'PATCH'])
def update_category(category_id: int):
    category = CarCategory.query.get_or_404(category_id)
    _apply_catalog_fields(category, payload())
    db.session.commit()
    return jsonify({'message': 'Car category updated successfully.',
                    'category': catalog_to_dict(category)})


@admin_bp.route('/categories/<int:category_id>', methods=['DELETE'])
def delete_category(category_id: int):
    _delete_catalog(CarCategory.query.get_or_404(category_id), 'category')
    return jsonify({'message': 'Car category deleted successfully.'})


# ---------------------------------------------------------------------------
# Drivers

@admin_bp.route('/drivers')
def list_drivers():
    query = DriverProfile.query
    status = request.args.get('status', 'all')
    if status != 'all':
        query = query.filter(DriverProfile.status == status)
    drivers = query.order_by(DriverProfile.id).all()
    return jsonify([driver_to_dict(d) for d in drivers])


@admin_bp.route('/drivers/<int:driver_id>')
def show_driver(driver_id: int):
    driver = DriverProfile.query.get_or_404(driver_id)
    data = driver_to_dict(driver)
    data['bookings'] = [booking_to_dict(b) for b in driver.bookings]
    return jsonify(data)


@admin_bp.route('/drivers/<int:driver_id>', methods=['PUT', 'PATCH'])
def update_driver(driver_id: int):
    driver = DriverProfile.query.get_or_404(driver_id)
    data = payload()
    for key in ('hourly_fee', 'daily_fee', 'overtime_fee_per_hour'):
        value = parse_decimal(data, key, minimum=0)
        if value is not None:
            setattr(driver, key, value)
    threshold = parse_int(data, 'daily_hour_threshold', minimum=1)
    if threshold is not None:
        driver.daily_hour_threshold = threshold
    if 'status' in data:
        driver.status = parse_choice(data, 'status', DRIVER_STATUSES)
    if 'is_available_for_booking' in data:
        driver.is_available_for_booking = parse_bool(data, 'is_available_for_booking')
    db.session.commit()
    return jsonify({'message': 'Driver profile updated successfully.', 'driver': driver_to_dict(driver)})


@admin_bp.route('/drivers/<int:driver_id>/status', methods=['POST'])
def set_driver_status(driver_id: int):
    driver = DriverProfile.query.get_or_404(driver_id)
    driver.status = parse_choice(payload(), 'status', DRIVER_STATUSES, required=True)
    db.session.commit()
    return jsonify({'message': 'Driver status updated successfully.', 'driver': driver_to_dict(driver)})


@admin_bp.route('/drivers/<int:driver_id>/toggle-availability', methods=['POST'])
def toggle_driver_availability(driver_id: int):
    driver = DriverProfile.query.get_or_404(driver_id)
    driver.is_available_for_booking = not driver.is_available_for_booking
    db.session.commit()
    state = 'enabled' if driver.is_available_for_booking else 'disabled'
    return jsonify({'message': f"Driver booking availability {state}.", 'driver': driver_to_dict(driver)})


# ---------------------------------------------------------------------------
# Locations

def _apply_location_fields(location: Location, data: dict) -> None:
    if 'name' in data:
        location.name = data['name']
    if data.get('slug') or not location.slug:
        slug = slugify(data.get('slug') or location.name)
        taken = Location.query.filter(Location.slug == slug, Location.id != location.id).first()
        if taken:
            raise ValidationError({'slug': 'The slug has already been taken.'})
        location.slug = slug
    for key in ('address', 'description', 'phone', 'email'):
        if key in data:
            setattr(location, key, data[key])
    for key, bound in (('latitude', 90), ('longitude', 180)):
        value = parse_decimal(data, key)
        if value is not None:
            if not -bound <= value <= bound:
                raise ValidationError({key: f"The {key} must be between -{bound} and {bound}."})
            setattr(location, key, value)
    for key in ('opening_time', 'closing_time'):
        if data.get(key):
            try:
                setattr(location, key, datetime.strptime(data[key], '%H:%M').time())
            except ValueError:
                raise ValidationError({key: f"The {key.replace('_', ' ')} must be in HH:MM format."})
    for key in ('is_24_7', 'is_airport', 'is_popular', 'is_active'):
        if key in data:
            setattr(location, key, parse_bool(data, key))
    sort_order = parse_int(data, 'sort_order', minimum=0)
    if sort_order is not None:
        location.sort_order = sort_order


@admin_bp.route('/locations')
def list_locations():
    locations = Location.query.order_by(Location.sort_order, Location.name).all()
    return jsonify([location_to_dict(loc) for loc in locations])


@admin_bp.route('/locations', methods=['POST'])
def create_location():
    data = payload()
    require(data, 'name', 'address')
    location = Location()
    _apply_location_fields(location, data)
    db.session.add(location)
    db.session.commit()
    return jsonify({'message': 'Location created successfully.',
                    'location': location_to_dict(location)}), 201


@admin_bp.route('/locations/<int:location_id>')
def show_location(location_id: int):
    return jsonify(location_to_dict(Location.query.get_or_404(location_id)))


@admin_bp.route('/locations/<int:location_id>', methods=['PUT', 'PATCH'])
def update_location(location_id: int):
    location = Location.query.get_or_404(location_id)
    _apply_location_fields(location, payload())
    db.session.commit()
    return jsonify({'message': 'Location updated successfully.',
                    'location': location_to_dict(location)})


@admin_bp.route('/locations/<int:location_id>', methods=['DELETE'])
def delete_location(location_id: int):
    location = Location.query.get_or_404(location_id)
    in_use = (Car.query.filter_by(location_id=location.id).first() is not None
              or Booking.query.filter(or_(Booking.pickup_location_id == location.id,
                                          Booking.return_location_id == location.id)).first() is not None)
    if in_use:
        raise ConflictError('Failed to delete location. It may be in use.')
    db.session.delete(location)
    db.session.commit()
    return jsonify({'message': 'Location deleted successfully.'})


@admin_bp.route('/locations/<int:location_id>/toggle', methods=['POST'])
def toggle_location(location_id: int):
    location = Location.query.get_or_404(location_id)
    location.is_active = not location.is_active
    db.session.commit()
    state = 'activated' if location.is_active else 'deactivated'
    return jsonify({'message': f"Location {state} successfully.", 'location': location_to_dict(location)})


# ---------------------------------------------------------------------------
# Promotions

def _apply_promotion_fields(promotion: Promotion, data: dict) -> None:
    """Validate and copy promotion fields; on create every required field must be present."""
    creating = promotion.id is None
    if creating:
        require(data, 'code', 'name', 'discount_type', 'discount_value',
                'start_date', 'end_date', 'status')

    errors = {}
    if 'code' in data:
        code = (data.get('code') or '').strip().upper()
        if not code or len(code) > 20:
            errors['code'] = 'The code must be between 1 and 20 characters.'
        elif Promotion.query.filter(Promotion.code == code, Promotion.id != promotion.id).first():
            errors['code'] = 'The code has already been taken.'
        else:
            promotion.code = code
    if errors:
        raise ValidationError(errors)

    if 'name' in data:
        promotion.name = data['name']
    if 'description' in data:
        promotion.description = data['description']
    if 'discount_type' in data:
        promotion.discount_type = parse_choice(data, 'discount_type', DISCOUNT_TYPES, required=True)
    if 'discount_value' in data:
        promotion.discount_value = parse_decimal(data, 'discount_value', required=True, minimum=0)
    if promotion.discount_type == 'percentage' and promotion.discount_value > 100:
        raise ValidationError({'discount_value': 'A percentage discount cannot exceed 100.'})
    for key in ('max_discount', 'min_amount'):
        if key in data:
            setattr(promotion, key, parse_decimal(data, key, minimum=0))
    for key in ('min_rental_hours', 'max_uses', 'max_uses_per_user'):
        if key in data:
            setattr(promotion, key, parse_int(data, key, minimum=1))
    if 'priority' in data:
        promotion.priority = parse_int(data, 'priority', minimum=0) or 0
    for key in ('is_auto_apply', 'is_featured'):
        if key in data:
            setattr(promotion, key, parse_bool(data, key))
    if 'status' in data:
        promotion.status = parse_choice(data, 'status', ('active', 'paused', 'upcoming'), required=True)

    start = parse_datetime(data, 'start_date', required=False) or promotion.start_date
    end = parse_datetime(data, 'end_date', required=False) or promotion.end_date
    if end <= start:
        raise ValidationError({'end_date': 'The end date must be a date after start date.'})
    promotion.start_date, promotion.end_date = start, end


@admin_bp.route('/promotions')
def list_promotions():
    query = Promotion.query
    status = request.args.get('status', 'all')
    if status != 'all':
        query = query.filter(Promotion.status == status)
    search = request.args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Promotion.code.ilike(like), Promotion.name.ilike(like)))
    promotions = query.order_by(Promotion.priority, Promotion.created_at.desc()).all()
    return jsonify([promotion_to_dict(p) for p in promotions])


@admin_bp.route('/promotions', methods=['POST'])
def create_promotion():
    promotion = Promotion(created_by=current_user.id, used_count=0)
    _apply_promotion_fields(promotion, payload())
    db.session.add(promotion)
    db.session.commit()
    logger.info('Admin {} created promotion {}', current_user.id, promotion.code)
    return jsonify({'message': 'Promotion created successfully.',
                    'promotion': promotion_to_dict(promotion)}), 201


@admin_bp.route('/promotions/<int:promotion_id>')
def show_promotion(promotion_id: int):
    return jsonify(promotion_to_dict(Promotion.query.get_or_404(promotion_id)))


@admin_bp.route('/promotions/<int:promotion_id>', methods=['PUT', 'PATCH'])
def update_promotion(promotion_id: int):
    promotion = Promotion.query.get_or_404(promotion_id)
    _apply_promotion_fields(promotion, payload())
    db.session.commit()
    return jsonify({'message': 'Promotion updated successfully.',
                    'promotion': promotion_to_dict(promotion)})


@admin_bp.route('/promotions/<int:promotion_id>', methods=['DELETE'])
def delete_promotion(promotion_id: int):
    promotion = Promotion.query.get_or_404(promotion_id)
    if promotion.used_count:
        # Applied promotions stay referenced by their bookings
        promotion.status = 'archived'
        db.session.commit()
        return jsonify({'message': 'Promotion has been used and was archived instead.'})
    db.session.delete(promotion)
    db.session.commit()
    return jsonify({'message': 'Promotion deleted successfully.'})


@admin_bp.route('/promotions/<int:promotion_id>/toggle', methods=['POST'])
def toggle_promotion(promotion_id: int):
    promotion = Promotion.query.get_or_404(promotion_id)
    if promotion.status not in ('active', 'paused'):
        raise ConflictError(f"Only active or paused promotions can be toggled, this one is {promotion.status}.")
    promotion.status = 'paused' if promotion.status == 'active' else 'active'
    db.session.commit()
    message = ('Promotion activated successfully.' if promotion.status == 'active'
               else 'Promotion paused successfully.')
    return jsonify({'message': message, 'promotion': promotion_to_dict(promotion)})


# ---------------------------------------------------------------------------
# Payments

@admin_bp.route('/payments')
def list_payments():
    query = Payment.query
    for key in ('status', 'payment_method'):
        value = request.args.get(key)
        if value and value != 'all':
            query = query.filter(getattr(Payment, key) == value)
    items = query.order_by(Payment.created_at.desc()).all()
    return jsonify([payment_to_dict(p) for p in items])


@admin_bp.route('/payments/<int:payment_id>')
def show_payment(payment_id: int):
    return jsonify(payment_to_dict(Payment.query.get_or_404(payment_id)))


@admin_bp.route('/payments/<int:payment_id>/refund', methods=['POST'])
def refund_payment(payment_id: int):
    reason = payload().get('reason')
    if reason and len(reason) > 500:
        raise ValidationError({'reason': 'The reason may not be greater than 500 characters.'})
    payment = payments.refund_payment(Payment.query.get_or_404(payment_id), reason)
    return jsonify({'message': 'Payment has been refunded successfully',
                    'payment': payment_to_dict(payment)})


# ---------------------------------------------------------------------------
# Reviews

@admin_bp.route('/reviews')
def list_reviews():
    query = Review.query
    status = request.args.get('status', 'all')
    if status != 'all':
        query = query.filter(Review.status == status)
    return jsonify([review_to_dict(r) for r in query.order_by(Review.created_at.desc()).all()])


def _moderate(review_id: int, status: str) -> Review:
    review = Review.query.get_or_404(review_id)
    review.status = status
    db.session.flush()
    review.car.refresh_average_rating()
    db.session.commit()
    return review


@admin_bp.route('/reviews/<int:review_id>/approve', methods=['POST'])
def approve_review(review_id: int):
    review = _moderate(review_id, 'approved')
    return jsonify({'message': 'Review approved successfully.', 'review': review_to_dict(review)})


@admin_bp.route('/reviews/<int:review_id>/reject', methods=['POST'])
def reject_review(review_id: int):
    review = _moderate(review_id, 'rejected')
    return jsonify({'message': 'Review rejected successfully.', 'review': review_to_dict(review)})


@admin_bp.route('/reviews/<int:review_id>/respond', methods=['POST'])
def respond_review(review_id: int):
    review = Review.query.get_or_404(review_id)
    data = payload()
    require(data, 'response')
    if len(data['response']) > 1000:
        raise ValidationError({'response': 'The response may not be greater than 1000 characters.'})
    review.response = data['response']
    review.responded_by = current_user.id
    review.responded_at = datetime.now()
    db.session.commit()
    return jsonify({'message': 'Response added successfully.', 'review': review_to_dict(review)})


@admin_bp.route('/reviews/<int:review_id>', methods=['DELETE'])
def delete_review(review_id: int):
    review = Review.query.get_or_404(review_id)
    car = review.car
    car.reviews.remove(review)
    db.session.delete(review)
    car.refresh_average_rating()
    db.session.commit()
    return jsonify({'message': 'Review deleted successfully.'})


# ---------------------------------------------------------------------------
# Verifications

@admin_bp.route('/verifications')
def list_verifications():
    query = UserVerification.query
    status = request.args.get('status', 'all')
    if status != 'all':
        query = query.filter(UserVerification.status == status)
    items = query.order_by(UserVerification.created_at.desc()).all()
    return jsonify([verification_to_dict(v) for v in items])


@admin_bp.route('/verifications/<int:verification_id>/approve', methods=['POST'])
def approve_verification(verification_id: int):
    verification = UserVerification.query.get_or_404(verification_id)
    if verification.status == 'verified':
        raise ConflictError('This verification is already approved.')
    verification.status = 'verified'
    verification.verified_by = current_user.id
    verification.verified_at = datetime.now()
    verification.rejected_reason = None
    db.session.commit()
    logger.info('Admin {} approved verification {}', current_user.id, verification.id)
    return jsonify({'message': 'Verification approved successfully.',
                    'verification': verification_to_dict(verification)})


@admin_bp.route('/verifications/<int:verification_id>/reject', methods=['POST'])
def reject_verification(verification_id: int):
    verification = UserVerification.query.get_or_404(verification_id)
    if verification.status == 'rejected':
        raise ConflictError('This verification is already rejected.')
    data = payload()
    require(data, 'reason')
    verification.status = 'rejected'
    verification.rejected_by = current_user.id
    verification.rejected_at = datetime.now()
    verification.rejected_reason = data['reason']
    db.session.commit()
    logger.info('Admin {} rejected verification {}', current_user.id, verification.id)
    return jsonify({'message': 'Verification rejected successfully.',
                    'verification': verification_to_dict(verification)})
