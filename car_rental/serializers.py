"""Dict representations of models for JSON responses.

Money is emitted as float and datetimes in ISO format.
"""


def _money(value):
    return float(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value is not None else None


def user_to_dict(user, detail=False):
    data = {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'phone': user.phone,
        'role': user.role,
        'status': user.status,
        'is_verified': user.is_verified(),
        'created_at': _iso(user.created_at),
    }
    if detail:
        data.update({
            'address': user.address,
            'date_of_birth': _iso(user.date_of_birth),
            'deleted_at': _iso(user.deleted_at),
            'deletion_reason': user.deletion_reason,
            'verification': verification_to_dict(user.verification) if user.verification else None,
        })
    return data


def verification_to_dict(verification):
    return {
        'id': verification.id,
        'user_id': verification.user_id,
        'user_name': verification.user.name,
        'driving_license_number': verification.driving_license_number,
        'license_type': verification.license_type,
        'license_issue_date': _iso(verification.license_issue_date),
        'license_expiry_date': _iso(verification.license_expiry_date),
        'license_issued_country': verification.license_issued_country,
        'nationality': verification.nationality,
        'status': verification.status,
        'verified_at': _iso(verification.verified_at),
        'rejected_at': _iso(verification.rejected_at),
        'rejected_reason': verification.rejected_reason,
    }


def location_to_dict(location):
    return {
        'id': location.id,
        'name': location.name,
        'slug': location.slug,
        'description': location.description,
        'address': location.address,
        'latitude': float(location.latitude) if location.latitude is not None else None,
        'longitude': float(location.longitude) if location.longitude is not None else None,
        'phone': location.phone,
        'email': location.email,
        'opening_time': location.opening_time.strftime('%H:%M') if location.opening_time else None,
        'closing_time': location.closing_time.strftime('%H:%M') if location.closing_time else None,
        'is_24_7': location.is_24_7,
        'is_airport': location.is_airport,
        'is_popular': location.is_popular,
        'is_active': location.is_active,
        'is_open': location.is_open(),
        'sort_order': location.sort_order,
    }


def catalog_to_dict(item):
    """Brands and categories share the same shape."""
    return {
        'id': item.id,
        'name': item.name,
        'slug': item.slug,
        'is_active': item.is_active,
        'sort_order': item.sort_order,
        'cars_count': len(item.cars),
    }


def car_summary(car):
    return {
        'id': car.id,
        'name': car.display_name,
        'model': car.model,
        'brand': car.brand.name if car.brand else None,
    }


def car_to_dict(car, detail=False):
    data = {
        'id': car.id,
        'name': car.display_name,
        'model': car.model,
        'year': car.year,
        'brand': {'id': car.brand.id, 'name': car.brand.name},
        'category': {'id': car.category.id, 'name': car.category.name},
        'location': {'id': car.location.id, 'name': car.location.name},
        'seats': car.seats,
        'transmission': car.transmission,
        'fuel_type': car.fuel_type,
        'status': car.status,
        'hourly_rate': _money(car.hourly_rate),
        'daily_rate': _money(car.daily_rate),
        'daily_hour_threshold': car.daily_hour_threshold,
        'deposit_amount': _money(car.deposit_amount),
        'min_rental_hours': car.min_rental_hours,
        'is_delivery_available': car.is_delivery_available,
        'average_rating': _money(car.average_rating),
        'rental_count': car.rental_count,
    }
    if detail:
        data.update({
            'color': car.color,
            'license_plate': car.license_plate,
            'odometer_km': car.odometer_km,
            'is_verified': car.is_verified,
            'owner': {'id': car.owner.id, 'name': car.owner.name},
            'description': car.description,
            'overtime_fee_per_hour': _money(car.overtime_fee_per_hour),
            'delivery_fee_per_km': _money(car.delivery_fee_per_km),
            'max_delivery_distance': _money(car.max_delivery_distance),
            'reviews': [review_to_dict(r) for r in car.approved_reviews()],
        })
    return data


def driver_to_dict(driver):
    return {
        'id': driver.id,
        'user_id': driver.user_id,
        'name': driver.user.name,
        'phone': driver.user.phone,
        'owner_id': driver.owner_id,
        'hourly_fee': _money(driver.hourly_fee),
        'daily_fee': _money(driver.daily_fee),
        'overtime_fee_per_hour': _money(driver.overtime_fee_per_hour),
        'daily_hour_threshold': driver.daily_hour_threshold,
        'status': driver.status,
        'is_available_for_booking': driver.is_available_for_booking,
        'completed_trips': driver.completed_trips,
        'average_rating': _money(driver.average_rating),
    }


def promotion_to_dict(promotion):
    return {
        'id': promotion.id,
        'code': promotion.code,
        'name': promotion.name,
        'description': promotion.description,
        'discount_type': promotion.discount_type,
        'discount_value': _money(promotion.discount_value),
        'max_discount': _money(promotion.max_discount),
        'min_amount': _money(promotion.min_amount),
        'min_rental_hours': promotion.min_rental_hours,
        'max_uses': promotion.max_uses,
        'max_uses_per_user': promotion.max_uses_per_user,
        'used_count': promotion.used_count,
        'start_date': _iso(promotion.start_date),
        'end_date': _iso(promotion.end_date),
        'status': promotion.status,
        'is_auto_apply': promotion.is_auto_apply,
        'is_featured': promotion.is_featured,
        'priority': promotion.priority,
    }


def charge_to_dict(charge):
    if charge is None:
        return None
    return {
        'total_hours': charge.total_hours,
        'total_days': charge.total_days,
        'hourly_rate': _money(charge.hourly_rate),
        'daily_rate': _money(charge.daily_rate),
        'base_amount': _money(charge.base_amount),
        'delivery_fee': _money(charge.delivery_fee),
        'driver_fee_amount': _money(charge.driver_fee_amount),
        'insurance_fee': _money(charge.insurance_fee),
        'extra_fee': _money(charge.extra_fee),
        'extra_fee_details': charge.extra_fee_details,
        'discount_amount': _money(charge.discount_amount),
        'subtotal': _money(charge.subtotal),
        'vat_amount': _money(charge.vat_amount),
        'total_amount': _money(charge.total_amount),
        'deposit_amount': _money(charge.deposit_amount),
        'amount_paid': _money(charge.amount_paid),
        'balance_due': _money(charge.balance_due),
        'refund_amount': _money(charge.refund_amount),
    }


def booking_to_dict(booking, detail=False):
    data = {
        'id': booking.id,
        'booking_code': booking.booking_code,
        'status': booking.status,
        'payment_status': booking.payment_status,
        'payment_method': booking.payment_method,
        'pickup_datetime': _iso(booking.pickup_datetime),
        'return_datetime': _iso(booking.return_datetime),
        'total_amount': _money(booking.total_amount),
        'car': car_summary(booking.car),
        'customer': {'id': booking.user.id, 'name': booking.user.name, 'email': booking.user.email},
        'pickup_location': {'id': booking.pickup_location.id, 'name': booking.pickup_location.name},
        'return_location': {'id': booking.return_location.id, 'name': booking.return_location.name},
        'with_driver': booking.with_driver,
        'is_delivery': booking.is_delivery,
        'created_at': _iso(booking.created_at),
    }
    if detail:
        data.update({
            'actual_pickup_time': _iso(booking.actual_pickup_time),
            'actual_return_time': _iso(booking.actual_return_time),
            'hourly_rate': _money(booking.hourly_rate),
            'daily_rate': _money(booking.daily_rate),
            'daily_hour_threshold': booking.daily_hour_threshold,
            'deposit_amount': _money(booking.deposit_amount),
            'driver': {
                'id': booking.driver_profile.id,
                'name': booking.driver_profile.user.name,
                'phone': booking.driver_profile.user.phone,
            } if booking.driver_profile else None,
            'driver_hourly_fee': _money(booking.driver_hourly_fee),
            'driver_daily_fee': _money(booking.driver_daily_fee),
            'total_driver_hours': booking.total_driver_hours,
            'delivery_address': booking.delivery_address,
            'delivery_distance': _money(booking.delivery_distance),
            'delivery_fee_per_km': _money(booking.delivery_fee_per_km),
            'confirmed_at': _iso(booking.confirmed_at),
            'cancelled_at': _iso(booking.cancelled_at),
            'cancellation_reason': booking.cancellation_reason,
            'special_requests': booking.special_requests,
            'admin_notes': booking.admin_notes,
            'car_condition_notes': booking.car_condition_notes,
            'charge': charge_to_dict(booking.charge),
            'promotions': [{
                'code': bp.promotion_code,
                'discount_amount': _money(bp.discount_amount),
                'details': bp.promotion_details,
            } for bp in booking.promotions],
            'payments': [payment_to_dict(p) for p in booking.payments],
            'can_be_cancelled': booking.can_be_cancelled(),
        })
    return data


def payment_to_dict(payment):
    return {
        'id': payment.id,
        'transaction_id': payment.transaction_id,
        'booking_id': payment.booking_id,
        'booking_code': payment.booking.booking_code,
        'user_id': payment.user_id,
        'payment_method': payment.payment_method,
        'payment_type': payment.payment_type,
        'amount': _money(payment.amount),
        'amount_vnd': _money(payment.amount_vnd),
        'amount_usd': _money(payment.amount_usd),
        'exchange_rate': _money(payment.exchange_rate),
        'currency': payment.currency,
        'status': payment.status,
        'paypal_order_id': payment.paypal_order_id,
        'paypal_payer_email': payment.paypal_payer_email,
        'notes': payment.notes,
        'paid_at': _iso(payment.paid_at),
        'refunded_at': _iso(payment.refunded_at),
        'created_at': _iso(payment.created_at),
    }


def review_to_dict(review):
    return {
        'id': review.id,
        'booking_id': review.booking_id,
        'car_id': review.car_id,
        'user': {'id': review.user.id, 'name': review.user.name},
        'rating': review.rating,
        'comment': review.comment,
        'status': review.status,
        'response': review.response,
        'responded_at': _iso(review.responded_at),
        'created_at': _iso(review.created_at),
    }


def quote_to_dict(quote):
    rental, driver, delivery = quote.rental, quote.driver_charge, quote.delivery
    promotion, totals = quote.promotion, quote.breakdown
    return {
        'rental': {
            'total_hours': rental.total_hours,
            'total_days': rental.total_days,
            'remaining_hours': rental.remaining_hours,
            'base_amount': _money(rental.amount),
            'hourly_rate': _money(rental.rates.hourly_rate),
            'daily_rate': _money(rental.rates.daily_rate),
            'daily_hour_threshold': rental.rates.daily_hour_threshold,
        },
        'driver': {
            'driver_profile_id': quote.driver.id if quote.driver else None,
            'driver_fee_amount': _money(driver.amount),
            'total_driver_hours': driver.total_hours,
            'driver_hourly_fee': _money(driver.rates.hourly_rate) if driver.rates else None,
            'driver_daily_fee': _money(driver.rates.daily_rate) if driver.rates else None,
            'driver_days': driver.total_days,
            'driver_remaining_hours': driver.remaining_hours,
        },
        'delivery': {
            'can_deliver': delivery.can_deliver,
            'delivery_fee': _money(delivery.fee),
            'delivery_distance': _money(delivery.distance),
            'delivery_fee_per_km': _money(delivery.fee_per_km),
            'error_message': delivery.error,
        },
        'discount': {
            'is_valid': promotion.is_valid,
            'discount_amount': _money(promotion.discount_amount),
            'promotion_id': promotion.promotion.id if promotion.promotion else None,
            'promotion_code': promotion.code,
            'promotion_details': promotion.details,
            'error_message': promotion.error,
        },
        'insurance_fee': _money(totals.insurance_fee),
        'with_insurance': quote.insurance_requested,
        'extra_fee': _money(totals.extra_fee),
        'subtotal': _money(totals.subtotal),
        'vat_amount': _money(totals.vat_amount),
        'vat_percentage': int(totals.vat_rate * 100),
        'total_amount': _money(totals.total_amount),
        'deposit_amount': _money(totals.deposit_amount),
        'amount_paid': _money(totals.amount_paid),
        'balance_due': _money(totals.balance_due),
        'car': car_summary(quote.car),
        'pickup_location_id': quote.pickup_location.id,
        'return_location_id': quote.return_location.id,
        'calculated_at': _iso(quote.calculated_at),
    }
