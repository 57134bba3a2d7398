from flask import Blueprint, abort, jsonify, redirect, request, url_for
from flask_login import current_user, login_required
from loguru import logger

from .. import payments
from ..models import Payment
from ..parsing import parse_choice, parse_int, require
from ..serializers import payment_to_dict
from . import payload
from .customer import own_booking

payment_bp = Blueprint('payment', __name__, url_prefix='/payment')


@payment_bp.route('/process', methods=['POST'])
@login_required
def process_payment():
    data = payload()
    require(data, 'booking_id', 'payment_method')
    booking = own_booking(parse_int(data, 'booking_id'))
    method = parse_choice(data, 'payment_method', ('paypal', 'credit_card', 'bank_transfer'))
    payment_type = parse_choice(data, 'payment_type', ('deposit', 'full_payment'),
                                default='full_payment')
    result = payments.start_payment(
        booking, method, payment_type,
        return_url=url_for('payment.paypal_success', _external=True),
        cancel_url=url_for('payment.paypal_cancel', _external=True),
    )
    return jsonify({'success': True, 'payment_method': method, **result})


@payment_bp.route('/paypal/success')
def paypal_success():
    # PayPal passes the order id back as ``token``
    order_id = request.args.get('token')
    if not order_id:
        return jsonify({'error': 'Missing payment information. Please contact support.'}), 400

    payment = payments.capture_payment(order_id)
    booking = payment.booking
    if payment.is_completed():
        return redirect(url_for('customer.booking_confirmation', booking_id=booking.id))
    return jsonify({
        'error': 'Payment capture failed. Please try again or contact support.',
        'booking': {'id': booking.id, 'booking_code': booking.booking_code},
    }), 402


@payment_bp.route('/paypal/cancel')
def paypal_cancel():
    order_id = request.args.get('token')
    payment = payments.cancel_payment(order_id) if order_id else None
    if payment is None:
        return jsonify({'message': 'Payment was cancelled. You can try booking again.'})
    booking = payment.booking
    return jsonify({
        'message': 'Payment was cancelled.',
        'booking': {
            'id': booking.id,
            'booking_code': booking.booking_code,
            'car_name': booking.car.display_name,
            'total_amount': float(booking.total_amount),
        },
    })


@payment_bp.route('/<int:payment_id>')
@login_required
def show_payment(payment_id: int):
    payment = Payment.query.get_or_404(payment_id)
    if payment.user_id != current_user.id:
        logger.warning('User {} tried to view payment {}', current_user.id, payment_id)
        abort(403)
    return jsonify(payment_to_dict(payment))
