"""
Payment bookkeeping around the PayPal checkout.

Booking amounts are kept in VND. When an order is created the amount is
converted to the PayPal currency and both figures are stored on the
``Payment`` row together with the rate that was used. Captures and refunds
update the booking's charge so that::

    balance_due == total_amount - amount_paid - deposit_amount
"""

from datetime import datetime
from decimal import Decimal

from flask import current_app
from loguru import logger

from . import db
from . import mail
from .errors import PaymentError, PaymentProviderError
from .models import Booking, Payment
from .pricing import balance_due, money, to_decimal

SUPPORTED_METHODS = ('paypal',)


def paypal_client():
    return current_app.extensions['paypal']


def currency_service():
    return current_app.extensions['currency']


def payment_amount(booking: Booking, payment_type: str) -> Decimal:
    if payment_type == 'deposit':
        return money(booking.deposit_amount)
    return money(booking.total_amount)


def start_payment(booking: Booking, method: str, payment_type: str,
                  return_url: str, cancel_url: str) -> dict:
    """Open a provider order for a booking and record it as a pending payment."""
    if booking.payment_status == 'paid':
        raise PaymentError('Booking already paid')
    if method not in SUPPORTED_METHODS:
        raise PaymentError('Payment method not yet implemented')
    if booking.status in ('cancelled', 'rejected', 'completed'):
        raise PaymentError(f"Cannot pay for a {booking.status} booking.")

    amount_vnd = payment_amount(booking, payment_type)
    if amount_vnd <= 0:
        raise PaymentError('Nothing to pay for this booking.')

    currency = currency_service()
    amount_usd = currency.vnd_to_usd(amount_vnd)
    rate = currency.exchange_rate()
    client = paypal_client()

    custom = {'booking_id': booking.id, 'payment_type': payment_type}
    try:
        order = client.create_order(booking.booking_code, amount_usd, custom, return_url, cancel_url)
    except PaymentProviderError:
        logger.error('PayPal order creation failed for booking {}', booking.booking_code)
        raise

    payment = Payment(
        transaction_id=order['id'],
        booking_id=booking.id,
        user_id=booking.user_id,
        payment_method='paypal',
        payment_type=payment_type,
        amount=amount_vnd,
        amount_vnd=amount_vnd,
        amount_usd=amount_usd,
        exchange_rate=Decimal(str(rate)),
        currency=client.currency,
        status='pending',
        paypal_order_id=order['id'],
        paypal_response=order,
    )
    booking.payment_method = 'paypal'
    db.session.add(payment)
    db.session.commit()
    logger.info('PayPal order {} created for booking {}: {} VND = {} {}', order['id'],
                booking.booking_code, amount_vnd, amount_usd, client.currency)
    return {
        'payment_id': payment.id,
        'order_id': order['id'],
        'approval_url': client.approval_url(order),
        'status': order.get('status'),
        'amount_vnd': float(amount_vnd),
        'amount_usd': float(amount_usd),
        'exchange_rate': rate,
    }


def find_by_order(order_id: str) -> Payment:
    return Payment.query.filter_by(paypal_order_id=order_id).first_or_404()


def capture_payment(order_id: str, now: datetime = None) -> Payment:
    """Capture an approved order.

    Capturing an order whose payment is already completed is a no-op. The
    returned payment is ``completed`` on success and ``failed`` when the
    provider did not complete the capture. Transport failures leave it
    ``pending`` and propagate as ``PaymentProviderError``.
    """
    payment = find_by_order(order_id)
    if payment.is_completed():
        return payment
    if not payment.is_pending():
        raise PaymentError(f"This payment is {payment.status} and cannot be captured.")

    now = now or datetime.now()
    booking = payment.booking
    try:
        result = paypal_client().capture_order(order_id)
        if result.get('status') != 'COMPLETED':
            raise PaymentError('Payment capture failed')

        payer = result.get('payer') or {}
        payment.mark_completed(now)
        payment.paypal_payer_id = payer.get('payer_id')
        payment.paypal_payer_email = payer.get('email_address')
        payment.paypal_response = result

        charge = booking.charge
        if charge is not None:
            charge.amount_paid = money(to_decimal(charge.amount_paid) + to_decimal(payment.amount))
            charge.balance_due = balance_due(charge.total_amount, charge.amount_paid,
                                             charge.deposit_amount)
        booking.status = 'confirmed'
        booking.payment_status = 'paid'
        booking.confirmed_at = now
        db.session.commit()
    except PaymentProviderError:
        # Payment stays pending so the callback can be retried
        db.session.rollback()
        logger.error('PayPal unreachable while capturing order {} (booking {})', order_id,
                     booking.booking_code)
        raise
    except PaymentError as exc:
        db.session.rollback()
        payment.mark_failed()
        booking.payment_status = 'failed'
        db.session.commit()
        logger.error('Payment capture failed for order {} (booking {}): {}', order_id,
                     booking.booking_code, exc.message)
        return payment
    except Exception:
        db.session.rollback()
        raise

    logger.info('Payment {} captured for booking {}', payment.id, booking.booking_code)
    mail.send_booking_confirmation(booking)
    return payment


def cancel_payment(order_id: str) -> Payment:
    payment = Payment.query.filter_by(paypal_order_id=order_id).first()
    if payment is None:
        return None
    if payment.is_pending():
        payment.status = 'cancelled'
        db.session.commit()
        logger.info('Payment for order {} cancelled by user (booking {})', order_id,
                    payment.booking.booking_code)
    return payment


def refund_payment(payment: Payment, reason: str = None, now: datetime = None) -> Payment:
    """Refund a completed payment in full.

    PayPal payments with a known capture are refunded through the provider
    first; the local bookkeeping only changes once the provider accepted it.
    """
    if payment.is_refunded():
        raise PaymentError('Payment has already been refunded')
    if not payment.is_completed():
        raise PaymentError('Only completed payments can be refunded')

    if payment.payment_method == 'paypal':
        capture_id = paypal_client().capture_id(payment.paypal_response or {})
        if capture_id:
            paypal_client().refund_capture(capture_id, payment.amount_usd, reason)

    booking = payment.booking
    try:
        payment.mark_refunded(now)
        payment.notes = reason or 'Refunded by admin'
        charge = booking.charge
        if charge is not None:
            amount = to_decimal(payment.amount)
            charge.amount_paid = money(to_decimal(charge.amount_paid) - amount)
            charge.refund_amount = money(to_decimal(charge.refund_amount) + amount)
            charge.balance_due = balance_due(charge.total_amount, charge.amount_paid,
                                             charge.deposit_amount)
        if not any(p.is_completed() for p in booking.payments):
            booking.payment_status = 'refunded'
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info('Payment {} refunded ({} VND) for booking {}', payment.id, payment.amount,
                booking.booking_code)
    return payment
