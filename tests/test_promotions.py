from datetime import datetime, timedelta
from decimal import Decimal

from car_rental import bookings, seed


def test_blank_code_is_neither_valid_nor_an_error(app):
    check = bookings.check_promotion('', Decimal('1000000'), None, 24)
    assert not check.is_valid
    assert check.error is None


def test_unknown_code(app):
    check = bookings.check_promotion('NOPE', Decimal('1000000'), None, 24)
    assert check.error == 'Invalid promotion code.'


def test_valid_percentage_code(app):
    seed.create_promotion(code='SAVE10', discount_value=10, max_discount=Decimal('50000'))
    check = bookings.check_promotion('SAVE10', Decimal('300000'), None, 24)
    assert check.is_valid
    assert check.discount_amount == Decimal('30000.00')
    assert check.details['discount_type'] == 'percentage'

    capped = bookings.check_promotion('SAVE10', Decimal('1000000'), None, 24)
    assert capped.discount_amount == Decimal('50000.00')


def test_inactive_promotion(app):
    seed.create_promotion(code='PAUSED', status='paused')
    check = bookings.check_promotion('PAUSED', Decimal('1000000'), None, 24)
    assert check.error == 'This promotion is not currently active.'


def test_outside_validity_window(app):
    now = datetime.now()
    seed.create_promotion(code='LATER', start_date=now + timedelta(days=2),
                          end_date=now + timedelta(days=10))
    check = bookings.check_promotion('LATER', Decimal('1000000'), None, 24, now=now)
    assert check.error == 'This promotion is not valid at this time.'


def test_minimum_amount(app):
    seed.create_promotion(code='BIG', min_amount=Decimal('2000000'))
    check = bookings.check_promotion('BIG', Decimal('1000000'), None, 24)
    assert check.error.startswith('Minimum order amount of')


def test_minimum_duration(app):
    seed.create_promotion(code='LONG', min_rental_hours=48)
    check = bookings.check_promotion('LONG', Decimal('1000000'), None, 24)
    assert check.error == 'Minimum rental duration of 48 hours required.'


def test_global_usage_limit(app):
    seed.create_promotion(code='GONE', max_uses=5, used_count=5)
    check = bookings.check_promotion('GONE', Decimal('1000000'), None, 24)
    assert check.error == 'This promotion has reached its usage limit.'


def test_first_failing_rule_wins(app):
    seed.create_promotion(code='BOTH', status='paused', min_amount=Decimal('2000000'))
    check = bookings.check_promotion('BOTH', Decimal('1000000'), None, 24)
    assert check.error == 'This promotion is not currently active.'


def test_per_user_limit_counts_earlier_bookings(app, customer, make_booking, pickup):
    promotion = seed.create_promotion(code='ONCE', max_uses_per_user=1)
    booking = make_booking(promotion_code='ONCE')
    assert booking.promotions[0].promotion_code == 'ONCE'
    assert promotion.used_count == 1

    again = bookings.check_promotion('ONCE', Decimal('1000000'), customer.id, 24)
    assert again.error == 'You have already used this promotion the maximum number of times.'

    # Anonymous previews skip the per-user rule
    anonymous = bookings.check_promotion('ONCE', Decimal('1000000'), None, 24)
    assert anonymous.is_valid

    other = seed.create_user()
    assert bookings.check_promotion('ONCE', Decimal('1000000'), other.id, 24).is_valid
