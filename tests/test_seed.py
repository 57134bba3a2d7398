from car_rental import seed
from car_rental.models import Booking, BookingPromotion, User


def test_seed_database(app):
    counts = seed.seed_database()
    assert counts == {'users': 11, 'locations': 5, 'cars': 15, 'drivers': 3,
                      'promotions': 3, 'bookings': 5}

    admin = User.query.filter_by(email='admin@example.com').one()
    assert admin.is_admin()
    assert admin.check_password('admin12345')

    for booking in Booking.query.all():
        charge = booking.charge
        assert charge.total_amount == charge.subtotal + charge.vat_amount
        assert charge.balance_due == charge.total_amount - charge.amount_paid - charge.deposit_amount
    assert BookingPromotion.query.one().promotion_code == 'WELCOME10'
