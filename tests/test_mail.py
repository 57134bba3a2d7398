from datetime import datetime, timedelta

import pytest

from car_rental import bookings, mail


@pytest.fixture
def outbox(monkeypatch):
    messages = []
    monkeypatch.setattr('car_rental.mail.deliver',
                        lambda to, subject, html: messages.append((to, subject, html)))
    return messages


def test_confirmation_renders_booking_details(make_booking, customer, outbox):
    booking = make_booking()
    assert mail.send_booking_confirmation(booking) is True

    to, subject, html = outbox[0]
    assert to == customer.email
    assert subject == f"Booking Confirmation - {booking.booking_code}"
    assert booking.booking_code in html
    assert '1.100.000 ₫' in html
    assert booking.car.display_name in html


def test_failed_delivery_is_reported_not_raised(make_booking, monkeypatch):
    booking = make_booking()

    def broken(to, subject, html):
        raise ConnectionRefusedError('smtp down')

    monkeypatch.setattr('car_rental.mail.deliver', broken)
    assert mail.send_booking_cancellation(booking) is False


def test_disabled_mail_only_logs(app, make_booking):
    assert app.config['MAIL_ENABLED'] is False
    assert mail.send_booking_confirmation(make_booking()) is True


def test_reminders_go_to_confirmed_bookings_about_a_day_out(app, make_booking, admin, outbox):
    now = datetime.now().replace(microsecond=0)
    due = make_booking(start=now + timedelta(hours=24), now=now)
    later = make_booking(start=now + timedelta(days=3), now=now)
    unconfirmed = make_booking(start=now + timedelta(days=6), now=now)
    for booking in (due, later):
        bookings.confirm(booking, admin)
    outbox.clear()

    # Moved into the window without confirmation
    unconfirmed.pickup_datetime = now + timedelta(hours=24, minutes=30)

    assert mail.send_reminders(now) == 1
    assert [subject for _, subject, _ in outbox] == [f"Booking Reminder - {due.booking_code}"]
    assert 'about 24 hours' in outbox[0][2]
    assert due.reminder_sent_at == now

    assert mail.send_reminders(now) == 0
