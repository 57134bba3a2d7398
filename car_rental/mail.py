"""
Transactional booking emails.

Messages are rendered from ``templates/emails`` and sent over SMTP with
STARTTLS. With ``MAIL_ENABLED`` off (the default outside production) the
message is only logged. Sending never raises into the caller: failures are
logged and reported as ``False``.
"""

import smtplib
from datetime import datetime, timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template
from loguru import logger

from . import db
from .models import Booking


def deliver(to: str, subject: str, html: str) -> None:
    config = current_app.config
    if not config.get('MAIL_ENABLED'):
        logger.info('Mail disabled, not sending "{}" to {}', subject, to)
        return

    msg = MIMEMultipart()
    msg['From'] = config['MAIL_FROM']
    msg['To'] = to
    msg['Subject'] = subject
    msg.attach(MIMEText(html, 'html'))

    server = smtplib.SMTP(config['MAIL_HOST'], config['MAIL_PORT'])
    try:
        server.starttls()
        if config.get('MAIL_USERNAME'):
            server.login(config['MAIL_USERNAME'], config['MAIL_PASSWORD'])
        server.send_message(msg)
    finally:
        server.quit()


def _send(booking: Booking, subject: str, template: str, **context) -> bool:
    recipient = booking.user.email
    try:
        html = render_template(template, booking=booking,
                               app_name=current_app.config['APP_NAME'],
                               app_url=current_app.config['APP_URL'], **context)
        deliver(recipient, subject, html)
    except Exception as exc:
        logger.error('Failed to send "{}" to {}: {}', subject, recipient, exc)
        return False
    logger.info('Sent "{}" to {}', subject, recipient)
    return True


def send_booking_confirmation(booking: Booking) -> bool:
    return _send(booking, f"Booking Confirmation - {booking.booking_code}",
                 'emails/booking_confirmation.html')


def send_booking_cancellation(booking: Booking) -> bool:
    return _send(booking, f"Booking Cancelled - {booking.booking_code}",
                 'emails/booking_cancelled.html')


def send_booking_reminder(booking: Booking, now: datetime = None) -> bool:
    now = now or datetime.now()
    hours = max(0, int((booking.pickup_datetime - now).total_seconds() // 3600))
    return _send(booking, f"Booking Reminder - {booking.booking_code}",
                 'emails/booking_reminder.html', hours_until_pickup=hours)


def due_reminders(now: datetime):
    return (Booking.query
            .filter(Booking.status == 'confirmed',
                    Booking.pickup_datetime.between(now + timedelta(hours=23),
                                                    now + timedelta(hours=25)),
                    Booking.reminder_sent_at.is_(None))
            .order_by(Booking.pickup_datetime)
            .all())


def send_reminders(now: datetime = None) -> int:
    """Remind customers whose pickup is about a day away. Returns the number sent."""
    now = now or datetime.now()
    sent = 0
    for booking in due_reminders(now):
        if send_booking_reminder(booking, now):
            booking.reminder_sent_at = now
            sent += 1
    db.session.commit()
    logger.info('Sent {} booking reminder(s)', sent)
    return sent
