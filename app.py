"""Car rental booking platform.

A Flask application serving a JSON API for customers (car search, pricing
preview, booking and PayPal payment) and for the admin back-office.

To run the app locally:

    # Install dependencies
    pip install -e .

    # Initialise the database, optionally with demo data
    python app.py --init-db
    python app.py --seed

    # Start the development server
    python app.py

Configuration is read from environment variables (or a ``.env`` file);
see ``car_rental/config.py``. Two maintenance commands are meant to be run
from cron:

    # Email customers whose pickup is about 24 hours away
    python app.py --send-reminders

    # Drop the cached VND/USD rate and fetch it again
    python app.py --refresh-rate --show
"""

import argparse

from car_rental import create_app, db

app = create_app()


def init_db():
    """Create all tables."""
    db.create_all()
    print("Database initialised.")


def seed_db():
    from car_rental.seed import seed_database
    db.create_all()
    counts = seed_database()
    print("Seeded: " + ", ".join(f"{count} {name}" for name, count in counts.items()))


def send_reminders():
    from car_rental.mail import send_reminders as send
    sent = send()
    print(f"Successfully sent {sent} reminder email(s).")


def refresh_rate(show: bool):
    currency = app.extensions['currency']
    rate = currency.refresh_rate()
    print(f"Exchange rate refreshed: 1 USD = {rate:,.0f} VND")
    if show:
        details = currency.conversion_details(1000000)
        print(f"{details['formatted_vnd']} = {details['formatted_usd']}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Car rental booking platform")
    parser.add_argument('--init-db', action='store_true', help='Initialise the database')
    parser.add_argument('--seed', action='store_true', help='Create tables and load demo data')
    parser.add_argument('--send-reminders', action='store_true',
                        help='Send reminder emails for bookings starting in about 24 hours')
    parser.add_argument('--refresh-rate', action='store_true',
                        help='Refresh the cached VND/USD exchange rate')
    parser.add_argument('--show', action='store_true', help='Show the rate after refreshing')
    args = parser.parse_args()
    if args.init_db:
        with app.app_context():
            init_db()
    elif args.seed:
        with app.app_context():
            seed_db()
    elif args.send_reminders:
        with app.app_context():
            send_reminders()
    elif args.refresh_rate:
        refresh_rate(args.show)
    else:
        app.run(debug=True)
