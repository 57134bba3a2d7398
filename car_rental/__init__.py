"""Car rental booking platform.

A Flask application exposing a JSON API for the customer booking flow
(search, pricing preview, checkout, PayPal payment) and the admin
back-office (users, bookings, drivers, locations, promotions, payments,
reviews and verifications).
"""

from flask import Flask, jsonify
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
login_manager = LoginManager()


def create_app(config_object='car_rental.config.Config'):
    app = Flask(__name__)
    app.config.from_object(config_object)

    from .log import setup_logging
    setup_logging(app)

    db.init_app(app)
    login_manager.init_app(app)

    from .errors import register_error_handlers
    register_error_handlers(app)

    from .currency import CurrencyService
    from .paypal import PayPalClient
    app.extensions['currency'] = CurrencyService.from_config(app.config)
    app.extensions['paypal'] = PayPalClient.from_config(app.config)
    app.jinja_env.filters['money'] = CurrencyService.format

    # Register Blueprints
    from .views.admin import admin_bp
    from .views.auth import auth_bp
    from .views.customer import customer_bp
    from .views.payment import payment_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(customer_bp)
    app.register_blueprint(payment_bp)
    app.register_blueprint(admin_bp)

    return app


@login_manager.user_loader
def load_user(user_id: str):
    from .models import User
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': 'Authentication required'}), 401
