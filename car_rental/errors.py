"""
Domain errors and their JSON rendering.

Service functions raise these exceptions; the handlers registered by
``register_error_handlers`` turn them (and any werkzeug ``HTTPException``
such as the 404 from ``get_or_404``) into ``{"error": ...}`` responses.
"""

from flask import jsonify
from loguru import logger
from werkzeug.exceptions import HTTPException


class RentalError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 400

    def __init__(self, message: str, errors: dict = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self) -> dict:
        payload = {'error': self.message}
        if self.errors:
            payload['errors'] = self.errors
        return payload


class ValidationError(RentalError):
    status_code = 422

    def __init__(self, errors: dict, message: str = 'The given data was invalid.'):
        super().__init__(message, errors)


class PricingError(RentalError):
    status_code = 422


class ConflictError(RentalError):
    """The request conflicts with the current state of a record."""

    status_code = 409


class BookingStateError(ConflictError):
    pass


class UnavailableError(ConflictError):
    pass


class AuthorizationError(RentalError):
    status_code = 403


class PaymentError(RentalError):
    status_code = 400


class PaymentProviderError(PaymentError):
    status_code = 502


def register_error_handlers(app):
    @app.errorhandler(RentalError)
    def handle_rental_error(exc: RentalError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({'error': exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        logger.exception('Unhandled error: {}', exc)
        return jsonify({'error': 'Internal server error'}), 500
