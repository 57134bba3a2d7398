"""Helpers for reading request payloads.

Each parser takes the raw payload dict and a field name and either returns
a Python value or raises ``ValidationError`` keyed by that field.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation

from .errors import ValidationError

_TRUE = ('1', 'true', 'yes', 'on')
_FALSE = ('0', 'false', 'no', 'off', '')


def require(data: dict, *fields: str) -> None:
    missing = {f: f"The {f.replace('_', ' ')} field is required."
               for f in fields if data.get(f) in (None, '')}
    if missing:
        raise ValidationError(missing)


def parse_datetime(data: dict, field: str, required: bool = True):
    """Parse an ISO 8601 timestamp (``2025-06-01T09:00``) into a naive datetime."""
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise ValidationError({field: f"The {field.replace('_', ' ')} field is required."})
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError({field: f"The {field.replace('_', ' ')} is not a valid date."})
    # Times are stored as local wall-clock values
    return parsed.replace(tzinfo=None)


def parse_decimal(data: dict, field: str, required: bool = False, minimum=None):
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise ValidationError({field: f"The {field.replace('_', ' ')} field is required."})
        return None
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError({field: f"The {field.replace('_', ' ')} must be a number."})
    if not number.is_finite():
        raise ValidationError({field: f"The {field.replace('_', ' ')} must be a number."})
    if minimum is not None and number < Decimal(str(minimum)):
        raise ValidationError({field: f"The {field.replace('_', ' ')} must be at least {minimum}."})
    return number


def parse_int(data: dict, field: str, required: bool = False, minimum=None):
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise ValidationError({field: f"The {field.replace('_', ' ')} field is required."})
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError({field: f"The {field.replace('_', ' ')} must be an integer."})
    if minimum is not None and number < minimum:
        raise ValidationError({field: f"The {field.replace('_', ' ')} must be at least {minimum}."})
    return number


def parse_bool(data: dict, field: str, default: bool = False) -> bool:
    value = data.get(field)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValidationError({field: f"The {field.replace('_', ' ')} field must be true or false."})


def parse_choice(data: dict, field: str, choices, required: bool = False, default=None):
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise ValidationError({field: f"The {field.replace('_', ' ')} field is required."})
        return default
    if value not in choices:
        raise ValidationError({field: f"The selected {field.replace('_', ' ')} is invalid."})
    return value
