"""
Booking price arithmetic.

Everything in this module works on plain values (``Decimal`` amounts,
datetimes and small term records) so it can be exercised without a
database. ``car_rental.bookings`` loads the models, builds the term
records from them and persists the results.

Rental time is billed in whole started hours. Every ``threshold`` hours
(the car's ``daily_hour_threshold``, 10 by default) bill as one day at the
daily rate and the remainder bills at the hourly rate. The driver service
uses the same conversion with the driver's own rates and threshold.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .errors import PricingError

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
DEFAULT_THRESHOLD = 10
DEFAULT_VAT_RATE = Decimal('0.10')


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class RateCard:
    hourly_rate: Decimal
    daily_rate: Decimal
    daily_hour_threshold: int = DEFAULT_THRESHOLD

    @classmethod
    def for_car(cls, car) -> 'RateCard':
        return cls(to_decimal(car.hourly_rate), to_decimal(car.daily_rate),
                   car.daily_hour_threshold or DEFAULT_THRESHOLD)

    @classmethod
    def for_driver(cls, driver) -> 'RateCard':
        return cls(to_decimal(driver.hourly_fee), to_decimal(driver.daily_fee),
                   driver.daily_hour_threshold or DEFAULT_THRESHOLD)


@dataclass
class DurationCharge:
    total_hours: int
    total_days: int
    remaining_hours: int
    amount: Decimal
    rates: Optional[RateCard] = None


@dataclass
class DeliveryTerms:
    is_delivery_available: bool
    fee_per_km: Optional[Decimal]
    max_distance: Optional[Decimal] = None

    @classmethod
    def for_car(cls, car) -> 'DeliveryTerms':
        return cls(bool(car.is_delivery_available),
                   to_decimal(car.delivery_fee_per_km) if car.delivery_fee_per_km else None,
                   to_decimal(car.max_delivery_distance) if car.max_delivery_distance else None)


@dataclass
class DeliveryQuote:
    requested: bool = False
    can_deliver: bool = False
    fee: Decimal = ZERO
    distance: Optional[Decimal] = None
    fee_per_km: Optional[Decimal] = None
    error: Optional[str] = None


@dataclass
class PromotionTerms:
    discount_type: str
    discount_value: Decimal
    max_discount: Optional[Decimal] = None

    @classmethod
    def for_promotion(cls, promotion) -> 'PromotionTerms':
        return cls(promotion.discount_type, to_decimal(promotion.discount_value),
                   to_decimal(promotion.max_discount) if promotion.max_discount else None)


@dataclass
class OvertimeCharge:
    is_late: bool
    late_hours: int
    amount: Decimal


@dataclass
class ChargeBreakdown:
    base_amount: Decimal
    delivery_fee: Decimal
    driver_fee: Decimal
    insurance_fee: Decimal
    extra_fee: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    vat_amount: Decimal
    vat_rate: Decimal
    total_amount: Decimal
    deposit_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    extra: dict = field(default_factory=dict)


def billable_hours(start: datetime, end: datetime) -> int:
    """Whole hours between two datetimes, rounding any part hour up."""
    seconds = (end - start).total_seconds()
    return int(math.ceil(seconds / 3600))


def split_hours(total_hours: int, threshold: int):
    if not threshold or threshold <= 0:
        raise PricingError('Daily hour threshold must be a positive number of hours.')
    return divmod(total_hours, threshold)


def rental_price(pickup: datetime, return_: datetime, rates: RateCard) -> DurationCharge:
    if return_ <= pickup:
        raise PricingError('Return time must be after pickup time.')
    total_hours = billable_hours(pickup, return_)
    days, remaining = split_hours(total_hours, rates.daily_hour_threshold)
    amount = days * rates.daily_rate + remaining * rates.hourly_rate
    return DurationCharge(total_hours, days, remaining, money(amount), rates)


def driver_fee(total_hours: int, rates: Optional[RateCard]) -> DurationCharge:
    if rates is None:
        return DurationCharge(0, 0, 0, ZERO)
    days, remaining = split_hours(total_hours, rates.daily_hour_threshold)
    amount = days * rates.daily_rate + remaining * rates.hourly_rate
    return DurationCharge(total_hours, days, remaining, money(amount), rates)


def delivery_fee(requested: bool, terms: Optional[DeliveryTerms], distance_km) -> DeliveryQuote:
    """Price a delivery of ``distance_km`` kilometres.

    Refusals are reported through ``DeliveryQuote.error`` rather than raised
    so a pricing preview can show them next to the rest of the breakdown.
    """
    if not requested:
        return DeliveryQuote()
    if terms is None or not terms.is_delivery_available:
        return DeliveryQuote(requested=True, error='This car does not offer delivery service.')
    if not terms.fee_per_km:
        return DeliveryQuote(requested=True, error='Delivery rate not configured for this car.')

    distance = money(distance_km)
    if terms.max_distance and distance > terms.max_distance:
        return DeliveryQuote(
            requested=True, distance=distance, fee_per_km=terms.fee_per_km,
            error=f"Delivery distance ({distance}km) exceeds maximum allowed ({terms.max_distance}km).")
    return DeliveryQuote(requested=True, can_deliver=True,
                         fee=money(distance * terms.fee_per_km),
                         distance=distance, fee_per_km=terms.fee_per_km)


def promotion_discount(terms: PromotionTerms, base_amount) -> Decimal:
    base_amount = to_decimal(base_amount)
    if terms.discount_type == 'percentage':
        discount = base_amount * terms.discount_value / 100
        if terms.max_discount and discount > terms.max_discount:
            discount = terms.max_discount
    elif terms.discount_type == 'fixed_amount':
        discount = min(terms.discount_value, base_amount)
    else:
        raise PricingError(f"Unknown discount type {terms.discount_type!r}.")
    # A discount is never larger than what it discounts
    return money(max(ZERO, min(discount, base_amount)))


def insurance_fee(total_hours: int, threshold: int, per_day, requested: bool = True) -> Decimal:
    """Insurance is billed per started day, with a one day minimum."""
    if not requested:
        return ZERO
    days = max(1, int(math.ceil(total_hours / (threshold or DEFAULT_THRESHOLD))))
    return money(days * to_decimal(per_day))


def overtime_fee(scheduled_return: datetime, actual_return: datetime, per_hour) -> OvertimeCharge:
    if actual_return <= scheduled_return:
        return OvertimeCharge(False, 0, ZERO)
    late_hours = billable_hours(scheduled_return, actual_return)
    return OvertimeCharge(True, late_hours, money(late_hours * to_decimal(per_hour)))


def charge_breakdown(base_amount, delivery=ZERO, driver=ZERO, insurance=ZERO, extra=ZERO,
                     discount=ZERO, deposit=ZERO, amount_paid=ZERO, apply_vat=True,
                     vat_rate=DEFAULT_VAT_RATE) -> ChargeBreakdown:
    base_amount, delivery, driver = money(base_amount), money(delivery), money(driver)
    insurance, extra, discount = money(insurance), money(extra), money(discount)
    deposit, amount_paid = money(deposit), money(amount_paid)

    subtotal = money(base_amount + delivery + driver + insurance + extra - discount)
    rate = to_decimal(vat_rate) if apply_vat else ZERO
    vat_amount = money(subtotal * rate)
    total = money(subtotal + vat_amount)
    return ChargeBreakdown(
        base_amount=base_amount, delivery_fee=delivery, driver_fee=driver,
        insurance_fee=insurance, extra_fee=extra, discount_amount=discount,
        subtotal=subtotal, vat_amount=vat_amount, vat_rate=rate,
        total_amount=total, deposit_amount=deposit, amount_paid=amount_paid,
        balance_due=balance_due(total, amount_paid, deposit),
    )


def balance_due(total_amount, amount_paid, deposit_amount) -> Decimal:
    return money(to_decimal(total_amount) - to_decimal(amount_paid) - to_decimal(deposit_amount))


def recompute_with_extra_fee(charge, extra, vat_rate=DEFAULT_VAT_RATE) -> None:
    """Add ``extra`` to a stored charge in place and recompute its totals.

    VAT stays at zero on charges that were created without it.
    """
    extra = money(extra)
    charge.extra_fee = money(to_decimal(charge.extra_fee) + extra)
    charge.subtotal = money(to_decimal(charge.subtotal) + extra)
    if to_decimal(charge.vat_amount) > 0:
        charge.vat_amount = money(charge.subtotal * to_decimal(vat_rate))
    charge.total_amount = money(charge.subtotal + to_decimal(charge.vat_amount))
    charge.balance_due = balance_due(charge.total_amount, charge.amount_paid, charge.deposit_amount)
