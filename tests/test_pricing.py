from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from car_rental import pricing
from car_rental.errors import PricingError

START = datetime(2025, 6, 1, 9, 0)
RATES = pricing.RateCard(Decimal('50000'), Decimal('400000'), 10)


def test_hours_convert_to_days_at_threshold():
    result = pricing.rental_price(START, START + timedelta(hours=25), RATES)
    assert (result.total_hours, result.total_days, result.remaining_hours) == (25, 2, 5)
    assert result.amount == Decimal('1050000.00')


def test_partial_hour_is_billed_as_a_full_hour():
    result = pricing.rental_price(START, START + timedelta(hours=4, minutes=10), RATES)
    assert result.total_hours == 5
    assert result.total_days == 0
    assert result.amount == Decimal('250000.00')


def test_return_must_be_after_pickup():
    with pytest.raises(PricingError):
        pricing.rental_price(START, START, RATES)


def test_threshold_must_be_positive():
    with pytest.raises(PricingError):
        pricing.rental_price(START, START + timedelta(hours=5),
                             pricing.RateCard(Decimal('1'), Decimal('1'), 0))


def test_driver_fee_uses_the_drivers_own_threshold():
    driver = pricing.RateCard(Decimal('20000'), Decimal('300000'), 8)
    result = pricing.driver_fee(25, driver)
    assert (result.total_days, result.remaining_hours) == (3, 1)
    assert result.amount == Decimal('920000.00')


def test_no_driver_costs_nothing():
    result = pricing.driver_fee(25, None)
    assert result.amount == Decimal('0.00')
    assert result.total_hours == 0


class TestDeliveryFee:
    terms = pricing.DeliveryTerms(True, Decimal('10000'), Decimal('20'))

    def test_not_requested(self):
        quote = pricing.delivery_fee(False, self.terms, 5)
        assert quote.fee == Decimal('0.00')
        assert not quote.can_deliver
        assert quote.error is None

    def test_car_without_delivery(self):
        quote = pricing.delivery_fee(True, pricing.DeliveryTerms(False, Decimal('10000')), 5)
        assert quote.error == 'This car does not offer delivery service.'

    def test_missing_rate(self):
        quote = pricing.delivery_fee(True, pricing.DeliveryTerms(True, None), 5)
        assert quote.error == 'Delivery rate not configured for this car.'

    def test_too_far(self):
        quote = pricing.delivery_fee(True, self.terms, Decimal('25.5'))
        assert not quote.can_deliver
        assert '25.50km' in quote.error and '20km' in quote.error

    def test_priced_per_km(self):
        quote = pricing.delivery_fee(True, self.terms, Decimal('12.5'))
        assert quote.can_deliver
        assert quote.fee == Decimal('125000.00')


def test_percentage_discount_is_capped():
    terms = pricing.PromotionTerms('percentage', Decimal('20'), Decimal('100000'))
    assert pricing.promotion_discount(terms, Decimal('1000000')) == Decimal('100000.00')
    assert pricing.promotion_discount(terms, Decimal('300000')) == Decimal('60000.00')


def test_fixed_discount_never_exceeds_base():
    terms = pricing.PromotionTerms('fixed_amount', Decimal('200000'))
    assert pricing.promotion_discount(terms, Decimal('150000')) == Decimal('150000.00')
    assert pricing.promotion_discount(terms, Decimal('500000')) == Decimal('200000.00')


def test_insurance_is_billed_per_started_day():
    assert pricing.insurance_fee(25, 10, 100000) == Decimal('300000.00')
    assert pricing.insurance_fee(3, 10, 100000) == Decimal('100000.00')
    assert pricing.insurance_fee(25, 10, 100000, requested=False) == Decimal('0.00')


def test_overtime_fee():
    scheduled = START + timedelta(hours=24)
    on_time = pricing.overtime_fee(scheduled, scheduled - timedelta(minutes=5), 60000)
    assert not on_time.is_late and on_time.amount == Decimal('0.00')

    late = pricing.overtime_fee(scheduled, scheduled + timedelta(hours=2, minutes=10), 60000)
    assert late.is_late
    assert late.late_hours == 3
    assert late.amount == Decimal('180000.00')


def test_charge_breakdown_totals():
    result = pricing.charge_breakdown(
        Decimal('1000000'), delivery=Decimal('100000'), driver=Decimal('200000'),
        discount=Decimal('100000'), deposit=Decimal('500000'))
    assert result.subtotal == Decimal('1200000.00')
    assert result.vat_amount == Decimal('120000.00')
    assert result.total_amount == Decimal('1320000.00')
    assert result.balance_due == Decimal('820000.00')
    assert result.balance_due == result.total_amount - result.amount_paid - result.deposit_amount


def test_charge_breakdown_without_vat():
    result = pricing.charge_breakdown(Decimal('1000000'), apply_vat=False)
    assert result.vat_amount == Decimal('0.00')
    assert result.total_amount == result.subtotal == Decimal('1000000.00')


def test_vat_rounds_half_up_to_cents():
    result = pricing.charge_breakdown(Decimal('0.05'))
    assert result.vat_amount == Decimal('0.01')


def _charge(vat):
    return SimpleNamespace(extra_fee=Decimal('0'), subtotal=Decimal('1000000'),
                           vat_amount=vat, total_amount=Decimal('1000000') + vat,
                           amount_paid=Decimal('300000'), deposit_amount=Decimal('200000'),
                           balance_due=None)


def test_recompute_with_extra_fee_keeps_balance_consistent():
    charge = _charge(Decimal('100000'))
    pricing.recompute_with_extra_fee(charge, Decimal('50000'))
    assert charge.extra_fee == Decimal('50000.00')
    assert charge.subtotal == Decimal('1050000.00')
    assert charge.vat_amount == Decimal('105000.00')
    assert charge.total_amount == Decimal('1155000.00')
    assert charge.balance_due == Decimal('655000.00')


def test_recompute_leaves_vat_free_charges_vat_free():
    charge = _charge(Decimal('0'))
    pricing.recompute_with_extra_fee(charge, Decimal('50000'))
    assert charge.vat_amount == Decimal('0.00')
    assert charge.total_amount == Decimal('1050000.00')
