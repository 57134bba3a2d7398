"""VND/USD conversion used when charging bookings through PayPal."""

import time
from decimal import ROUND_HALF_UP, Decimal

import requests
from loguru import logger

CENT = Decimal('0.01')


class CurrencyService:
    """Converts between the booking currency (VND) and the payment currency.

    The rate is either the configured fixed rate or the ``rates.VND`` value
    of an exchange-rate API, and is cached on the instance for
    ``cache_seconds``.
    """

    def __init__(self, default_rate: float, use_fixed_rate: bool = True,
                 api_url: str = None, cache_seconds: int = 3600,
                 base_currency: str = 'VND', target_currency: str = 'USD', clock=time.monotonic):
        self.default_rate = float(default_rate)
        self.use_fixed_rate = use_fixed_rate
        self.api_url = api_url
        self.cache_seconds = cache_seconds
        self.base_currency = base_currency
        self.target_currency = target_currency
        self._clock = clock
        self._rate = None
        self._fetched_at = None

    @classmethod
    def from_config(cls, config) -> 'CurrencyService':
        return cls(
            default_rate=config.get('VND_TO_USD_RATE', 24500),
            use_fixed_rate=config.get('USE_FIXED_EXCHANGE_RATE', True),
            api_url=config.get('EXCHANGE_RATE_API_URL'),
            cache_seconds=config.get('EXCHANGE_RATE_CACHE_SECONDS', 3600),
            base_currency=config.get('APP_CURRENCY', 'VND'),
            target_currency=config.get('PAYPAL_CURRENCY', 'USD'),
        )

    def is_cached(self) -> bool:
        if self._rate is None:
            return False
        return self._clock() - self._fetched_at < self.cache_seconds

    def exchange_rate(self) -> float:
        """VND per USD."""
        if not self.is_cached():
            self._rate = self._fetch_rate()
            self._fetched_at = self._clock()
        return self._rate

    def _fetch_rate(self) -> float:
        if self.use_fixed_rate or not self.api_url:
            return self.default_rate
        try:
            response = requests.get(self.api_url, timeout=5)
            response.raise_for_status()
            rate = float(response.json().get('rates', {}).get('VND') or self.default_rate)
            logger.info('Exchange rate fetched from API: 1 USD = {} VND', rate)
            return rate
        except (requests.RequestException, ValueError) as exc:
            logger.warning('Failed to fetch exchange rate, using default {}: {}', self.default_rate, exc)
            return self.default_rate

    def refresh_rate(self) -> float:
        self._rate = None
        self._fetched_at = None
        return self.exchange_rate()

    def vnd_to_usd(self, amount_vnd) -> Decimal:
        rate = Decimal(str(self.exchange_rate()))
        return (Decimal(str(amount_vnd)) / rate).quantize(CENT, rounding=ROUND_HALF_UP)

    def usd_to_vnd(self, amount_usd) -> Decimal:
        rate = Decimal(str(self.exchange_rate()))
        return (Decimal(str(amount_usd)) * rate).quantize(CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def format(amount, currency: str = 'VND') -> str:
        """Format an amount for display: ``1.000.000 ₫``, ``$1,234.56``."""
        amount = Decimal(str(amount))
        if currency == 'VND':
            whole = amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP)
            return f"{whole:,}".replace(',', '.') + ' ₫'
        if currency == 'USD':
            return f"${amount.quantize(CENT, rounding=ROUND_HALF_UP):,}"
        return f"{amount.quantize(CENT, rounding=ROUND_HALF_UP):,} {currency}"

    def conversion_details(self, amount_vnd) -> dict:
        rate = self.exchange_rate()
        amount_usd = self.vnd_to_usd(amount_vnd)
        return {
            'amount_vnd': float(amount_vnd),
            'amount_usd': float(amount_usd),
            'exchange_rate': rate,
            'formatted_vnd': self.format(amount_vnd, 'VND'),
            'formatted_usd': self.format(amount_usd, 'USD'),
            'rate_text': f"1 USD = {rate:,.0f} VND",
        }
