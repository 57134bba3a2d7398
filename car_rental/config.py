import os

from dotenv import load_dotenv

load_dotenv()


def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'change-me')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URI', 'sqlite:///car_rental.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    APP_NAME = os.getenv('APP_NAME', 'Car Rental')
    APP_URL = os.getenv('APP_URL', 'http://localhost:5000')
    APP_CURRENCY = os.getenv('APP_CURRENCY', 'VND')

    # Pricing
    VAT_RATE = os.getenv('VAT_RATE', '0.10')
    FREE_CANCELLATION_HOURS = int(os.getenv('FREE_CANCELLATION_HOURS', '24'))
    INSURANCE_FEE_PER_DAY = os.getenv('INSURANCE_FEE_PER_DAY', '100000')

    # Currency conversion (amounts are stored in VND, PayPal charges USD)
    VND_TO_USD_RATE = float(os.getenv('VND_TO_USD_RATE', '24500'))
    USE_FIXED_EXCHANGE_RATE = env_flag('USE_FIXED_EXCHANGE_RATE', True)
    EXCHANGE_RATE_API_URL = os.getenv('EXCHANGE_RATE_API_URL',
                                      'https://api.exchangerate-api.com/v4/latest/USD')
    EXCHANGE_RATE_CACHE_SECONDS = 3600

    # PayPal
    PAYPAL_MODE = os.getenv('PAYPAL_MODE', 'sandbox')
    PAYPAL_CLIENT_ID = os.getenv('PAYPAL_CLIENT_ID', '')
    PAYPAL_CLIENT_SECRET = os.getenv('PAYPAL_CLIENT_SECRET', '')
    PAYPAL_CURRENCY = os.getenv('PAYPAL_CURRENCY', 'USD')

    # Mail
    MAIL_ENABLED = env_flag('MAIL_ENABLED', False)
    MAIL_HOST = os.getenv('MAIL_HOST', 'localhost')
    MAIL_PORT = int(os.getenv('MAIL_PORT', '587'))
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_FROM = os.getenv('MAIL_FROM', 'no-reply@car-rental.local')

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE')


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    USE_FIXED_EXCHANGE_RATE = True
    VND_TO_USD_RATE = 25000.0
    INSURANCE_FEE_PER_DAY = '100000'
    MAIL_ENABLED = False
    PAYPAL_CLIENT_ID = 'test-client'
    PAYPAL_CLIENT_SECRET = 'test-secret'
    LOG_LEVEL = 'WARNING'
    LOG_FILE = None
