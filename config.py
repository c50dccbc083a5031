"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'marketplace')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'marketplace')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'marketplace')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Pricing (amounts in IQD, no fractional currency)
    DEFAULT_DELIVERY_FEE = int(os.getenv('DEFAULT_DELIVERY_FEE', '5000'))
    SAME_ZONE_DELIVERY_FEE = int(os.getenv('SAME_ZONE_DELIVERY_FEE', '2500'))
    DEFAULT_PAYMENT_METHOD = os.getenv('DEFAULT_PAYMENT_METHOD', 'CASH_ON_DELIVERY')
    CASH_AMOUNT_TOLERANCE = os.getenv('CASH_AMOUNT_TOLERANCE', '0.01')

    # Delivery estimates
    DELIVERY_DAYS_SINGLE_VENDOR = (2, 5)
    DELIVERY_DAYS_MULTI_VENDOR = (3, 7)
    DRIVER_BASE_MINUTES = int(os.getenv('DRIVER_BASE_MINUTES', '30'))
    DRIVER_ZONE_MINUTES = {
        'KARKH': 20,
        'RUSAFA': 25,
    }
    DRIVER_DEFAULT_ZONE_MINUTES = 30

    # Pagination
    ORDERS_PAGE_SIZE = int(os.getenv('ORDERS_PAGE_SIZE', '20'))
    ORDERS_MAX_PAGE_SIZE = 100

    # Email configuration (order notifications)
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_PROMOTIONS_TTL = int(os.getenv('CACHE_PROMOTIONS_TTL', '120'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'marketplace')


class TestConfig(Config):
    """Configuration used by the test suite (in-memory SQLite, no Redis, no SMTP)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
    MAIL_SUPPRESS_SEND = True
