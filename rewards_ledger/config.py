"""
Configuration management for the rewards ledger.
"""
import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Points economics (1 point = £0.01, 1 point per £1 of net booking value)
    POINT_VALUE = Decimal('0.01')
    POINTS_PER_CURRENCY_UNIT = 1
    CURRENCY = 'GBP'

    # Earning rules
    REVIEW_BONUS_POINTS = 25
    REFERRAL_BONUS_POINTS = 100

    # Redemption rules
    MIN_REDEEM_POINTS = 500            # £5.00
    REDEMPTION_CAP_POINTS = 5000       # £50.00 per rolling window
    REDEMPTION_CAP_WINDOW_DAYS = 30
    MAX_REDEMPTION_RATIO = Decimal('0.5')  # Redemption value <= 50% of booking

    # Settlement
    SETTLEMENT_HOLD_HOURS = int(os.getenv('SETTLEMENT_HOLD_HOURS', '24'))
    SETTLEMENT_INTERVAL_HOURS = int(os.getenv('SETTLEMENT_INTERVAL_HOURS', '6'))
    SETTLEMENT_BATCH_SIZE = int(os.getenv('SETTLEMENT_BATCH_SIZE', '500'))
    ENABLE_SCHEDULER = os.getenv('ENABLE_SCHEDULER') == 'true'

    # Referrals
    REFERRAL_CODE_PREFIX = os.getenv('REFERRAL_CODE_PREFIX', 'BLK-')
    REFERRAL_CODE_COOKIE = 'ref_code'
    SUSPICIOUS_REFERRAL_MIN_COUNT = 5
    SUSPICIOUS_REFERRAL_MIN_RATIO = 0.8

    # Booking subsystem ('records' reads the local booking mirror, 'http' asks the booking service)
    BOOKING_LOOKUP = os.getenv('BOOKING_LOOKUP', 'records')
    BOOKING_SERVICE_URL = os.getenv('BOOKING_SERVICE_URL', '')
    BOOKING_SERVICE_TIMEOUT = float(os.getenv('BOOKING_SERVICE_TIMEOUT', '5'))

    # Shared secret for internal callers (booking/review/signup subsystems)
    INTERNAL_API_TOKEN = os.getenv('INTERNAL_API_TOKEN', '')


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///rewards_ledger_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,  # Verify connections before using
    }

    _secret_key = os.getenv('SECRET_KEY', '')

    @classmethod
    def validate_secret_key(cls) -> str:
        """
        Validate SECRET_KEY in production environment.

        Raises:
            RuntimeError: If SECRET_KEY is missing, empty, or contains unsafe values
        """
        if not cls._secret_key:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY environment variable is not set!\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        insecure_patterns = ['dev', 'change', 'default', 'test', 'secret', 'password']
        lower_key = cls._secret_key.lower()
        for pattern in insecure_patterns:
            if pattern in lower_key:
                raise RuntimeError(
                    f"CRITICAL: SECRET_KEY contains '{pattern}' which suggests it's not secure!\n"
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )

        if len(cls._secret_key) < 32:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY is too short (minimum 32 characters required)!"
            )

        return cls._secret_key

    @classmethod
    def validate_internal_token(cls) -> None:
        """Internal callers move points around; production must authenticate them."""
        if not os.getenv('INTERNAL_API_TOKEN'):
            raise RuntimeError("CRITICAL: INTERNAL_API_TOKEN environment variable is not set!")

    SECRET_KEY = _secret_key  # Will be validated at app startup


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    INTERNAL_API_TOKEN = ''
    BOOKING_LOOKUP = 'records'


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Args:
        config_name: The configuration environment name

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()
        ProductionConfig.validate_internal_token()
