"""
Configuration management for the LashClub membership service.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JWT bearer tokens for members and admins
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-jwt-secret-change-in-production')
    JWT_ALGORITHM = 'HS256'
    JWT_ACCESS_EXPIRY_HOURS = int(os.getenv('JWT_ACCESS_EXPIRY_HOURS', '24'))

    # Stripe (membership subscriptions)
    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET')

    # Points program
    POINTS_MINIMUM_REDEMPTION = int(os.getenv('POINTS_MINIMUM_REDEMPTION', '100'))
    POINTS_PER_DOLLAR = int(os.getenv('POINTS_PER_DOLLAR', '1'))

    # Membership billing period used when admins assign a tier by hand
    MEMBERSHIP_PERIOD_DAYS = int(os.getenv('MEMBERSHIP_PERIOD_DAYS', '30'))

    # When False, free-service claims past the monthly allowance are recorded
    # instead of rejected (admin override).
    ENFORCE_FREE_SERVICE_CAP = _env_bool('ENFORCE_FREE_SERVICE_CAP', True)

    # Default tier catalog (seeded by `flask membership seed-tiers`)
    DEFAULT_TIERS = [
        {
            'id': 'natural', 'name': 'Natural', 'price': 100, 'popular': False,
            'features': ['1 free refill per month', '10% off products'],
            'benefits': {'productDiscount': 10, 'serviceDiscount': 0, 'pointsRate': 5,
                         'freeRefillsPerMonth': 1, 'freeFullSetsPerMonth': 0,
                         'includedServiceIds': []},
        },
        {
            'id': 'hybrid', 'name': 'Hybrid', 'price': 120, 'popular': True,
            'features': ['2 free refills per month', '10% off services', '15% off products'],
            'benefits': {'productDiscount': 15, 'serviceDiscount': 10, 'pointsRate': 5,
                         'freeRefillsPerMonth': 2, 'freeFullSetsPerMonth': 0,
                         'includedServiceIds': []},
        },
        {
            'id': 'volume', 'name': 'Volume', 'price': 140, 'popular': False,
            'features': ['2 free refills per month', '1 free full set per month', '15% off services'],
            'benefits': {'productDiscount': 15, 'serviceDiscount': 15, 'pointsRate': 8,
                         'freeRefillsPerMonth': 2, 'freeFullSetsPerMonth': 1,
                         'includedServiceIds': []},
        },
        {
            'id': 'mega', 'name': 'Mega', 'price': 165, 'popular': False,
            'features': ['3 free refills per month', '1 free full set per month', '20% off everything'],
            'benefits': {'productDiscount': 20, 'serviceDiscount': 20, 'pointsRate': 10,
                         'freeRefillsPerMonth': 3, 'freeFullSetsPerMonth': 1,
                         'includedServiceIds': ['lash-bath']},
        },
    ]


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///lashclub_dev.db'  # SQLite fallback for local dev
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
        'pool_pre_ping': True,
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
                    f"CRITICAL: SECRET_KEY contains '{pattern}' which suggests it's not secure!"
                )

        if len(cls._secret_key) < 32:
            raise RuntimeError("CRITICAL: SECRET_KEY is too short (minimum 32 characters required)!")

        return cls._secret_key

    SECRET_KEY = _secret_key  # Validated at app startup


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    JWT_SECRET_KEY = 'testing-jwt-secret'
    STRIPE_SECRET_KEY = 'sk_test_dummy'
    STRIPE_WEBHOOK_SECRET = 'whsec_test_dummy'
    CACHE_TYPE = 'NullCache'
    ENFORCE_FREE_SERVICE_CAP = True


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

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()
