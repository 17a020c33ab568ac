"""
Centralized Configuration for ZoguOne Field Service
Manages environment-specific settings, secrets, and service configurations.
"""
import os
from datetime import timedelta


class StoragePolicyError(RuntimeError):
    """Raised when the configured storage does not satisfy the environment policy"""


class Config:
    """Base configuration with defaults"""

    # Flask Settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(32).hex()
    MAX_CONTENT_LENGTH = 25 * 1024 * 1024  # 25MB max file upload

    # CORS Settings
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    CORS_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']
    CORS_ALLOW_HEADERS = ['Content-Type', 'Authorization', 'X-Requested-With']

    # Database Settings
    DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///zoguone.db')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # File Storage Paths
    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    STORAGE_FOLDER = os.environ.get('STORAGE_FOLDER', 'storage')

    # E-mail (SMTP)
    SMTP_HOST = os.environ.get('SMTP_HOST', '')
    SMTP_PORT = int(os.environ.get('SMTP_PORT', '587'))
    SMTP_USER = os.environ.get('SMTP_USER', '')
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD', '')
    SMTP_USE_TLS = os.environ.get('SMTP_USE_TLS', 'true').lower() == 'true'
    FROM_EMAIL = os.environ.get('FROM_EMAIL', 'noreply@zoguone.app')

    # Stripe payment links
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    STRIPE_API_BASE = os.environ.get('STRIPE_API_BASE', 'https://api.stripe.com/v1')
    STRIPE_TIMEOUT = int(os.environ.get('STRIPE_TIMEOUT', '20'))  # seconds
    PUBLIC_APP_URL = os.environ.get('PUBLIC_APP_URL', 'http://localhost:5000')

    # Business defaults
    ITEMS_PER_PAGE = 25
    CURRENCY = 'EUR'
    DEFAULT_LANGUAGE = 'de'
    DATEV_EXPORT_SOURCE = 'ZoguOne Export'

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(actor)s] %(message)s'
    LOG_FILE = os.environ.get('LOG_FILE', 'app.log')
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')

    # Session Configuration
    SESSION_PERMANENT = False
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)

    # Create missing tables on startup (production uses alembic)
    AUTO_CREATE_TABLES = True


class DevelopmentConfig(Config):
    """Development-specific configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = 'DEBUG'
    # Allow all CORS in development
    CORS_ORIGINS = ['*']


class ProductionConfig(Config):
    """Production-specific configuration"""
    DEBUG = False
    TESTING = False
    DATABASE_URL = os.environ.get('DATABASE_URL')
    # Strict CORS in production
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'https://app.zoguone.app').split(',')
    # Force HTTPS
    PREFERRED_URL_SCHEME = 'https'
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    AUTO_CREATE_TABLES = False


class TestingConfig(Config):
    """Testing-specific configuration"""
    DEBUG = True
    TESTING = True
    DATABASE_URL = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SECRET_KEY = 'zoguone-testing-key-with-enough-length-0123456789'
    SMTP_HOST = ''
    STRIPE_SECRET_KEY = None


# Configuration selector
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}


def get_app_env():
    """Name of the active environment"""
    return os.environ.get('FLASK_ENV', 'development')


def get_config():
    """Get configuration based on FLASK_ENV environment variable"""
    return config_by_name.get(get_app_env(), DevelopmentConfig)


def validate_storage_config(config_class=None):
    """
    Refuse to run production without an explicit DATABASE_URL.

    Raises:
        StoragePolicyError: If production mode is active without DATABASE_URL
    """
    config_class = config_class or get_config()
    if config_class is ProductionConfig and not config_class.DATABASE_URL:
        raise StoragePolicyError(
            "DATABASE_URL must be configured in production."
        )
    return True
