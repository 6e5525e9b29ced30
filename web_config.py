"""
Web Configuration Module

This module defines the configuration settings for the Flask application,
including database, Redis, Celery, JWT, wallet platform credentials and the
pass update limits. Values are loaded primarily from environment variables.
"""

from datetime import timedelta
import os


def _int_tuple(value, default):
    try:
        return tuple(int(part) for part in value.split(',') if part.strip()) or default
    except (AttributeError, ValueError):
        return default


class Config:
    """Application configuration settings."""
    # Basic Flask/App Configuration
    SECRET_KEY = os.getenv('SECRET_KEY')
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # Database Configuration
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_size': int(os.getenv('SQLALCHEMY_POOL_SIZE', 5)),
        'max_overflow': int(os.getenv('SQLALCHEMY_MAX_OVERFLOW', 10)),
        'pool_recycle': int(os.getenv('SQLALCHEMY_POOL_RECYCLE', 1800)),
    }

    # Redis / Celery
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://redis:6379/0')
    CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', 'redis://redis:6379/0')

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=1)

    # Device-service request signatures and scanner QR payloads ("base64:" prefix allowed)
    PASSKIT_HMAC_SECRET = os.getenv('PASSKIT_HMAC_SECRET')
    PASS_PAYLOAD_SECRET = os.getenv('PASS_PAYLOAD_SECRET')

    # Pass updates
    PASS_DATA_MAX_BYTES = int(os.getenv('PASS_DATA_MAX_BYTES', 10240))
    PASS_UPDATES_PER_PAGE = int(os.getenv('PASS_UPDATES_PER_PAGE', 15))
    PASS_UPDATE_RETENTION_DAYS = int(os.getenv('PASS_UPDATE_RETENTION_DAYS', 90))
    PASS_STORAGE_PATH = os.getenv('PASS_STORAGE_PATH', 'storage')

    # Delivery retries and pacing
    PUSH_MAX_RETRIES = int(os.getenv('PUSH_MAX_RETRIES', 3))
    PUSH_RETRY_BACKOFF = _int_tuple(os.getenv('PUSH_RETRY_BACKOFF'), (30, 120, 600))
    PUSH_RATE_LIMIT_PER_SECOND = int(os.getenv('PUSH_RATE_LIMIT_PER_SECOND', 50))

    # APNs
    APNS_ENVIRONMENT = os.getenv('APNS_ENVIRONMENT', 'production')
    APNS_AUTH_MODE = os.getenv('APNS_AUTH_MODE', 'token')
    APNS_KEY_ID = os.getenv('APNS_KEY_ID')
    APNS_KEY_PATH = os.getenv('APNS_KEY_PATH')
    APNS_TEAM_ID = os.getenv('APNS_TEAM_ID')
    APNS_CERT_PATH = os.getenv('APNS_CERT_PATH')
    APNS_CERT_KEY_PATH = os.getenv('APNS_CERT_KEY_PATH')
    APNS_TIMEOUT = float(os.getenv('APNS_TIMEOUT', 10))

    # Apple Wallet pass signing
    APPLE_PASS_TYPE_IDENTIFIER = os.getenv('APPLE_PASS_TYPE_IDENTIFIER')
    APPLE_TEAM_IDENTIFIER = os.getenv('APPLE_TEAM_IDENTIFIER')
    APPLE_ORGANIZATION_NAME = os.getenv('APPLE_ORGANIZATION_NAME', 'PassKit')
    APPLE_CERT_PATH = os.getenv('APPLE_CERT_PATH', 'certs/certificate.pem')
    APPLE_KEY_PATH = os.getenv('APPLE_KEY_PATH', 'certs/key.pem')
    APPLE_KEY_PASSWORD = os.getenv('APPLE_KEY_PASSWORD', '')
    APPLE_WWDR_PATH = os.getenv('APPLE_WWDR_PATH', 'certs/wwdr.pem')
    APPLE_PASS_ASSETS_PATH = os.getenv('APPLE_PASS_ASSETS_PATH')
    WALLET_WEB_SERVICE_URL = os.getenv('WALLET_WEB_SERVICE_URL', '')

    # Google Wallet
    GOOGLE_WALLET_SERVICE_ACCOUNT = os.getenv('GOOGLE_WALLET_SERVICE_ACCOUNT')
    GOOGLE_WALLET_DEFAULT_CLASS = os.getenv('GOOGLE_WALLET_DEFAULT_CLASS', 'passkit-generic')


class TestingConfig(Config):
    """Configuration for the test suite."""
    TESTING = True

    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}

    REDIS_URL = 'redis://localhost:6379/15'  # Will be mocked anyway
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'
    CELERY_TASK_ALWAYS_EAGER = True
    CELERY_TASK_EAGER_PROPAGATES = True

    # Test secrets
    SECRET_KEY = 'test-secret-key-for-testing'
    JWT_SECRET_KEY = 'test-jwt-secret-for-testing'
    PASSKIT_HMAC_SECRET = 'test-hmac-secret'
    PASS_PAYLOAD_SECRET = 'test-payload-secret'

    APPLE_PASS_TYPE_IDENTIFIER = 'pass.com.example.test'
    APPLE_TEAM_IDENTIFIER = 'ABCDE12345'
    WALLET_WEB_SERVICE_URL = 'https://passes.example.com'

    PUSH_RATE_LIMIT_PER_SECOND = 0
