import os
from datetime import timedelta

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
load_dotenv(os.path.join(basedir, '.env'))


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'donorsync-dev-secret')

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL') or 'sqlite:///' + os.path.join(basedir, 'donorsync.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=int(os.getenv('JWT_EXPIRE_DAYS', '7')))

    BCRYPT_LOG_ROUNDS = int(os.getenv('BCRYPT_LOG_ROUNDS', '12'))

    MAIL_SERVER = os.getenv('MAIL_SERVER', 'localhost')
    MAIL_PORT = int(os.getenv('MAIL_PORT', '587'))
    MAIL_USE_TLS = _env_flag('MAIL_USE_TLS', True)
    MAIL_USE_SSL = _env_flag('MAIL_USE_SSL', False)
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.getenv('MAIL_DEFAULT_SENDER', 'DonorSync <no-reply@donorsync.local>')
    MAIL_SUPPRESS_SEND = _env_flag('MAIL_SUPPRESS_SEND', False)

    # Fan-out sends leave the request thread unless this is off
    NOTIFICATIONS_ASYNC = _env_flag('NOTIFICATIONS_ASYNC', True)

    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:5173')

    RATELIMIT_ENABLED = _env_flag('RATELIMIT_ENABLED', True)
    RATELIMIT_APPLICATION = os.getenv('RATELIMIT_APPLICATION', '100 per 15 minutes')
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')

    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    BCRYPT_LOG_ROUNDS = 4
    MAIL_SUPPRESS_SEND = True
    NOTIFICATIONS_ASYNC = False
    RATELIMIT_ENABLED = False
    RATELIMIT_APPLICATION = '5 per 15 minutes'
    FRONTEND_URL = 'http://frontend.test'
    LOG_LEVEL = 'DEBUG'


class RateLimitedTestConfig(TestConfig):
    RATELIMIT_ENABLED = True
