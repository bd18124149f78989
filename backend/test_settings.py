"""
Settings for the test suite
SQLite, local-memory cache, fast hashing, no rate limiting
"""
import os

os.environ['DJANGO_DEBUG'] = 'True'
for _var in ['DB_NAME', 'DB_USER', 'DB_PASSWORD', 'DB_HOST']:
    os.environ.pop(_var, None)

from .settings import *  # noqa: E402,F401,F403

DEBUG = True

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'tests',
    }
}
SESSION_ENGINE = 'django.contrib.sessions.backends.db'

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

RATELIMIT_ENABLE = False
# locmem is not a shared cache; fine while rate limiting is off
SILENCED_SYSTEM_CHECKS = ['django_ratelimit.W001', 'django_ratelimit.E003']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

STRIPE_SECRET_KEY = 'sk_test_dummy'
STRIPE_WEBHOOK_SECRET = 'whsec_test_dummy'
WALLET_CALLBACK_SECRET = 'wallet_callback_test_secret'

LOGGING['loggers']['']['level'] = 'WARNING'
