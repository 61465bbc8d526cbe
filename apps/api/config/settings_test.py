"""
Test settings: SQLite in memory, fast password hashing.

Set DATABASE_ENGINE=django.db.backends.postgresql (plus DATABASE_* vars)
to run the suite, including the row-locking tests, against PostgreSQL.
"""
import os

from .settings import *  # noqa: F401,F403

DEBUG = False

if os.environ.get('DATABASE_ENGINE', '').endswith('postgresql'):
    DATABASES['default']['TEST'] = {'NAME': os.environ.get('DATABASE_TEST_NAME', 'test_pharmacy_db')}
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': ':memory:',
        }
    }

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

RETURNS = {
    'RETURN_WINDOW_DAYS': 30,
    'MANAGER_APPROVAL_AFTER_DAYS': 7,
    'MAX_RETURNS_PER_ACTOR_PER_DAY': 10,
    'MINIMUM_RETURN_AMOUNT': '0',
    'ALLOWED_HOURS_START': None,
    'ALLOWED_HOURS_END': None,
}

LOGGING['handlers']['console']['formatter'] = 'json'  # noqa: F405
