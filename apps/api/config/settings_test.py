"""
Settings for the test suite.

Uses in-memory SQLite so tests run without a Postgres server.
"""
from .settings import *  # noqa: F401,F403

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Fast hashing for test users
PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
