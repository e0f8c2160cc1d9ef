"""
Settings used by the pytest-django test run.

Supplies safe defaults for values that production reads from the environment.
"""
import os

os.environ.setdefault('SECRET_KEY', 'test-only-secret-key-for-steel-erp-0123456789abcdefghijklmnop')
os.environ.setdefault('DEBUG', 'True')

from .settings import *  # noqa: E402,F401,F403

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
SECURE_SSL_REDIRECT = False

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.InMemoryStorage",
    },
    "staticfiles": {
        "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
    },
}
