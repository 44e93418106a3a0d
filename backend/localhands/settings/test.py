import os

from .base import *

DEBUG = False
SECRET_KEY = "test-secret-key"

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Row-lock races (bookings/tests/test_concurrency.py) only run against a
# backend with SELECT ... FOR UPDATE, e.g. TEST_DB_ENGINE=django.db.backends.postgresql
if os.getenv("TEST_DB_ENGINE"):
    DATABASES['default'] = {
        'ENGINE': os.getenv("TEST_DB_ENGINE"),
        'NAME': os.getenv("DB_NAME", "localhands"),
        'USER': os.getenv("DB_USER", ""),
        'PASSWORD': os.getenv("DB_PASSWORD", ""),
        'HOST': os.getenv("DB_HOST", ""),
        'PORT': os.getenv("DB_PORT", ""),
    }

PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
BOOKING_SCHEDULE_OFFER_EXPIRY = False
