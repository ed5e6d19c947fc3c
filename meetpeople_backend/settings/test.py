"""
Test settings for the messaging backend.

Runs against an in-memory SQLite database with a local-memory cache,
eager Celery and filesystem media in a temporary directory, so the test
suite needs neither PostgreSQL nor Redis.
"""
import tempfile
from pathlib import Path

from .base import *  # noqa

DEBUG = False
SECRET_KEY = "test-insecure-key-with-enough-length-for-hs256-signing"
ALLOWED_HOSTS = ["*"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "meetpeople-tests",
    }
}

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}
MEDIA_URL = "/media/"
MEDIA_ROOT = Path(tempfile.mkdtemp(prefix="meetpeople-media-"))

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,  # noqa: F405
    "DEFAULT_THROTTLE_CLASSES": [],
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

MESSAGE_RETENTION_COUNT = 3
MESSAGE_RETENTION_ENABLED = True
