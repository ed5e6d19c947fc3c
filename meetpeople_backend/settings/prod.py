"""
Production settings for the messaging backend.

Extends the base settings by disabling debug mode, enforcing secure
cookies and HSTS, and refusing to start without a real secret key.
"""
import os

from django.core.exceptions import ImproperlyConfigured

from .base import *  # noqa

DEBUG = False

if SECRET_KEY == "dev-insecure":  # noqa: F405
    raise ImproperlyConfigured("DJANGO_SECRET_KEY must be set in production.")

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_SSL_REDIRECT = os.getenv("DJANGO_SECURE_SSL_REDIRECT", "True") == "True"

SECURE_HSTS_SECONDS = 31536000
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

# retention sweeps log one line per conversation at INFO; keep production quieter
LOGGING["loggers"]["messaging"]["level"] = os.getenv("MESSAGING_LOG_LEVEL", "WARNING")  # noqa: F405
