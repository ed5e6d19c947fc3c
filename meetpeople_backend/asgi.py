"""
ASGI entry point for the messaging backend.

The default settings module is the development configuration; deploys
set ``DJANGO_SETTINGS_MODULE`` to ``meetpeople_backend.settings.prod``.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "meetpeople_backend.settings.dev")

application = get_asgi_application()
