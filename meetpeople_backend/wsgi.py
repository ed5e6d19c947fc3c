"""
WSGI entry point for the messaging backend (gunicorn / uwsgi).
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "meetpeople_backend.settings.dev")

application = get_wsgi_application()
