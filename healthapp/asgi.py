"""
ASGI config for the HealthApp project.

HTTP only; the API has no WebSocket routes.
"""
import os

from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "healthapp.settings")

application = get_asgi_application()
