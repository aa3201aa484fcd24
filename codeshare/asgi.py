"""
ASGI config for the codeshare project.

It exposes the ASGI callable as a module-level variable named ``application``.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "codeshare.settings")

from channels.auth import AuthMiddlewareStack
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from django.conf import settings
from django.core.asgi import get_asgi_application

# Django must be set up before the routing imports pull in consumers.
django_asgi_app = get_asgi_application()

from codeshare.routing import websocket_urlpatterns  # noqa: E402

# AuthMiddlewareStack resolves the Django user (the identity collaborator) into
# scope["user"] before a student consumer registers the connection.
websocket_app = AuthMiddlewareStack(URLRouter(websocket_urlpatterns))
if not settings.DEBUG:
    websocket_app = AllowedHostsOriginValidator(websocket_app)

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": websocket_app,
    }
)
