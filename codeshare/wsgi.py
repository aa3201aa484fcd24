"""
WSGI config for the codeshare project.

Only HTTP views are served over WSGI; the WebSocket channels need ASGI.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "codeshare.settings")

application = get_wsgi_application()
