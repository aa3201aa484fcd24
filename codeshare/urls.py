"""
URL configuration for the codeshare project.

WebSocket routes live in `realtime.routing`; only HTTP endpoints are listed here.
"""
from django.urls import path

from realtime.views import roster_view, logout_view
from .health import health

urlpatterns = [
    path("health/", health),
    # Teacher's roster view: display name / username pairs only
    path("api/students/", roster_view),
    # Student logout: drops the session (and the selection, if it pointed at them)
    path("api/students/logout/", logout_view),
]
