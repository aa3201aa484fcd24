"""
HTTP middleware for the codeshare project.

- ApiKeyAuthMiddleware: requires the X-API-KEY header to match AUTH_API_KEY for
  every endpoint except /health/ (only when AUTH_API_KEY is set).

WebSocket handshakes are checked by the consumers themselves (see realtime.auth),
since browsers cannot attach custom headers to a WebSocket upgrade.
"""

from __future__ import annotations

from django.conf import settings
from django.http import JsonResponse


def _is_health_path(request) -> bool:
    path = (request.path or "").rstrip("/") or "/"
    return path == "/health"


def _provided_api_key(request) -> str:
    provided = (request.META.get("HTTP_X_API_KEY") or "").strip()
    if not provided and hasattr(request, "headers"):
        provided = (request.headers.get("X-Api-Key") or "").strip()
    return provided


class ApiKeyAuthMiddleware:
    """
    When AUTH_API_KEY is set, reject requests whose X-API-KEY header is missing or
    wrong with a 401 JSON body. /health/ and CORS preflights always pass.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if _is_health_path(request) or request.method == "OPTIONS":
            return self.get_response(request)

        auth_key = getattr(settings, "AUTH_API_KEY", None)
        if not auth_key:
            return self.get_response(request)

        provided = _provided_api_key(request)
        if not provided or provided != auth_key:
            return JsonResponse(
                {"detail": "Missing or invalid API key. Use X-API-KEY header."},
                status=401,
            )
        return self.get_response(request)
